"""Services layer - ビジネスロジック"""

from tripsync.services.cleanup import CleanupSweeper
from tripsync.services.event_bus import EventBus
from tripsync.services.friends import FriendService
from tripsync.services.invites import InviteService
from tripsync.services.membership import MembershipEngine
from tripsync.services.notification_triggers import NotificationTriggers
from tripsync.services.notifications import NotificationDispatcher
from tripsync.services.rate_limiter import RateLimiter
from tripsync.services.users import UserService

__all__ = [
    "CleanupSweeper",
    "EventBus",
    "FriendService",
    "InviteService",
    "MembershipEngine",
    "NotificationDispatcher",
    "NotificationTriggers",
    "RateLimiter",
    "UserService",
]
