"""Domain layer - 外部依存なしのドメインモデルとインターフェース定義"""

from tripsync.domain.errors import (
    DeadlineExceeded,
    FailedPrecondition,
    Internal,
    InvalidArgument,
    NotFound,
    PermissionDenied,
    ResourceExhausted,
    TripSyncError,
    Unauthenticated,
)
from tripsync.domain.models import (
    DocumentEvent,
    EventKind,
    FriendRequest,
    FriendRequestStatus,
    Invite,
    InviteStatus,
    NotificationType,
    Role,
    Trip,
)
from tripsync.domain.ports import (
    CleanupStore,
    FriendRepository,
    IdentityProvider,
    NotificationRepository,
    PushSender,
    RateLimitStore,
    TripRepository,
    UserRepository,
)

__all__ = [
    # Models
    "DocumentEvent",
    "EventKind",
    "FriendRequest",
    "FriendRequestStatus",
    "Invite",
    "InviteStatus",
    "NotificationType",
    "Role",
    "Trip",
    # Errors
    "TripSyncError",
    "Unauthenticated",
    "InvalidArgument",
    "NotFound",
    "PermissionDenied",
    "FailedPrecondition",
    "ResourceExhausted",
    "DeadlineExceeded",
    "Internal",
    # Ports
    "CleanupStore",
    "FriendRepository",
    "IdentityProvider",
    "NotificationRepository",
    "PushSender",
    "RateLimitStore",
    "TripRepository",
    "UserRepository",
]
