"""ドメインモデル - 外部依存なしのデータ構造"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum


class Role(Enum):
    """旅行メンバーのロール"""

    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"


# 招待（直接・メール）で付与できるロール
INVITABLE_ROLES = (Role.EDITOR, Role.VIEWER)
# 招待を発行できるロール
INVITER_ROLES = (Role.OWNER, Role.EDITOR)


class FriendRequestStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class InviteStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class NotificationType(Enum):
    """プッシュ通知の種別（data.type に入る値）"""

    CHAT_MESSAGE = "chat_message"
    MENTION = "mention"
    COMMENT = "comment"
    FRIEND_REQUEST = "friend_request"
    TRIP_INVITE = "trip_invite"


class EventKind(Enum):
    """ドキュメント変更イベントの種別"""

    CHAT_MESSAGE_CREATED = "chat_message.created"
    COMMENT_CREATED = "comment.created"
    FRIEND_REQUEST_CREATED = "friend_request.created"
    TRIP_INVITE_CREATED = "trip_invite.created"
    TRIP_WRITTEN = "trip.written"
    TRIP_DELETED = "trip.deleted"


@dataclass(frozen=True)
class IdentityRecord:
    """認証プロバイダ（Firebase Auth）が持つユーザー情報"""

    uid: str
    email: str | None = None
    display_name: str | None = None
    photo_url: str | None = None


@dataclass(frozen=True)
class UserSummary:
    """ユーザー検索結果の1件"""

    uid: str
    email: str | None
    display_name: str | None
    photo_url: str | None = None


@dataclass(frozen=True)
class FriendRequest:
    """フレンド申請（friendRequests/{id}）"""

    id: str
    from_uid: str
    to_uid: str
    status: FriendRequestStatus


@dataclass(frozen=True)
class Trip:
    """旅行ドキュメント（trips/{tripId}）のスナップショット

    members / roles は読み取り時点の値。変更する場合は新しい dict を作ること。
    """

    id: str
    members: dict[str, bool] = field(default_factory=dict)
    roles: dict[str, str] = field(default_factory=dict)
    name: str = ""
    owner_id: str | None = None

    def is_member(self, uid: str) -> bool:
        return self.members.get(uid) is True

    def role_of(self, uid: str) -> str | None:
        return self.roles.get(uid)


@dataclass(frozen=True)
class Invite:
    """メール招待（trips/{tripId}/invites/{id}）"""

    id: str
    trip_id: str
    email: str
    token: str
    role: str
    status: InviteStatus
    invited_by: str
    expires_at: datetime.datetime
    to_uid: str | None = None
    accepted_by: str | None = None

    def is_expired(self, now: datetime.datetime) -> bool:
        return self.expires_at < now


@dataclass(frozen=True)
class ActivityEntry:
    """アクティビティログ（trips/{tripId}/activities/{id}）"""

    type: str  # 例: "member.add"
    actor_id: str
    message: str
    target_uid: str | None = None


@dataclass(frozen=True)
class RateLimitRule:
    """固定ウィンドウのレート制限ルール"""

    max_requests: int
    window_ms: int


@dataclass(frozen=True)
class RateLimitCounter:
    """rateLimits/{uid}_{operation} のカウンター"""

    count: int
    window_start_ms: int


@dataclass(frozen=True)
class NotificationPrefs:
    """通知設定。未設定の項目はすべて ON として扱う"""

    chat_messages: bool = True
    mentions: bool = True
    friend_requests: bool = True
    trip_invites: bool = True
    comments: bool = True

    @classmethod
    def from_dict(cls, data: dict | None) -> NotificationPrefs:
        """Firestore の notificationPrefs から生成（False 明示時のみ OFF）"""
        data = data or {}
        return cls(
            chat_messages=data.get("chatMessages") is not False,
            mentions=data.get("mentions") is not False,
            friend_requests=data.get("friendRequests") is not False,
            trip_invites=data.get("tripInvites") is not False,
            comments=data.get("comments") is not False,
        )

    def allows(self, notification_type: str | None) -> bool:
        """通知種別が有効かどうか。未知の種別は常に許可する"""
        mapping = {
            NotificationType.CHAT_MESSAGE.value: self.chat_messages,
            NotificationType.MENTION.value: self.mentions,
            NotificationType.FRIEND_REQUEST.value: self.friend_requests,
            NotificationType.TRIP_INVITE.value: self.trip_invites,
            NotificationType.COMMENT.value: self.comments,
        }
        return mapping.get(notification_type or "", True)


@dataclass(frozen=True)
class NotificationToken:
    """配信先エンドポイント（users/{uid}/tokens/{id}）"""

    id: str  # Firestore ドキュメントID
    token: str
    platform: str = ""


@dataclass(frozen=True)
class PushNotification:
    """通知の表示内容"""

    title: str
    body: str


@dataclass(frozen=True)
class DeliveryOutcome:
    """マルチキャスト送信の1トークン分の結果"""

    token: str
    success: bool
    permanently_invalid: bool = False
    error: str = ""


@dataclass(frozen=True)
class MulticastReport:
    """マルチキャスト送信結果"""

    outcomes: list[DeliveryOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)


@dataclass(frozen=True)
class DocumentEvent:
    """ドキュメント変更イベント（at-least-once で配信される）

    params はパスパラメータ（tripId, messageId 等）、
    before / after は変更前後のドキュメントデータ（作成時は before=None、削除時は after=None）。
    """

    kind: EventKind
    params: dict[str, str] = field(default_factory=dict)
    before: dict | None = None
    after: dict | None = None
    event_id: str = ""


@dataclass(frozen=True)
class MembershipResult:
    """メンバー追加トランザクションの結果"""

    added: bool
    key_provisioned: bool = False


@dataclass(frozen=True)
class SweepReport:
    """孤立した暗号鍵レコードの掃除結果"""

    checked_trips: int
    cleaned_keys: int
    orphaned_trip_ids: list[str] = field(default_factory=list)
