"""ドキュメント変更トリガー → プッシュ通知

イベント種別ごとに通知の宛先・文面・種別を決め、NotificationDispatcher に渡す。

  chat_message.created  → 送信者以外の全メンバーへ chat_message（メンション時は mention）
  comment.created       → 送信者以外の全メンバーへ comment（メンション時は mention）
  friend_request.created→ 宛先へ friend_request
  trip_invite.created   → toUid が解決済みなら trip_invite
  trip.written          → 新規に追加されたメンバーへ trip_invite（自分自身には送らない）
"""

from __future__ import annotations

import logging

from tripsync.domain.models import (
    DocumentEvent,
    EventKind,
    NotificationType,
    PushNotification,
)
from tripsync.domain.ports import TripRepository, UserRepository
from tripsync.observability import fields
from tripsync.services.event_bus import EventBus
from tripsync.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

_SNIPPET_LENGTH = 100
_FALLBACK_USER_NAME = "Someone"
_FALLBACK_TRIP_NAME = "a trip"


def _active_members(members: dict | None) -> list[str]:
    return [uid for uid, active in (members or {}).items() if active is True]


def _snippet(text: object, fallback: str) -> str:
    if isinstance(text, str) and text:
        return text[:_SNIPPET_LENGTH]
    return fallback


def resolve_inviter(before: dict | None, after: dict | None) -> str | None:
    """
    メンバー追加の操作者を決める。

    MembershipEngine が記録した membersUpdatedBy を優先し、
    無い場合は変更前の最初のメンバー、さらに無ければ ownerId を使う。
    """
    after = after or {}
    explicit = after.get("membersUpdatedBy")
    if explicit:
        return explicit
    existing = _active_members((before or {}).get("members"))
    if existing:
        return existing[0]
    return after.get("ownerId")


class NotificationTriggers:
    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        users: UserRepository,
        trips: TripRepository,
    ) -> None:
        self._dispatcher = dispatcher
        self._users = users
        self._trips = trips

    def register(self, bus: EventBus) -> None:
        bus.subscribe(EventKind.CHAT_MESSAGE_CREATED, self.on_chat_message_created)
        bus.subscribe(EventKind.COMMENT_CREATED, self.on_comment_created)
        bus.subscribe(EventKind.FRIEND_REQUEST_CREATED, self.on_friend_request_created)
        bus.subscribe(EventKind.TRIP_INVITE_CREATED, self.on_trip_invite_created)
        bus.subscribe(EventKind.TRIP_WRITTEN, self.on_trip_written)

    # ── トリガーハンドラ ─────────────────────────────────────────────────────

    def on_chat_message_created(self, event: DocumentEvent) -> None:
        message = event.after or {}
        trip_id = event.params.get("tripId", "")
        message_id = event.params.get("messageId", "")
        sender_id = message.get("createdBy")
        if not sender_id:
            return

        try:
            recipients = self._trip_recipients(trip_id, exclude=sender_id)
            if not recipients:
                return
            sender_name = self._display_name(sender_id)
            trip_name = self._trip_name(trip_id)
            mentioned = set(message.get("mentionedUserIds") or [])
            body = f"In {trip_name}: {_snippet(message.get('text'), 'New message')}"

            for member_id in recipients:
                is_mentioned = member_id in mentioned
                self._dispatcher.dispatch(
                    member_id,
                    PushNotification(
                        title=(
                            f"{sender_name} mentioned you"
                            if is_mentioned
                            else f"{sender_name} sent a message"
                        ),
                        body=body,
                    ),
                    {
                        "type": (
                            NotificationType.MENTION.value
                            if is_mentioned
                            else NotificationType.CHAT_MESSAGE.value
                        ),
                        "tripId": trip_id,
                        "messageId": message_id,
                        "senderId": sender_id,
                    },
                )
        except Exception:
            logger.exception(
                "Error in onChatMessageCreated",
                extra=fields(trip_id=trip_id, message_id=message_id),
            )

    def on_comment_created(self, event: DocumentEvent) -> None:
        comment = event.after or {}
        trip_id = event.params.get("tripId", "")
        item_id = event.params.get("itemId", "")
        comment_id = event.params.get("commentId", "")
        sender_id = comment.get("createdBy")
        if not sender_id:
            return

        try:
            recipients = self._trip_recipients(trip_id, exclude=sender_id)
            if not recipients:
                return
            sender_name = self._display_name(sender_id)
            trip_name = self._trip_name(trip_id)
            mentioned = set(comment.get("mentionedUserIds") or [])
            body = f"On {trip_name}: {_snippet(comment.get('text'), 'New comment')}"

            for member_id in recipients:
                is_mentioned = member_id in mentioned
                self._dispatcher.dispatch(
                    member_id,
                    PushNotification(
                        title=(
                            f"{sender_name} mentioned you"
                            if is_mentioned
                            else f"{sender_name} commented"
                        ),
                        body=body,
                    ),
                    {
                        "type": (
                            NotificationType.MENTION.value
                            if is_mentioned
                            else NotificationType.COMMENT.value
                        ),
                        "tripId": trip_id,
                        "itemId": item_id,
                        "commentId": comment_id,
                        "senderId": sender_id,
                    },
                )
        except Exception:
            logger.exception(
                "Error in onCommentCreated",
                extra=fields(trip_id=trip_id, item_id=item_id, comment_id=comment_id),
            )

    def on_friend_request_created(self, event: DocumentEvent) -> None:
        request = event.after or {}
        request_id = event.params.get("requestId", "")
        from_uid = request.get("fromUid")
        to_uid = request.get("toUid")
        if not from_uid or not to_uid:
            return

        try:
            from_name = self._display_name(from_uid)
            self._dispatcher.dispatch(
                to_uid,
                PushNotification(
                    title="New friend request",
                    body=f"{from_name} sent you a friend request",
                ),
                {
                    "type": NotificationType.FRIEND_REQUEST.value,
                    "requestId": request_id,
                    "fromUid": from_uid,
                },
            )
        except Exception:
            logger.exception(
                "Error in onFriendRequestCreated", extra=fields(request_id=request_id)
            )

    def on_trip_invite_created(self, event: DocumentEvent) -> None:
        invite = event.after or {}
        trip_id = event.params.get("tripId", "")
        invite_id = event.params.get("inviteId", "")
        invited_by = invite.get("invitedBy")
        to_uid = invite.get("toUid")
        # 未登録ユーザー宛ての招待は uid が解決できないため通知しない
        if not invited_by or not to_uid:
            return

        try:
            inviter_name = self._display_name(invited_by)
            trip_name = self._trip_name(trip_id)
            self._dispatcher.dispatch(
                to_uid,
                PushNotification(
                    title="Trip invitation",
                    body=f"{inviter_name} invited you to {trip_name}",
                ),
                {
                    "type": NotificationType.TRIP_INVITE.value,
                    "tripId": trip_id,
                    "inviteId": invite_id,
                    "invitedBy": invited_by,
                },
            )
        except Exception:
            logger.exception(
                "Error in onTripInviteCreated",
                extra=fields(trip_id=trip_id, invite_id=invite_id),
            )

    def on_trip_written(self, event: DocumentEvent) -> None:
        trip_id = event.params.get("tripId", "")
        before_members = (event.before or {}).get("members") or {}
        after_members = (event.after or {}).get("members") or {}

        new_members = [
            uid
            for uid, active in after_members.items()
            if active is True and before_members.get(uid) is not True
        ]
        if not new_members:
            return

        try:
            inviter_id = resolve_inviter(event.before, event.after)
            if not inviter_id:
                return
            inviter_name = self._display_name(inviter_id)
            trip_name = (event.after or {}).get("name") or self._trip_name(trip_id)

            for member_id in new_members:
                if member_id == inviter_id:
                    continue
                self._dispatcher.dispatch(
                    member_id,
                    PushNotification(
                        title="Trip invitation",
                        body=f"{inviter_name} added you to {trip_name}",
                    ),
                    {
                        "type": NotificationType.TRIP_INVITE.value,
                        "tripId": trip_id,
                        "invitedBy": inviter_id,
                    },
                )
        except Exception:
            logger.exception("Error in onTripMemberAdded", extra=fields(trip_id=trip_id))

    # ── ヘルパー ───────────────────────────────────────────────────────────

    def _trip_recipients(self, trip_id: str, exclude: str) -> list[str]:
        trip = self._trips.get_trip(trip_id)
        if trip is None:
            return []
        return [uid for uid in _active_members(trip.members) if uid != exclude]

    def _display_name(self, uid: str) -> str:
        try:
            return self._users.get_display_name(uid) or _FALLBACK_USER_NAME
        except Exception:
            logger.warning("Display name lookup failed: uid=%s", uid)
            return _FALLBACK_USER_NAME

    def _trip_name(self, trip_id: str) -> str:
        try:
            trip = self._trips.get_trip(trip_id)
        except Exception:
            logger.warning("Trip name lookup failed: trip_id=%s", trip_id)
            return _FALLBACK_TRIP_NAME
        return (trip.name if trip else "") or _FALLBACK_TRIP_NAME
