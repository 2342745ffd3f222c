"""InviteService - メール招待トークンの発行・受諾

招待は pending → accepted / expired に1回だけ遷移する。
有効期限はバックグラウンドで処理せず、受諾時に遅延評価して expired に更新する。
"""

from __future__ import annotations

import datetime
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass

from tripsync.domain.errors import (
    DeadlineExceeded,
    FailedPrecondition,
    InvalidArgument,
    NotFound,
)
from tripsync.domain.models import INVITER_ROLES, InviteStatus, MembershipResult, Role
from tripsync.domain.ports import TripRepository, UserRepository
from tripsync.services.friends import normalize_email
from tripsync.services.membership import (
    MembershipEngine,
    authorize,
    parse_invitable_role,
)

logger = logging.getLogger(__name__)

# secrets.token_urlsafe(30) は 40 文字（240 bit）
_TOKEN_BYTES = 30


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def generate_token() -> str:
    return secrets.token_urlsafe(_TOKEN_BYTES)


@dataclass(frozen=True)
class CreatedInvite:
    invite_id: str
    token: str
    expires_at: datetime.datetime


class InviteService:
    def __init__(
        self,
        trips: TripRepository,
        users: UserRepository,
        engine: MembershipEngine,
        default_ttl_hours: float = 72,
        max_ttl_hours: float = 720,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        self._trips = trips
        self._users = users
        self._engine = engine
        self._default_ttl_hours = default_ttl_hours
        self._max_ttl_hours = max_ttl_hours
        self._clock = clock

    def create_invite(
        self,
        trip_id: object,
        caller_uid: str,
        email: object,
        role: object = None,
        ttl_hours: object = None,
    ) -> CreatedInvite:
        """
        メール招待を発行する（owner / editor のみ）。

        宛先 email が既存ユーザーのものであれば toUid を記録する
        （招待作成トリガーがプッシュ通知を送れるようにするため）。

        Raises:
            InvalidArgument: tripId / email / role / ttlHours が不正
            NotFound: 旅行が存在しない
            PermissionDenied: 操作者のロール不足
        """
        normalized = normalize_email(email)
        if not trip_id or not isinstance(trip_id, str) or not normalized:
            raise InvalidArgument("tripId and email required.")
        grant = parse_invitable_role(role)
        ttl = self._parse_ttl(ttl_hours)

        authorize(self._trips.get_trip(trip_id), caller_uid, INVITER_ROLES)

        token = generate_token()
        expires_at = self._clock() + datetime.timedelta(hours=ttl)
        to_uid = self._users.find_uid_by_email(normalized)
        invite_id = self._trips.create_invite(
            trip_id,
            email=normalized,
            token=token,
            role=grant.value,
            invited_by=caller_uid,
            expires_at=expires_at,
            to_uid=to_uid,
        )
        logger.info(
            "Invite created: trip_id=%s, invite_id=%s, role=%s, ttl_hours=%s",
            trip_id,
            invite_id,
            grant.value,
            ttl,
        )
        return CreatedInvite(invite_id=invite_id, token=token, expires_at=expires_at)

    def accept_invite(self, trip_id: object, uid: str, token: object) -> MembershipResult:
        """
        招待トークンを使って旅行に参加する。

        既にメンバーの場合も招待は accepted にする（再追加はしない）。

        Raises:
            InvalidArgument: tripId / token 未指定
            NotFound: 招待が存在しない
            FailedPrecondition: 使用済み・期限切れ済みの招待
            DeadlineExceeded: 有効期限切れ（招待は expired に更新される）
        """
        if not trip_id or not isinstance(trip_id, str):
            raise InvalidArgument("tripId and token required.")
        if not token or not isinstance(token, str):
            raise InvalidArgument("tripId and token required.")

        invite = self._trips.find_invite_by_token(trip_id, token)
        if invite is None:
            raise NotFound("Invite not found.")
        if invite.status is not InviteStatus.PENDING:
            raise FailedPrecondition("Invite already used.")

        if invite.is_expired(self._clock()):
            # メンバー追加トランザクションの外で確定させる
            self._trips.mark_invite_expired(trip_id, invite.id)
            logger.info("Invite expired: trip_id=%s, invite_id=%s", trip_id, invite.id)
            raise DeadlineExceeded("Invite expired.")

        try:
            grant = Role(invite.role)
        except ValueError:
            grant = Role.EDITOR

        return self._engine.add_member(
            trip_id,
            uid,
            uid,
            grant,
            required_caller_roles=None,
            invite=invite,
        )

    def _parse_ttl(self, raw: object) -> float:
        if raw is None:
            return self._default_ttl_hours
        if isinstance(raw, str):
            # 数値文字列（"24" 等）は数値として扱う
            try:
                raw = float(raw.strip())
            except ValueError as e:
                raise InvalidArgument("ttlHours must be a number.") from e
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise InvalidArgument("ttlHours must be a number.")
        # NaN は比較が常に偽になり範囲外として扱われる
        if not 0 < raw <= self._max_ttl_hours:
            raise InvalidArgument(
                f"ttlHours must be between 0 and {self._max_ttl_hours:g}."
            )
        return float(raw)
