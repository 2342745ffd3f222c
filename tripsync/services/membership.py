"""MembershipEngine - 旅行メンバー追加トランザクション

trips/{tripId} の members / roles の唯一の書き込み経路。

1トランザクション内で以下をまとめてコミットする:
  1. trips/{tripId} の members / roles 更新
  2. 暗号化有効時の encryptionKeys/{uid} プレースホルダ作成
  3. activities への member.add 追記
  4. （招待経由の場合）招待の accepted 更新

競合が検出された場合、トランザクション本体は新しい読み取りから再実行される。
読み取ったスナップショットの dict は変更せず、常に新しい dict を書き戻す。
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from dataclasses import dataclass

from tripsync.domain.errors import (
    FailedPrecondition,
    InvalidArgument,
    NotFound,
    PermissionDenied,
)
from tripsync.domain.models import (
    INVITABLE_ROLES,
    INVITER_ROLES,
    ActivityEntry,
    Invite,
    InviteStatus,
    MembershipResult,
    Role,
    Trip,
)
from tripsync.domain.ports import MembershipTransaction, TripRepository

logger = logging.getLogger(__name__)

MEMBER_ADD = "member.add"


@dataclass(frozen=True)
class MembershipPlan:
    """コミットする新しい members / roles"""

    members: dict[str, bool]
    roles: dict[str, str]


def plan_membership(trip: Trip, target_uid: str, role: Role) -> MembershipPlan | None:
    """
    target_uid を追加した新しい members / roles を返す。

    既にメンバーの場合は None。既存のロールは上書きしない。
    """
    if trip.is_member(target_uid):
        return None

    members = {**trip.members, target_uid: True}
    roles = dict(trip.roles)
    if not roles.get(target_uid):
        roles[target_uid] = role.value
    return MembershipPlan(members=members, roles=roles)


def parse_invitable_role(raw: object) -> Role:
    """招待で付与するロールを検証する（未指定は editor）"""
    if raw is None or raw == "":
        return Role.EDITOR
    for role in INVITABLE_ROLES:
        if raw == role.value:
            return role
    raise InvalidArgument("Invalid role.")


def authorize(
    trip: Trip | None, uid: str, allowed: Collection[Role] = INVITER_ROLES
) -> Trip:
    """
    uid がメンバーで、かつ allowed のいずれかのロールを持つことを確認する。

    Raises:
        NotFound: 旅行が存在しない
        PermissionDenied: メンバーでない、またはロール不足
    """
    if trip is None:
        raise NotFound("Trip not found.")
    if not trip.is_member(uid):
        raise PermissionDenied("Not a trip member.")
    if trip.role_of(uid) not in {r.value for r in allowed}:
        raise PermissionDenied("Insufficient role.")
    return trip


class MembershipEngine:
    def __init__(self, trips: TripRepository) -> None:
        self._trips = trips

    def add_member(
        self,
        trip_id: str,
        caller_uid: str,
        target_uid: str,
        role: Role,
        required_caller_roles: Collection[Role] | None,
        *,
        invite: Invite | None = None,
    ) -> MembershipResult:
        """
        旅行にメンバーを追加する。

        Args:
            trip_id: 旅行ID
            caller_uid: 操作者（アクティビティの actorId になる）
            target_uid: 追加するユーザー
            role: 付与するロール（既存ロールがある場合は維持）
            required_caller_roles: 操作者に要求するロール。
                None の場合は招待トークンで認可済みとしてチェックしない
            invite: 招待経由の場合、同じトランザクションで accepted にする招待

        Returns:
            MembershipResult（既にメンバーなら added=False）
        """
        if required_caller_roles is not None:
            # トランザクション外の事前チェック（本体で最新スナップショットに対して再検証する）
            authorize(self._trips.get_trip(trip_id), caller_uid, required_caller_roles)

        shared_by = invite.invited_by if invite is not None else caller_uid
        message = "New member joined" if invite is not None else "Invited member joined"

        def body(tx: MembershipTransaction) -> MembershipResult:
            trip = tx.get_trip(trip_id)
            if trip is None:
                raise NotFound("Trip not found.")
            if required_caller_roles is not None:
                authorize(trip, caller_uid, required_caller_roles)
            if invite is not None:
                current = tx.get_invite(trip_id, invite.id)
                if current is None or current.status is not InviteStatus.PENDING:
                    raise FailedPrecondition("Invite already used.")

            plan = plan_membership(trip, target_uid, role)
            provision = (
                plan is not None
                and tx.is_encryption_enabled(trip_id)
                and not tx.encryption_key_exists(trip_id, target_uid)
            )

            # ここから書き込み（読み取りは全て完了している）
            if invite is not None:
                tx.mark_invite_accepted(trip_id, invite.id, target_uid)
            if plan is None:
                return MembershipResult(added=False)

            tx.update_membership(trip_id, plan.members, plan.roles, caller_uid)
            if provision:
                tx.create_encryption_key(trip_id, target_uid, shared_by)
            tx.append_activity(
                trip_id,
                ActivityEntry(
                    type=MEMBER_ADD,
                    actor_id=caller_uid,
                    message=message,
                    target_uid=target_uid,
                ),
            )
            return MembershipResult(added=True, key_provisioned=provision)

        result = self._trips.run_membership_transaction(body)
        logger.info(
            "Membership transaction committed: trip_id=%s, target=%s, added=%s, key=%s",
            trip_id,
            target_uid,
            result.added,
            result.key_provisioned,
        )
        return result

    def invite_friend_to_trip(
        self, trip_id: object, inviter_uid: str, friend_uid: object, role: object
    ) -> MembershipResult:
        """既知のフレンドを直接メンバーに追加する（owner / editor のみ）"""
        if not trip_id or not isinstance(trip_id, str):
            raise InvalidArgument("tripId and friendUid required.")
        if not friend_uid or not isinstance(friend_uid, str):
            raise InvalidArgument("tripId and friendUid required.")
        grant = parse_invitable_role(role)
        return self.add_member(
            trip_id, inviter_uid, friend_uid, grant, required_caller_roles=INVITER_ROLES
        )
