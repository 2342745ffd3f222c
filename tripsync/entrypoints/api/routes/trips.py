"""旅行メンバー・招待 API ルート

POST /api/trips/{tripId}/members         → 200 { ok }                     （inviteFriendToTrip）
POST /api/trips/{tripId}/invites         → 200 { ok, inviteId, token }    （inviteByEmailToTrip）
POST /api/trips/{tripId}/invites/accept  → 200 { ok }                     （acceptTripInvite）
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from tripsync.entrypoints.api.deps import (
    AuthInfo,
    get_auth_info,
    get_invite_service,
    get_membership_engine,
    get_rate_limiter,
)
from tripsync.entrypoints.api.schemas import CamelModel, OkResponse
from tripsync.observability import operation
from tripsync.services import InviteService, MembershipEngine, RateLimiter

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/trips", tags=["trips"])


class InviteFriendRequest(CamelModel):
    friend_uid: Any = None
    role: Any = None


class InviteByEmailRequest(CamelModel):
    email: Any = None
    role: Any = None
    ttl_hours: Any = None


class InviteByEmailResponse(CamelModel):
    ok: bool = True
    invite_id: str
    token: str


class AcceptInviteRequest(CamelModel):
    token: Any = None


@router.post("/{trip_id}/members", response_model=OkResponse)
def invite_friend_to_trip(
    trip_id: str,
    body: InviteFriendRequest,
    auth_info: AuthInfo = Depends(get_auth_info),
    limiter: RateLimiter = Depends(get_rate_limiter),
    engine: MembershipEngine = Depends(get_membership_engine),
) -> OkResponse:
    """フレンドを旅行メンバーに直接追加する（owner / editor のみ）"""
    with operation(
        "inviteFriendToTrip",
        auth_info.uid,
        trip_id=trip_id,
        friend_uid=body.friend_uid,
        role=body.role,
    ) as result:
        limiter.check_and_consume(auth_info.uid, "inviteFriendToTrip")
        added = engine.invite_friend_to_trip(
            trip_id, auth_info.uid, body.friend_uid, body.role
        )
        result["added"] = added.added
    return OkResponse()


@router.post(
    "/{trip_id}/invites",
    response_model=InviteByEmailResponse,
)
def invite_by_email_to_trip(
    trip_id: str,
    body: InviteByEmailRequest,
    auth_info: AuthInfo = Depends(get_auth_info),
    limiter: RateLimiter = Depends(get_rate_limiter),
    invites: InviteService = Depends(get_invite_service),
) -> InviteByEmailResponse:
    """
    メール招待を発行する（owner / editor のみ）。

    返却した token をアプリ側で招待リンクに埋め込んで共有する。
    """
    with operation(
        "inviteByEmailToTrip", auth_info.uid, trip_id=trip_id, role=body.role
    ) as result:
        limiter.check_and_consume(auth_info.uid, "inviteByEmailToTrip")
        created = invites.create_invite(
            trip_id, auth_info.uid, body.email, body.role, body.ttl_hours
        )
        result["invite_id"] = created.invite_id
    return InviteByEmailResponse(invite_id=created.invite_id, token=created.token)


@router.post("/{trip_id}/invites/accept", response_model=OkResponse)
def accept_trip_invite(
    trip_id: str,
    body: AcceptInviteRequest,
    auth_info: AuthInfo = Depends(get_auth_info),
    limiter: RateLimiter = Depends(get_rate_limiter),
    invites: InviteService = Depends(get_invite_service),
) -> OkResponse:
    """招待トークンを使って旅行に参加する"""
    with operation("acceptTripInvite", auth_info.uid, trip_id=trip_id) as result:
        limiter.check_and_consume(auth_info.uid, "acceptTripInvite")
        accepted = invites.accept_invite(trip_id, auth_info.uid, body.token)
        result["added"] = accepted.added
    return OkResponse()
