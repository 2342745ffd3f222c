"""フレンド API ルート

POST /api/friends/requests                      → 200 { ok, already?, requestId? }
POST /api/friends/requests/{requestId}/respond  → 200 { ok, status? }
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from tripsync.entrypoints.api.deps import (
    AuthInfo,
    get_auth_info,
    get_friend_service,
    get_rate_limiter,
)
from tripsync.entrypoints.api.schemas import CamelModel
from tripsync.observability import operation
from tripsync.services import FriendService, RateLimiter

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/friends", tags=["friends"])


class SendFriendRequestRequest(CamelModel):
    to_email: Any = None


class SendFriendRequestResponse(CamelModel):
    ok: bool = True
    already: bool | None = None
    request_id: str | None = None


class RespondRequest(CamelModel):
    action: Any = None


class RespondResponse(CamelModel):
    ok: bool = True
    status: str | None = None


@router.post(
    "/requests",
    response_model=SendFriendRequestResponse,
    response_model_exclude_none=True,
)
def send_friend_request(
    body: SendFriendRequestRequest,
    auth_info: AuthInfo = Depends(get_auth_info),
    limiter: RateLimiter = Depends(get_rate_limiter),
    friends: FriendService = Depends(get_friend_service),
) -> SendFriendRequestResponse:
    with operation("sendFriendRequest", auth_info.uid) as result:
        limiter.check_and_consume(auth_info.uid, "sendFriendRequest")
        sent = friends.send_friend_request(auth_info.uid, body.to_email)
        result["already"] = sent.already
    if sent.already:
        return SendFriendRequestResponse(already=True)
    return SendFriendRequestResponse(request_id=sent.request_id)


@router.post(
    "/requests/{request_id}/respond",
    response_model=RespondResponse,
    response_model_exclude_none=True,
)
def respond_to_friend_request(
    request_id: str,
    body: RespondRequest,
    auth_info: AuthInfo = Depends(get_auth_info),
    limiter: RateLimiter = Depends(get_rate_limiter),
    friends: FriendService = Depends(get_friend_service),
) -> RespondResponse:
    with operation(
        "respondToFriendRequest",
        auth_info.uid,
        request_id=request_id,
        action=body.action,
    ):
        limiter.check_and_consume(auth_info.uid, "respondToFriendRequest")
        responded = friends.respond_to_friend_request(
            auth_info.uid, request_id, body.action
        )
    return RespondResponse(status=responded.status)
