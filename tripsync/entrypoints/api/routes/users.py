"""ユーザー API ルート

POST /api/users/profile → 200 { ok }               （ensureUserProfile）
POST /api/users/search  → 200 { users: [...] }     （searchUsers）
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import Field

from tripsync.entrypoints.api.deps import (
    AuthInfo,
    get_auth_info,
    get_rate_limiter,
    get_user_service,
)
from tripsync.entrypoints.api.schemas import CamelModel, OkResponse
from tripsync.observability import operation
from tripsync.services import RateLimiter, UserService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/users", tags=["users"])


class SearchUsersRequest(CamelModel):
    search_term: Any = None


class UserResult(CamelModel):
    uid: str
    email: str | None = None
    display_name: str | None = None
    photo_url: str | None = Field(default=None, alias="photoURL")


class SearchUsersResponse(CamelModel):
    users: list[UserResult]


@router.post("/profile", response_model=OkResponse)
def ensure_user_profile(
    auth_info: AuthInfo = Depends(get_auth_info),
    limiter: RateLimiter = Depends(get_rate_limiter),
    users: UserService = Depends(get_user_service),
) -> OkResponse:
    """認証プロバイダの情報で users/{uid} を作成・更新する"""
    with operation("ensureUserProfile", auth_info.uid) as result:
        limiter.check_and_consume(auth_info.uid, "ensureUserProfile")
        result["created"] = users.ensure_user_profile(auth_info.uid)
    return OkResponse()


@router.post("/search", response_model=SearchUsersResponse)
def search_users(
    body: SearchUsersRequest,
    auth_info: AuthInfo = Depends(get_auth_info),
    limiter: RateLimiter = Depends(get_rate_limiter),
    users: UserService = Depends(get_user_service),
) -> SearchUsersResponse:
    """email / 表示名の前方一致でユーザーを検索する（最大10件、自分は除外）"""
    with operation("searchUsers", auth_info.uid) as result:
        limiter.check_and_consume(auth_info.uid, "searchUsers")
        found = users.search_users(auth_info.uid, body.search_term)
        result["result_count"] = len(found)
    return SearchUsersResponse(
        users=[
            UserResult(
                uid=u.uid,
                email=u.email,
                display_name=u.display_name,
                photo_url=u.photo_url,
            )
            for u in found
        ]
    )
