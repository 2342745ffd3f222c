"""FastAPI 依存性注入

Firebase Auth JWT 検証（Identity Guard）と Services の初期化を担当する。
各ルートは Depends() でこのモジュールの関数を呼び出して認証情報と
サービスインスタンスを受け取る。テストでは app.dependency_overrides で差し替える。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import firebase_admin.auth as fb_auth
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tripsync.domain.errors import Unauthenticated
from tripsync.domain.ports import NotificationRepository
from tripsync.entrypoints.factory import Services, create_services
from tripsync.services import (
    CleanupSweeper,
    EventBus,
    FriendService,
    InviteService,
    MembershipEngine,
    RateLimiter,
    UserService,
)

logger = logging.getLogger(__name__)

# ── Services（プロセス内で1回のみ組み立て） ─────────────────────────────────────

_services: Services | None = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = create_services()
        logger.info("Services initialized")
    return _services


# ── 認証 ────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AuthInfo:
    """Firebase Auth JWT から取得した認証情報"""

    uid: str
    email: str
    display_name: str


# auto_error=False: ヘッダー欠落時も Unauthenticated（401）に統一する
_bearer = HTTPBearer(auto_error=False)


def verify_id_token(token: str) -> dict:
    """Firebase ID トークンを検証してクレームを返す"""
    get_services()  # Firebase Admin の初期化を兼ねる
    return fb_auth.verify_id_token(token)


async def get_auth_info(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> AuthInfo:
    """
    Authorization: Bearer <id_token> ヘッダーを検証して AuthInfo を返す。

    Raises:
        Unauthenticated: ヘッダーが無い、またはトークンが無効な場合
    """
    if creds is None or not creds.credentials:
        raise Unauthenticated("Login required.")
    try:
        decoded = verify_id_token(creds.credentials)
    except Exception as e:
        logger.warning("Invalid Firebase ID token: %s", e)
        raise Unauthenticated("Login required.") from e

    return AuthInfo(
        uid=decoded["uid"],
        email=decoded.get("email", ""),
        display_name=decoded.get("name", ""),
    )


# ── サービス依存 ───────────────────────────────────────────────────────────────


def get_rate_limiter(services: Services = Depends(get_services)) -> RateLimiter:
    return services.rate_limiter


def get_user_service(services: Services = Depends(get_services)) -> UserService:
    return services.users


def get_friend_service(services: Services = Depends(get_services)) -> FriendService:
    return services.friends


def get_membership_engine(
    services: Services = Depends(get_services),
) -> MembershipEngine:
    return services.membership


def get_invite_service(services: Services = Depends(get_services)) -> InviteService:
    return services.invites


def get_notification_repo(
    services: Services = Depends(get_services),
) -> NotificationRepository:
    return services.notification_repo


def get_event_bus(services: Services = Depends(get_services)) -> EventBus:
    return services.bus


def get_sweeper(services: Services = Depends(get_services)) -> CleanupSweeper:
    return services.sweeper
