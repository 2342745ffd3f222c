"""通知トークン管理 API ルート

POST /api/notification-tokens             → FCM 登録トークンを登録
POST /api/notification-tokens/unsubscribe → FCM 登録トークンを削除

Firestore スキーマ（端末ごとに1ドキュメント）:
  users/{uid}/tokens/{sha256_hex[:16]}: { token, platform, createdAt }
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from tripsync.adapters.firestore_repository import token_key
from tripsync.domain.errors import InvalidArgument
from tripsync.domain.ports import NotificationRepository
from tripsync.entrypoints.api.deps import (
    AuthInfo,
    get_auth_info,
    get_notification_repo,
)
from tripsync.entrypoints.api.schemas import CamelModel

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/notification-tokens", tags=["notification-tokens"])


class RegisterTokenRequest(CamelModel):
    token: str
    platform: str = ""


class UnregisterTokenRequest(CamelModel):
    token: str


@router.post("", status_code=204)
def register_notification_token(
    body: RegisterTokenRequest,
    auth_info: AuthInfo = Depends(get_auth_info),
    repo: NotificationRepository = Depends(get_notification_repo),
) -> None:
    """端末の FCM 登録トークンを保存する（同じトークンの再登録は上書き）"""
    if not body.token.strip():
        raise InvalidArgument("token required.")
    token_id = repo.save_token(auth_info.uid, body.token.strip(), body.platform)
    logger.info(
        "Notification token registered: uid=%s, token_id=%s", auth_info.uid, token_id
    )


@router.post("/unsubscribe", status_code=204)
def unregister_notification_token(
    body: UnregisterTokenRequest,
    auth_info: AuthInfo = Depends(get_auth_info),
    repo: NotificationRepository = Depends(get_notification_repo),
) -> None:
    """ログアウトした端末の FCM 登録トークンを削除する"""
    if not body.token.strip():
        raise InvalidArgument("token required.")
    token_id = token_key(body.token.strip())
    repo.delete_token(auth_info.uid, token_id)
    logger.info(
        "Notification token removed: uid=%s, token_id=%s", auth_info.uid, token_id
    )
