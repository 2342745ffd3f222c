"""/worker/* の呼び出し元認証

Eventarc のドキュメントトリガー転送・Cloud Scheduler・運用スクリプトは
ワーカー用サービスアカウントの Google OIDC トークンを Bearer で付与して呼び出す。
email claim が WORKER_SERVICE_ACCOUNT_EMAIL と一致しない呼び出しは Unauthenticated。

- audience は呼び出し元ごとに異なるため検証しない
- WORKER_SERVICE_ACCOUNT_EMAIL が空なら常に拒否する
- LOCAL_MODE ではエミュレーターから直接叩くため検証しない
"""

from __future__ import annotations

import logging
import os

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from tripsync.domain.errors import Unauthenticated

logger = logging.getLogger(__name__)

_worker_bearer = HTTPBearer(auto_error=False)


def _caller_email(raw_token: str) -> str:
    """OIDC トークンを検証して email claim を返す"""
    try:
        claims = id_token.verify_oauth2_token(
            raw_token, google_requests.Request(), audience=None
        )
    except Exception as e:
        logger.warning("Worker token rejected: %s", e)
        raise Unauthenticated("Invalid OIDC token") from e
    return claims.get("email", "")


def verify_worker_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_worker_bearer),
) -> None:
    """ワーカールーター全体に dependencies として適用する"""
    if os.environ.get("LOCAL_MODE"):
        return

    allowed = os.environ.get("WORKER_SERVICE_ACCOUNT_EMAIL")
    if not allowed:
        logger.error("Worker request denied: WORKER_SERVICE_ACCOUNT_EMAIL is unset")
        raise Unauthenticated("Worker authentication is not configured")
    if credentials is None:
        raise Unauthenticated("Missing Authorization header")

    email = _caller_email(credentials.credentials)
    if email != allowed:
        logger.warning("Worker caller not allowed: email=%s", email)
        raise Unauthenticated("Unauthorized service account")
