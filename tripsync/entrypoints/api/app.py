"""FastAPI アプリケーション

TripSync 旅行計画アプリのコーディネーション API。
Cloud Run Service として動作し、Firebase Auth で認証する。

エンドポイント一覧:
  POST   /api/users/profile
  POST   /api/users/search
  POST   /api/friends/requests
  POST   /api/friends/requests/{requestId}/respond
  POST   /api/trips/{tripId}/members
  POST   /api/trips/{tripId}/invites
  POST   /api/trips/{tripId}/invites/accept
  POST   /api/notification-tokens
  POST   /api/notification-tokens/unsubscribe
  POST   /worker/events               ← OIDC 認証
  POST   /worker/sweep-orphaned-keys  ← OIDC 認証

起動:
    uvicorn tripsync.entrypoints.api.app:app --host 0.0.0.0 --port ${PORT:-8080}
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.responses import Response

from tripsync.domain.errors import InvalidArgument, TripSyncError
from tripsync.entrypoints import worker
from tripsync.entrypoints.api.routes import (
    friends,
    notification_tokens,
    trips,
    users,
)
from tripsync.logging_config import setup_logging

# ── ロギング初期化 ───────────────────────────────────────────────────────────
setup_logging()
logger = logging.getLogger(__name__)

# ── FastAPI アプリ ───────────────────────────────────────────────────────────
app = FastAPI(
    title="TripSync API",
    description="共同旅行計画アプリ TripSync のコーディネーション API",
    version="1.0.0",
)


# ── ドメイン例外 → HTTP レスポンス ─────────────────────────────────────────────


@app.exception_handler(TripSyncError)
async def _handle_domain_error(request: Request, exc: TripSyncError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(RequestValidationError)
async def _handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info("Request validation failed: %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=InvalidArgument.http_status,
        content={"detail": "Invalid request.", "code": InvalidArgument.code},
    )


# ── グローバル例外ミドルウェア ──────────────────────────────────────────────────
# 【登録順の注意】
#   add_middleware は後から登録したものが外側になる。
#   このミドルウェアを CORSMiddleware より先に登録して内側に配置し、
#   500 レスポンスにも CORS ヘッダーが付与されるようにする。
#
# スタック: ServerErrorMiddleware → CORSMiddleware → このMW → ExceptionMiddleware → Routes


@app.middleware("http")
async def _catch_unhandled_exceptions(
    request: Request, call_next: Callable[[Request], Response]
) -> Response:
    try:
        return await call_next(request)
    except Exception as exc:
        logger.error(
            "Unhandled exception: %s %s - %s",
            request.method,
            request.url.path,
            exc,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


# ── CORS ─────────────────────────────────────────────────────────────────────
# CORS_ORIGINS 環境変数でカンマ区切りの追加オリジンを指定可能
_extra_origins = [
    o.strip() for o in os.environ.get("CORS_ORIGINS", "").split(",") if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_extra_origins if _extra_origins else ["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

# ── ルーター登録 ─────────────────────────────────────────────────────────────
_PREFIX = "/api"

app.include_router(users.router, prefix=_PREFIX)
app.include_router(friends.router, prefix=_PREFIX)
app.include_router(trips.router, prefix=_PREFIX)
app.include_router(notification_tokens.router, prefix=_PREFIX)

# ── ワーカールート（/worker/*）──────────────────────────────────────────────
# Firebase Auth なし。OIDC トークン検証（verify_worker_token）で保護される。
app.include_router(worker.router, prefix="/worker")


@app.get("/health")
async def health() -> dict:
    """ヘルスチェックエンドポイント（Cloud Run の起動確認用）"""
    return {"status": "ok"}


logger.info("TripSync API started")
