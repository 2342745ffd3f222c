"""設定管理 - 環境変数の型安全な読み込み"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from tripsync.domain.models import RateLimitRule

# 操作ごとのレート制限（固定ウィンドウ）
RATE_LIMITS: dict[str, RateLimitRule] = {
    "sendFriendRequest": RateLimitRule(max_requests=10, window_ms=60 * 1000),
    "respondToFriendRequest": RateLimitRule(max_requests=30, window_ms=60 * 1000),
    "inviteFriendToTrip": RateLimitRule(max_requests=20, window_ms=60 * 1000),
    "inviteByEmailToTrip": RateLimitRule(max_requests=20, window_ms=60 * 1000),
    "acceptTripInvite": RateLimitRule(max_requests=10, window_ms=60 * 1000),
    "searchUsers": RateLimitRule(max_requests=30, window_ms=60 * 1000),
    "ensureUserProfile": RateLimitRule(max_requests=5, window_ms=60 * 1000),
}


@dataclass(frozen=True)
class AppConfig:
    """アプリケーション設定"""

    project_id: str = ""
    default_invite_ttl_hours: float = 72
    max_invite_ttl_hours: float = 720
    transaction_max_attempts: int = 5
    worker_service_account_email: str = ""
    local_mode: bool = False

    @classmethod
    def from_env(cls) -> "AppConfig":
        """環境変数から設定を読み込む"""
        load_dotenv()

        transaction_max_attempts = int(os.getenv("TRANSACTION_MAX_ATTEMPTS", "5"))
        if transaction_max_attempts < 1:
            raise ValueError("TRANSACTION_MAX_ATTEMPTS must be >= 1")

        return cls(
            project_id=os.getenv("PROJECT_ID", ""),
            default_invite_ttl_hours=float(
                os.getenv("DEFAULT_INVITE_TTL_HOURS", "72")
            ),
            max_invite_ttl_hours=float(os.getenv("MAX_INVITE_TTL_HOURS", "720")),
            transaction_max_attempts=transaction_max_attempts,
            worker_service_account_email=os.getenv(
                "WORKER_SERVICE_ACCOUNT_EMAIL", ""
            ),
            local_mode=bool(os.getenv("LOCAL_MODE")),
        )
