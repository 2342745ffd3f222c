"""ドメイン固有の例外クラス

各例外は安定したエラーコード（code）を持ち、API 層で HTTP ステータスに変換される。
"""


class TripSyncError(Exception):
    """TripSync の基底例外"""

    code = "internal"
    http_status = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class Unauthenticated(TripSyncError):
    """認証されていない"""

    code = "unauthenticated"
    http_status = 401


class InvalidArgument(TripSyncError):
    """入力値が不正"""

    code = "invalid-argument"
    http_status = 400


class NotFound(TripSyncError):
    """対象が存在しない"""

    code = "not-found"
    http_status = 404


class PermissionDenied(TripSyncError):
    """権限不足"""

    code = "permission-denied"
    http_status = 403


class FailedPrecondition(TripSyncError):
    """状態が操作の前提を満たさない（使用済み招待など）"""

    code = "failed-precondition"
    http_status = 400


class ResourceExhausted(TripSyncError):
    """レート制限超過"""

    code = "resource-exhausted"
    http_status = 429

    def __init__(self, max_requests: int, window_ms: int) -> None:
        super().__init__(
            f"Rate limit exceeded. Maximum {max_requests} requests per "
            f"{window_ms // 1000} seconds."
        )
        self.max_requests = max_requests
        self.window_ms = window_ms


class DeadlineExceeded(TripSyncError):
    """招待の有効期限切れ"""

    code = "deadline-exceeded"
    http_status = 504


class Internal(TripSyncError):
    """トランザクション失敗などの想定外エラー"""

    code = "internal"
    http_status = 500
