"""操作境界のロギング

各 API 操作の開始・成功・失敗を構造化ログとして出力する。
業務ロジックの中にログ出力を散在させないため、ルートから operation() で囲んで使う。

使い方:
    with operation("sendFriendRequest", uid, to_email=email) as result:
        response = friend_service.send_friend_request(uid, email)
        result["already"] = response.already
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from tripsync.domain.errors import TripSyncError

logger = logging.getLogger("tripsync.operations")


def fields(**kwargs: Any) -> dict:
    """logger の extra 引数に渡す構造化フィールドを組み立てる"""
    return {"extra_fields": kwargs}


@contextmanager
def operation(name: str, uid: str | None, **context: Any) -> Iterator[dict]:
    """操作の開始・成功・失敗をログ出力するコンテキストマネージャ

    yield した dict に詰めた値は成功ログに付与される。
    例外はログ出力後にそのまま再送出する。
    """
    base = {"function": name, "user_id": uid, **context}
    logger.info("Function called: %s", name, extra=fields(**base))
    result: dict = {}
    try:
        yield result
    except TripSyncError as e:
        # 呼び出し側の入力・権限に起因するエラーはスタックトレース不要
        logger.warning(
            "Function failed: %s",
            name,
            extra=fields(**base, status="error", error_code=e.code, error=e.message),
        )
        raise
    except Exception:
        logger.exception(
            "Function failed: %s", name, extra=fields(**base, status="error")
        )
        raise
    logger.info(
        "Function succeeded: %s",
        name,
        extra=fields(**base, status="success", **result),
    )
