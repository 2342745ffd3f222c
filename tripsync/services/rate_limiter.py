"""RateLimiter - (uid, 操作) 単位の固定ウィンドウ・レート制限"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from tripsync.domain.errors import ResourceExhausted
from tripsync.domain.models import RateLimitRule
from tripsync.domain.ports import RateLimitStore

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """
    rateLimits/{uid}_{operation} のカウンターで操作回数を制限する。

    読み取り→書き込みはトランザクションで囲まない。
    同一キーへの同時リクエストは、同時実行数の分だけ上限を超えうる。
    """

    def __init__(
        self,
        store: RateLimitStore,
        rules: dict[str, RateLimitRule],
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        """
        Args:
            store: カウンターの永続化先
            rules: 操作名 → ルール
            clock: 現在時刻（エポックミリ秒）を返す関数。テスト用に差し替え可能
        """
        self._store = store
        self._rules = rules
        self._clock = clock

    def check_and_consume(self, uid: str, operation: str) -> None:
        """
        1回分を消費する。上限に達している場合は ResourceExhausted を送出。

        ルールが未定義の操作は常に許可する。
        """
        rule = self._rules.get(operation)
        if rule is None:
            return

        key = f"{uid}_{operation}"
        now = self._clock()
        counter = self._store.get(key)

        if counter is None or now - counter.window_start_ms >= rule.window_ms:
            self._store.start_window(key, now)
            return

        if counter.count >= rule.max_requests:
            logger.warning(
                "Rate limit exceeded: uid=%s, operation=%s, count=%d",
                uid,
                operation,
                counter.count,
            )
            raise ResourceExhausted(rule.max_requests, rule.window_ms)

        self._store.increment(key, now)
