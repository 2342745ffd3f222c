"""EventBus - ドキュメント変更イベントのハンドラ振り分け

イベントは at-least-once で配信される。ハンドラは重複配信に耐えること、
また異なるドキュメント間の順序を前提にしないこと。
1つのハンドラの失敗は他のハンドラの実行を妨げない。
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable

from tripsync.domain.models import DocumentEvent, EventKind
from tripsync.observability import fields

logger = logging.getLogger(__name__)

Handler = Callable[[DocumentEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[EventKind, list[Handler]] = defaultdict(list)

    def subscribe(self, kind: EventKind, handler: Handler) -> None:
        self._handlers[kind].append(handler)

    def handlers_for(self, kind: EventKind) -> list[Handler]:
        return list(self._handlers.get(kind, []))

    def publish(self, event: DocumentEvent) -> int:
        """
        イベントを登録済みハンドラに配信する。

        Returns:
            正常終了したハンドラの数
        """
        handlers = self.handlers_for(event.kind)
        if not handlers:
            logger.debug("No handlers for event: kind=%s", event.kind.value)
            return 0

        succeeded = 0
        for handler in handlers:
            try:
                handler(event)
                succeeded += 1
            except Exception:
                logger.exception(
                    "Event handler failed: kind=%s",
                    event.kind.value,
                    extra=fields(
                        event_kind=event.kind.value,
                        event_id=event.event_id,
                        handler=getattr(handler, "__qualname__", repr(handler)),
                        **event.params,
                    ),
                )
        return succeeded
