"""CleanupSweeper - 旅行削除時のカスケード削除と孤立暗号鍵の掃除

旅行ドキュメントを削除してもサブコレクションは残るため、
trip.deleted イベントで配下のコレクションを順に削除する。
コレクションごとの失敗は独立して扱い、残りのコレクションの削除は続行する。
"""

from __future__ import annotations

import logging

from tripsync.domain.models import DocumentEvent, EventKind, SweepReport
from tripsync.domain.ports import CleanupStore
from tripsync.observability import fields
from tripsync.services.event_bus import EventBus

logger = logging.getLogger(__name__)

# Firestore の1バッチあたりの書き込み上限
BATCH_LIMIT = 500

_TRIPS = "trips"
_ENCRYPTION_KEYS = "encryptionKeys"
_ITINERARY = "itinerary"
_COMMENTS = "comments"
# itinerary 以外の配下コレクション（削除順）
_FLAT_COLLECTIONS = ("activities", "chat", "invites", "forecasts")


class CleanupSweeper:
    def __init__(self, store: CleanupStore, batch_size: int = BATCH_LIMIT) -> None:
        self._store = store
        self._batch_size = min(batch_size, BATCH_LIMIT)

    def register(self, bus: EventBus) -> None:
        bus.subscribe(EventKind.TRIP_DELETED, self.on_trip_deleted_event)

    def on_trip_deleted_event(self, event: DocumentEvent) -> None:
        trip_id = event.params.get("tripId")
        if not trip_id:
            logger.warning("trip.deleted event without tripId: event_id=%s", event.event_id)
            return
        self.on_trip_deleted(trip_id)

    def on_trip_deleted(self, trip_id: str) -> int:
        """
        旅行配下の全サブコレクションを削除する。

        Returns:
            削除したドキュメント数の合計
        """
        total = 0
        total += self._delete_collection_safely(
            trip_id, (_TRIPS, trip_id, _ENCRYPTION_KEYS)
        )
        total += self._delete_itinerary_safely(trip_id)
        for name in _FLAT_COLLECTIONS:
            total += self._delete_collection_safely(trip_id, (_TRIPS, trip_id, name))

        logger.info(
            "Cleaned up subcollections for deleted trip",
            extra=fields(trip_id=trip_id, deleted=total),
        )
        return total

    def sweep_orphaned_keys(self, dry_run: bool = False) -> SweepReport:
        """
        旅行ドキュメントが存在しない encryptionKeys を削除する。

        Args:
            dry_run: True の場合は検出のみで削除しない
        """
        trip_ids = self._store.list_trip_ids_with_encryption_keys()
        orphaned: list[str] = []
        cleaned = 0

        for trip_id in trip_ids:
            if self._store.trip_exists(trip_id):
                continue
            orphaned.append(trip_id)
            if dry_run:
                continue
            cleaned += self._delete_collection_safely(
                trip_id, (_TRIPS, trip_id, _ENCRYPTION_KEYS)
            )

        logger.info(
            "Orphaned key sweep finished",
            extra=fields(
                checked_trips=len(trip_ids),
                orphaned_trips=len(orphaned),
                cleaned_keys=cleaned,
                dry_run=dry_run,
            ),
        )
        return SweepReport(
            checked_trips=len(trip_ids),
            cleaned_keys=cleaned,
            orphaned_trip_ids=orphaned,
        )

    # ── 内部処理 ───────────────────────────────────────────────────────────

    def _delete_collection(self, path: tuple[str, ...]) -> int:
        deleted = 0
        while True:
            doc_ids = self._store.list_document_ids(path, limit=self._batch_size)
            if not doc_ids:
                return deleted
            self._store.delete_documents(path, doc_ids)
            deleted += len(doc_ids)

    def _delete_collection_safely(self, trip_id: str, path: tuple[str, ...]) -> int:
        try:
            return self._delete_collection(path)
        except Exception:
            logger.exception(
                "Failed to delete collection",
                extra=fields(trip_id=trip_id, collection="/".join(path)),
            )
            return 0

    def _delete_itinerary_safely(self, trip_id: str) -> int:
        itinerary = (_TRIPS, trip_id, _ITINERARY)
        try:
            item_ids = self._store.list_document_ids(itinerary)
        except Exception:
            logger.exception(
                "Failed to list itinerary items",
                extra=fields(trip_id=trip_id, collection="/".join(itinerary)),
            )
            item_ids = []

        deleted = 0
        for item_id in item_ids:
            deleted += self._delete_collection_safely(
                trip_id, itinerary + (item_id, _COMMENTS)
            )
        return deleted + self._delete_collection_safely(trip_id, itinerary)
