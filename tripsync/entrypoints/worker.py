"""ワーカー エントリーポイント（/worker/*）

Firestore トリガーの本番経路は entrypoints/cloud_event.py（Eventarc の CloudEvent を変換）。
ここでは変換済み JSON のイベント（運用スクリプトからの再送・ローカル検証用）と運用ジョブを受け取る。
Firebase Auth ではなく OIDC トークン検証（verify_worker_token）で保護される。

POST /worker/events
  {
    "kind": "chat_message.created",
    "params": {"tripId": "...", "messageId": "..."},
    "before": null,
    "after": {...},
    "eventId": "..."
  }
  → イベントバスに配信。ハンドラはベストエフォートのため受理後は常に 200。

POST /worker/sweep-orphaned-keys
  {"dryRun": false}
  → 旅行ドキュメントが存在しない encryptionKeys を削除
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status

from tripsync.domain.errors import InvalidArgument
from tripsync.domain.models import DocumentEvent, EventKind
from tripsync.entrypoints.api.deps import get_event_bus, get_sweeper
from tripsync.entrypoints.api.schemas import CamelModel
from tripsync.entrypoints.api.worker_auth import verify_worker_token
from tripsync.services import CleanupSweeper, EventBus

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_worker_token)])


class EventPayload(CamelModel):
    kind: str
    params: dict[str, str] = {}
    before: dict | None = None
    after: dict | None = None
    event_id: str = ""


class SweepRequest(CamelModel):
    dry_run: bool = False


class SweepResponse(CamelModel):
    checked_trips: int
    cleaned_keys: int
    orphaned_trip_ids: list[str]


def to_document_event(payload: EventPayload) -> DocumentEvent:
    try:
        kind = EventKind(payload.kind)
    except ValueError as e:
        raise InvalidArgument(f"Unknown event kind: {payload.kind}") from e
    return DocumentEvent(
        kind=kind,
        params=dict(payload.params),
        before=payload.before,
        after=payload.after,
        event_id=payload.event_id,
    )


@router.post("/events", status_code=status.HTTP_200_OK)
def handle_event(
    payload: EventPayload,
    bus: EventBus = Depends(get_event_bus),
) -> dict:
    event = to_document_event(payload)
    handled = bus.publish(event)
    logger.info(
        "Event handled: kind=%s, event_id=%s, handlers=%d",
        event.kind.value,
        event.event_id,
        handled,
    )
    return {"status": "ok", "handled": handled}


@router.post("/sweep-orphaned-keys", response_model=SweepResponse)
def sweep_orphaned_keys(
    body: SweepRequest | None = None,
    sweeper: CleanupSweeper = Depends(get_sweeper),
) -> SweepResponse:
    report = sweeper.sweep_orphaned_keys(dry_run=body.dry_run if body else False)
    return SweepResponse(
        checked_trips=report.checked_trips,
        cleaned_keys=report.cleaned_keys,
        orphaned_trip_ids=report.orphaned_trip_ids,
    )
