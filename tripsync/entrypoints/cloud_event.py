"""Firestore ドキュメントトリガー エントリーポイント（CloudEvent）

Eventarc が配信する Firestore CloudEvent（protobuf の DocumentEventData）を
DocumentEvent に変換してイベントバスへ配信する。

デプロイ例:
    gcloud functions deploy tripsync-on-document \\
        --gen2 \\
        --runtime=python313 \\
        --region=us-central1 \\
        --source=. \\
        --entry-point=on_document_event \\
        --trigger-event-filters=type=google.cloud.firestore.document.v1.created \\
        --trigger-event-filters=database='(default)' \\
        --trigger-event-filters-path-pattern=document='trips/{tripId}/chat/{messageId}'

トリガーごとに同じ entry-point を登録する（created / written / deleted）。
対応しないパスのイベントは受理して無視する。
"""

from __future__ import annotations

import datetime
import logging

import functions_framework
from google.events.cloud import firestore as firestore_events

from tripsync.domain.models import DocumentEvent, EventKind
from tripsync.entrypoints.api.deps import get_services
from tripsync.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

_TYPE_PREFIX = "google.cloud.firestore.document.v1."

# (イベント種別, パスパターン) → EventKind。"{name}" はパスパラメータ
_ROUTES: list[tuple[str, tuple[str, ...], EventKind]] = [
    ("created", ("trips", "{tripId}", "chat", "{messageId}"), EventKind.CHAT_MESSAGE_CREATED),
    (
        "created",
        ("trips", "{tripId}", "itinerary", "{itemId}", "comments", "{commentId}"),
        EventKind.COMMENT_CREATED,
    ),
    ("created", ("friendRequests", "{requestId}"), EventKind.FRIEND_REQUEST_CREATED),
    ("created", ("trips", "{tripId}", "invites", "{inviteId}"), EventKind.TRIP_INVITE_CREATED),
    ("written", ("trips", "{tripId}"), EventKind.TRIP_WRITTEN),
    ("deleted", ("trips", "{tripId}"), EventKind.TRIP_DELETED),
]


# ── Value デコード ───────────────────────────────────────────────────────────


def decode_value(value):
    """Firestore の Value（raw protobuf）を Python の値に変換する"""
    kind = value.WhichOneof("value_type")
    if kind is None or kind == "null_value":
        return None
    if kind == "timestamp_value":
        return value.timestamp_value.ToDatetime(tzinfo=datetime.timezone.utc)
    if kind == "geo_point_value":
        return {
            "latitude": value.geo_point_value.latitude,
            "longitude": value.geo_point_value.longitude,
        }
    if kind == "array_value":
        return [decode_value(v) for v in value.array_value.values]
    if kind == "map_value":
        return decode_fields(value.map_value.fields)
    return getattr(value, kind)


def decode_fields(fields) -> dict:
    return {name: decode_value(v) for name, v in fields.items()}


def _relative_path(document_name: str) -> tuple[str, ...]:
    # projects/{p}/databases/{db}/documents/trips/T1 → ("trips", "T1")
    _, _, path = document_name.partition("/documents/")
    return tuple(p for p in path.split("/") if p)


def _match(pattern: tuple[str, ...], path: tuple[str, ...]) -> dict[str, str] | None:
    if len(pattern) != len(path):
        return None
    params: dict[str, str] = {}
    for expected, actual in zip(pattern, path):
        if expected.startswith("{"):
            params[expected.strip("{}")] = actual
        elif expected != actual:
            return None
    return params


def to_document_event(
    event_type: str, event_id: str, data: bytes
) -> DocumentEvent | None:
    """
    CloudEvent の type / id / data から DocumentEvent を組み立てる。

    Returns:
        対応するトリガーがない場合は None
    """
    if not event_type.startswith(_TYPE_PREFIX):
        return None
    action = event_type[len(_TYPE_PREFIX):]

    payload = firestore_events.DocumentEventData()
    payload._pb.ParseFromString(data)
    raw = payload._pb

    before = decode_fields(raw.old_value.fields) if raw.HasField("old_value") else None
    after = decode_fields(raw.value.fields) if raw.HasField("value") else None
    name = raw.value.name if raw.HasField("value") else raw.old_value.name
    path = _relative_path(name)

    for route_action, pattern, kind in _ROUTES:
        if route_action != action:
            continue
        params = _match(pattern, path)
        if params is not None:
            return DocumentEvent(
                kind=kind, params=params, before=before, after=after, event_id=event_id
            )
    return None


@functions_framework.cloud_event
def on_document_event(cloud_event) -> None:
    """Eventarc から呼ばれる Firestore トリガーのエントリーポイント"""
    event = to_document_event(cloud_event["type"], cloud_event["id"], cloud_event.data)
    if event is None:
        logger.info(
            "Ignoring unrouted document event: type=%s, id=%s",
            cloud_event["type"],
            cloud_event["id"],
        )
        return

    handled = get_services().bus.publish(event)
    logger.info(
        "Document event handled: kind=%s, event_id=%s, handlers=%d",
        event.kind.value,
        event.event_id,
        handled,
    )
