"""E2E テスト用フィクスチャ

Firestore Emulator に接続し、実際の Repository を使ってテストする。
Firebase Auth は dependency_overrides でバイパスし、FCM 送信はモックする。

前提: FIRESTORE_EMULATOR_HOST 環境変数が設定されていること
  例: FIRESTORE_EMULATOR_HOST=localhost:8080 pytest tests/e2e/ -m e2e -v
"""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from google.cloud import firestore

from tripsync.config import AppConfig
from tripsync.domain.models import DeliveryOutcome, IdentityRecord, MulticastReport
from tripsync.domain.ports import IdentityProvider, PushSender
from tripsync.entrypoints.api import deps
from tripsync.entrypoints.api.app import app
from tripsync.entrypoints.api.deps import AuthInfo
from tripsync.entrypoints.factory import build_services

# テスト用固定値
OWNER_UID = "e2e-owner"
GUEST_UID = "e2e-guest"


@pytest.fixture(scope="session")
def firestore_client():
    """Firestore Emulator に接続するクライアント（セッション共有）。

    FIRESTORE_EMULATOR_HOST が未設定の場合は localhost:8080 をデフォルトとして使用する。
    エミュレーターが起動していない場合はテストが接続エラーで失敗する。
    """
    host = os.environ.get("FIRESTORE_EMULATOR_HOST", "localhost:8080")
    os.environ["FIRESTORE_EMULATOR_HOST"] = host
    return firestore.Client(project="test-project")


@pytest.fixture(autouse=True)
def _cleanup_firestore(request, firestore_client):
    """各テスト後に Emulator のデータをクリーンアップ（e2e マーク付きのみ）"""
    yield
    if not request.node.get_closest_marker("e2e"):
        return
    for collection_name in ["trips", "users", "friendRequests", "rateLimits"]:
        for doc_ref in firestore_client.collection(collection_name).list_documents():
            _delete_document_recursive(firestore_client, doc_ref)


def _delete_document_recursive(client: firestore.Client, doc_ref) -> None:
    """ドキュメントとサブコレクションを再帰的に削除"""
    for subcol in doc_ref.collections():
        for sub_ref in subcol.list_documents():
            _delete_document_recursive(client, sub_ref)
    doc_ref.delete()


@pytest.fixture
def mock_sender():
    sender = MagicMock(spec=PushSender)
    sender.send_multicast.side_effect = lambda tokens, notification, data: (
        MulticastReport(outcomes=[DeliveryOutcome(token=t, success=True) for t in tokens])
    )
    return sender


@pytest.fixture
def e2e_services(firestore_client, mock_sender):
    identity = MagicMock(spec=IdentityProvider)
    identity.get_user.side_effect = lambda uid: IdentityRecord(
        uid=uid, email=f"{uid}@example.com", display_name=uid
    )
    return build_services(
        firestore_client, AppConfig(project_id="test-project"), identity, mock_sender
    )


class E2EClient:
    """ログインユーザーを切り替えられる TestClient ラッパー"""

    def __init__(self, client: TestClient) -> None:
        self.client = client
        self.uid = OWNER_UID

    def login(self, uid: str) -> "E2EClient":
        self.uid = uid
        return self

    def post(self, url: str, json: dict | None = None):
        return self.client.post(url, json=json)


@pytest.fixture
def e2e_client(e2e_services):
    """認証バイパス + 実 Firestore の TestClient（初期ユーザーは OWNER_UID）"""
    with TestClient(app) as c:
        wrapper = E2EClient(c)
        app.dependency_overrides[deps.get_services] = lambda: e2e_services
        app.dependency_overrides[deps.get_auth_info] = lambda: AuthInfo(
            uid=wrapper.uid, email=f"{wrapper.uid}@example.com", display_name=""
        )
        yield wrapper

    app.dependency_overrides.clear()


@pytest.fixture
def trip(firestore_client):
    """OWNER_UID がオーナーの旅行を作成して ID を返す"""
    ref = firestore_client.collection("trips").document("e2e-trip")
    ref.set(
        {
            "name": "Kyoto",
            "ownerId": OWNER_UID,
            "members": {OWNER_UID: True},
            "roles": {OWNER_UID: "owner"},
        }
    )
    return ref.id
