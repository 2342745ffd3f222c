"""Worker OIDC 認証のユニットテスト

verify_worker_token Depends 関数が正しく動作することを検証する。
google.oauth2.id_token.verify_oauth2_token をモックして、
実際のトークン発行なしにテストする。
"""

from __future__ import annotations

import os
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from tripsync.entrypoints.api.app import app
from tripsync.entrypoints.api.deps import get_event_bus, get_sweeper
from tripsync.services import CleanupSweeper, EventBus


@pytest.fixture(autouse=True)
def stub_services():
    """認証を通過した後のハンドラが Firestore に触れないよう差し替える"""
    bus = MagicMock(spec=EventBus)
    bus.publish.return_value = 0
    app.dependency_overrides[get_event_bus] = lambda: bus
    app.dependency_overrides[get_sweeper] = lambda: MagicMock(spec=CleanupSweeper)
    yield
    app.dependency_overrides.clear()


# ── 有効なトークンを持つクライアントのヘルパー ─────────────────────────────────

_VALID_EMAIL = "worker@example.iam.gserviceaccount.com"
_VALID_TOKEN = "valid.oidc.token"
_VALID_HEADERS = {"Authorization": f"Bearer {_VALID_TOKEN}"}
_EVENT = {"kind": "trip.deleted", "params": {"tripId": "T1"}}


def _mock_verify(token, request, audience):  # noqa: ARG001
    """google.oauth2.id_token.verify_oauth2_token の正常系モック"""
    return {"email": _VALID_EMAIL, "sub": "12345"}


def _env_without(*keys: str) -> dict:
    return {k: v for k, v in os.environ.items() if k not in keys}


# ── テストケース ─────────────────────────────────────────────────────────────


def test_no_auth_header_returns_401():
    with patch.dict(
        "os.environ",
        {**_env_without("LOCAL_MODE"), "WORKER_SERVICE_ACCOUNT_EMAIL": _VALID_EMAIL},
        clear=True,
    ):
        client = TestClient(app, raise_server_exceptions=False)
        response = client.post("/worker/events", json=_EVENT)
    assert response.status_code == 401
    assert response.json()["code"] == "unauthenticated"


def test_invalid_token_returns_401():
    def _raise(token, request, audience):  # noqa: ARG001
        raise ValueError("invalid token")

    with (
        patch.dict(
            "os.environ",
            {
                **_env_without("LOCAL_MODE"),
                "WORKER_SERVICE_ACCOUNT_EMAIL": _VALID_EMAIL,
            },
            clear=True,
        ),
        patch(
            "tripsync.entrypoints.api.worker_auth.id_token.verify_oauth2_token", _raise
        ),
    ):
        client = TestClient(app, raise_server_exceptions=False)
        response = client.post(
            "/worker/events",
            headers={"Authorization": "Bearer bad.token"},
            json=_EVENT,
        )
    assert response.status_code == 401


def test_email_mismatch_returns_401():
    """有効なトークンでも email が一致しない場合は 401 を返す"""

    def _wrong_email(token, request, audience):  # noqa: ARG001
        return {"email": "attacker@evil.iam.gserviceaccount.com"}

    with (
        patch.dict(
            "os.environ",
            {
                **_env_without("LOCAL_MODE"),
                "WORKER_SERVICE_ACCOUNT_EMAIL": _VALID_EMAIL,
            },
            clear=True,
        ),
        patch(
            "tripsync.entrypoints.api.worker_auth.id_token.verify_oauth2_token",
            _wrong_email,
        ),
    ):
        client = TestClient(app, raise_server_exceptions=False)
        response = client.post("/worker/events", headers=_VALID_HEADERS, json=_EVENT)
    assert response.status_code == 401


def test_valid_token_accepted():
    with (
        patch.dict(
            "os.environ",
            {
                **_env_without("LOCAL_MODE"),
                "WORKER_SERVICE_ACCOUNT_EMAIL": _VALID_EMAIL,
            },
            clear=True,
        ),
        patch(
            "tripsync.entrypoints.api.worker_auth.id_token.verify_oauth2_token",
            _mock_verify,
        ),
    ):
        client = TestClient(app, raise_server_exceptions=False)
        response = client.post("/worker/events", headers=_VALID_HEADERS, json=_EVENT)
    assert response.status_code == 200


def test_local_mode_skips_verification():
    """LOCAL_MODE=true のときはトークンなしでもリクエストを通す"""
    with patch.dict(
        "os.environ",
        {"LOCAL_MODE": "true", "WORKER_SERVICE_ACCOUNT_EMAIL": _VALID_EMAIL},
    ):
        client = TestClient(app, raise_server_exceptions=False)
        response = client.post("/worker/events", json=_EVENT)
    assert response.status_code == 200


def test_sweep_endpoint_also_protected():
    with patch.dict(
        "os.environ",
        {**_env_without("LOCAL_MODE"), "WORKER_SERVICE_ACCOUNT_EMAIL": _VALID_EMAIL},
        clear=True,
    ):
        client = TestClient(app, raise_server_exceptions=False)
        response = client.post("/worker/sweep-orphaned-keys", json={})
    assert response.status_code == 401


def test_missing_env_var_returns_401():
    """WORKER_SERVICE_ACCOUNT_EMAIL 未設定時は fail-closed で 401 を返す"""
    with patch.dict(
        "os.environ",
        _env_without("WORKER_SERVICE_ACCOUNT_EMAIL", "LOCAL_MODE"),
        clear=True,
    ):
        client = TestClient(app, raise_server_exceptions=False)
        response = client.post("/worker/events", headers=_VALID_HEADERS, json=_EVENT)
    assert response.status_code == 401
