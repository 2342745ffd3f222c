"""共通テストフィクスチャ

全テストから利用可能なインメモリリポジトリ・モック・サービスを提供。

モックの作成:
- MagicMock(spec=ABC) でABCのメソッドシグネチャを保持
- 状態遷移を検証したい Port は tests/fakes.py のインメモリ実装を使う
"""

import datetime
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from tests.fakes import (
    InMemoryCleanupStore,
    InMemoryFriendRepository,
    InMemoryNotificationRepository,
    InMemoryRateLimitStore,
    InMemoryTripRepository,
    InMemoryUserRepository,
)
from tripsync.domain.models import (
    DeliveryOutcome,
    IdentityRecord,
    MulticastReport,
)
from tripsync.config import RATE_LIMITS, AppConfig
from tripsync.domain.ports import IdentityProvider, PushSender
from tripsync.entrypoints.api.app import app
from tripsync.entrypoints.api.deps import AuthInfo, get_auth_info, get_services
from tripsync.entrypoints.factory import Services
from tripsync.services import (
    CleanupSweeper,
    EventBus,
    FriendService,
    InviteService,
    NotificationDispatcher,
    NotificationTriggers,
    RateLimiter,
    UserService,
)
from tripsync.services.membership import MembershipEngine

# ========== 固定時刻 ==========

NOW = datetime.datetime(2026, 5, 1, 12, 0, tzinfo=datetime.UTC)


@pytest.fixture
def now() -> datetime.datetime:
    return NOW


# ========== インメモリリポジトリ ==========


@pytest.fixture
def user_repo() -> InMemoryUserRepository:
    """alice / bob / carol が登録済みのユーザーリポジトリ"""
    repo = InMemoryUserRepository()
    repo.add_user("alice", "alice@example.com", "Alice")
    repo.add_user("bob", "bob@example.com", "Bob")
    repo.add_user("carol", "carol@example.com", "Carol")
    return repo


@pytest.fixture
def friend_repo() -> InMemoryFriendRepository:
    return InMemoryFriendRepository()


@pytest.fixture
def trip_repo() -> InMemoryTripRepository:
    """alice がオーナーの旅行 T1 を持つリポジトリ"""
    repo = InMemoryTripRepository()
    repo.add_trip("T1", {"alice": "owner"}, name="Kyoto")
    return repo


@pytest.fixture
def rate_limit_store() -> InMemoryRateLimitStore:
    return InMemoryRateLimitStore()


@pytest.fixture
def notification_repo() -> InMemoryNotificationRepository:
    return InMemoryNotificationRepository()


@pytest.fixture
def cleanup_store() -> InMemoryCleanupStore:
    return InMemoryCleanupStore()


@pytest.fixture
def engine(trip_repo) -> MembershipEngine:
    return MembershipEngine(trip_repo)


# ========== モックフィクスチャ ==========


@pytest.fixture
def mock_identity() -> MagicMock:
    """IdentityProvider のモック"""
    mock = MagicMock(spec=IdentityProvider)
    mock.get_user.side_effect = lambda uid: IdentityRecord(
        uid=uid,
        email=f"{uid}@Example.com",
        display_name=uid.capitalize(),
    )
    return mock


@pytest.fixture
def mock_sender() -> MagicMock:
    """PushSender のモック（全トークン送信成功）"""
    mock = MagicMock(spec=PushSender)
    mock.send_multicast.side_effect = lambda tokens, notification, data: (
        MulticastReport(
            outcomes=[DeliveryOutcome(token=t, success=True) for t in tokens]
        )
    )
    return mock


# ========== API クライアント ==========


@pytest.fixture
def services(
    user_repo,
    friend_repo,
    trip_repo,
    rate_limit_store,
    notification_repo,
    cleanup_store,
    engine,
    mock_identity,
    mock_sender,
) -> Services:
    """インメモリリポジトリで組み立てた Services"""
    dispatcher = NotificationDispatcher(notification_repo, mock_sender)
    sweeper = CleanupSweeper(cleanup_store)
    bus = EventBus()
    NotificationTriggers(dispatcher, user_repo, trip_repo).register(bus)
    sweeper.register(bus)
    return Services(
        config=AppConfig(),
        rate_limiter=RateLimiter(rate_limit_store, RATE_LIMITS),
        users=UserService(mock_identity, user_repo),
        friends=FriendService(user_repo, friend_repo),
        membership=engine,
        invites=InviteService(trip_repo, user_repo, engine),
        notification_repo=notification_repo,
        dispatcher=dispatcher,
        sweeper=sweeper,
        bus=bus,
    )


class ApiSession:
    """TestClient とログイン中ユーザーの切り替え"""

    def __init__(self, client: TestClient) -> None:
        self.client = client
        self.uid = "alice"

    def login(self, uid: str) -> "ApiSession":
        self.uid = uid
        return self

    def post(self, url: str, json: dict | None = None):
        return self.client.post(url, json=json)


@pytest.fixture
def api(services):
    """認証バイパス + インメモリ Services の API セッション（初期ユーザーは alice）"""
    with TestClient(app) as client:
        session = ApiSession(client)
        app.dependency_overrides[get_services] = lambda: services
        app.dependency_overrides[get_auth_info] = lambda: AuthInfo(
            uid=session.uid, email=f"{session.uid}@example.com", display_name=""
        )
        yield session
    app.dependency_overrides.clear()
