"""Factory - 依存性注入の組み立て

Firestore クライアントと Firebase Admin を初期化し、
全 Adapter と Service を組み立てて Services にまとめる。
イベントバスへのトリガー登録もここで行う。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import firebase_admin
from firebase_admin import credentials as fb_creds
from google.cloud import firestore

from tripsync.adapters.fcm_sender import FcmPushSender
from tripsync.adapters.firebase_identity import FirebaseIdentityProvider
from tripsync.adapters.firestore_repository import (
    FirestoreCleanupStore,
    FirestoreFriendRepository,
    FirestoreNotificationRepository,
    FirestoreRateLimitStore,
    FirestoreTripRepository,
    FirestoreUserRepository,
)
from tripsync.config import RATE_LIMITS, AppConfig
from tripsync.domain.ports import IdentityProvider, NotificationRepository, PushSender
from tripsync.services import (
    CleanupSweeper,
    EventBus,
    FriendService,
    InviteService,
    MembershipEngine,
    NotificationDispatcher,
    NotificationTriggers,
    RateLimiter,
    UserService,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Services:
    """組み立て済みのサービス一式"""

    config: AppConfig
    rate_limiter: RateLimiter
    users: UserService
    friends: FriendService
    membership: MembershipEngine
    invites: InviteService
    notification_repo: NotificationRepository
    dispatcher: NotificationDispatcher
    sweeper: CleanupSweeper
    bus: EventBus


def get_firebase_app(config: AppConfig) -> firebase_admin.App:
    """Firebase Admin を初期化する（二重初期化を防ぐ）"""
    try:
        return firebase_admin.get_app()
    except ValueError:
        cred = fb_creds.ApplicationDefault()
        app = firebase_admin.initialize_app(
            cred,
            options={"projectId": config.project_id} if config.project_id else {},
        )
        logger.info("Firebase Admin initialized project=%s", config.project_id)
        return app


def build_services(
    db: firestore.Client,
    config: AppConfig,
    identity: IdentityProvider,
    sender: PushSender,
) -> Services:
    """
    Firestore クライアントと外部サービスの Adapter から Services を組み立てる。

    Args:
        db: 初期化済みの Firestore クライアント
        config: アプリケーション設定
        identity: 認証プロバイダ
        sender: プッシュ送信 Adapter
    """
    user_repo = FirestoreUserRepository(db)
    trip_repo = FirestoreTripRepository(db, max_attempts=config.transaction_max_attempts)
    notification_repo = FirestoreNotificationRepository(db)

    membership = MembershipEngine(trip_repo)
    dispatcher = NotificationDispatcher(notification_repo, sender)
    sweeper = CleanupSweeper(FirestoreCleanupStore(db))

    bus = EventBus()
    NotificationTriggers(dispatcher, user_repo, trip_repo).register(bus)
    sweeper.register(bus)

    return Services(
        config=config,
        rate_limiter=RateLimiter(FirestoreRateLimitStore(db), RATE_LIMITS),
        users=UserService(identity, user_repo),
        friends=FriendService(user_repo, FirestoreFriendRepository(db)),
        membership=membership,
        invites=InviteService(
            trip_repo,
            user_repo,
            membership,
            default_ttl_hours=config.default_invite_ttl_hours,
            max_ttl_hours=config.max_invite_ttl_hours,
        ),
        notification_repo=notification_repo,
        dispatcher=dispatcher,
        sweeper=sweeper,
        bus=bus,
    )


def create_services(config: AppConfig | None = None) -> Services:
    """
    環境変数の設定から Services を生成する。

    Args:
        config: アプリケーション設定（None の場合は環境変数から読み込み）
    """
    if config is None:
        config = AppConfig.from_env()

    logger.info("Creating services: project_id=%s", config.project_id)
    app = get_firebase_app(config)
    db = firestore.Client(project=config.project_id or None)
    return build_services(
        db,
        config,
        identity=FirebaseIdentityProvider(app),
        sender=FcmPushSender(app),
    )
