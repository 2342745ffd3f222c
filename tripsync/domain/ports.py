"""Ports - 外部サービス・ストアのインターフェース定義（ABC）

各 Port は外部サービスとの契約を定義する。
実装クラス（Adapter）はこれらの ABC を継承し、全ての抽象メソッドを実装する。
サービス層は Port のみに依存し、テストではインメモリ実装やモックに差し替える。
"""

from __future__ import annotations

import datetime
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TypeVar

from tripsync.domain.models import (
    ActivityEntry,
    FriendRequest,
    IdentityRecord,
    Invite,
    MulticastReport,
    NotificationToken,
    PushNotification,
    RateLimitCounter,
    Trip,
    UserSummary,
)

T = TypeVar("T")


class IdentityProvider(ABC):
    """認証プロバイダ（Firebase Auth 等）"""

    @abstractmethod
    def get_user(self, uid: str) -> IdentityRecord:
        """uid のユーザー情報を取得する"""
        pass


class UserRepository(ABC):
    """ユーザープロファイルの永続化（users/{uid}）"""

    @abstractmethod
    def upsert_profile(self, identity: IdentityRecord) -> bool:
        """プロファイルを作成または更新する。新規作成した場合 True を返す

        既存プロファイルの createdAt は変更しない。
        """
        pass

    @abstractmethod
    def find_uid_by_email(self, email: str) -> str | None:
        """正規化済み email でユーザーを検索。存在しない場合は None"""
        pass

    @abstractmethod
    def search_by_email_prefix(self, prefix: str, limit: int) -> list[UserSummary]:
        """email の前方一致検索"""
        pass

    @abstractmethod
    def search_by_name_prefix(self, prefix: str, limit: int) -> list[UserSummary]:
        """表示名（小文字）の前方一致検索"""
        pass

    @abstractmethod
    def get_display_name(self, uid: str) -> str | None:
        """表示名を取得。未設定・未存在の場合は None"""
        pass


class NotificationRepository(ABC):
    """通知設定と配信先トークンの永続化（users/{uid}, users/{uid}/tokens）"""

    @abstractmethod
    def get_prefs(self, uid: str) -> dict | None:
        """notificationPrefs フィールドを取得。未設定の場合は None"""
        pass

    @abstractmethod
    def list_tokens(self, uid: str) -> list[NotificationToken]:
        """ユーザーの配信先トークン一覧"""
        pass

    @abstractmethod
    def save_token(self, uid: str, token: str, platform: str) -> str:
        """配信先トークンを登録。ドキュメントIDを返す"""
        pass

    @abstractmethod
    def delete_token(self, uid: str, token_id: str) -> None:
        """配信先トークンを削除"""
        pass


class FriendRepository(ABC):
    """フレンド申請・フレンド関係の永続化"""

    @abstractmethod
    def find_pending_request(self, from_uid: str, to_uid: str) -> FriendRequest | None:
        """(from, to) の pending 申請を取得"""
        pass

    @abstractmethod
    def create_request(self, from_uid: str, to_uid: str) -> str:
        """pending 申請を作成。IDを返す"""
        pass

    @abstractmethod
    def get_request(self, request_id: str) -> FriendRequest | None:
        """申請を取得。存在しない場合は None"""
        pass

    @abstractmethod
    def reject_request(self, request_id: str) -> None:
        """申請を rejected にする"""
        pass

    @abstractmethod
    def accept_request(self, request: FriendRequest) -> None:
        """双方向のフレンド関係作成と accepted 更新を1回の一括書き込みで行う"""
        pass


class RateLimitStore(ABC):
    """レート制限カウンターの永続化（rateLimits/{uid}_{operation}）"""

    @abstractmethod
    def get(self, key: str) -> RateLimitCounter | None:
        pass

    @abstractmethod
    def start_window(self, key: str, now_ms: int) -> None:
        """count=1, windowStart=now でカウンターを書き直す"""
        pass

    @abstractmethod
    def increment(self, key: str, now_ms: int) -> None:
        """count を 1 増やす"""
        pass


class MembershipTransaction(ABC):
    """メンバー追加トランザクション内の読み書き

    読み取りは全て書き込みより前に行うこと（Firestore の制約）。
    書き込みはコミット時にまとめて適用される。
    """

    @abstractmethod
    def get_trip(self, trip_id: str) -> Trip | None:
        pass

    @abstractmethod
    def get_invite(self, trip_id: str, invite_id: str) -> Invite | None:
        pass

    @abstractmethod
    def is_encryption_enabled(self, trip_id: str) -> bool:
        """encryptionKeys/metadata が存在し enabled == True か"""
        pass

    @abstractmethod
    def encryption_key_exists(self, trip_id: str, uid: str) -> bool:
        pass

    @abstractmethod
    def update_membership(
        self,
        trip_id: str,
        members: dict[str, bool],
        roles: dict[str, str],
        updated_by: str,
    ) -> None:
        pass

    @abstractmethod
    def create_encryption_key(self, trip_id: str, uid: str, shared_by: str) -> None:
        """pending=True の暗号鍵プレースホルダを作成"""
        pass

    @abstractmethod
    def append_activity(self, trip_id: str, entry: ActivityEntry) -> None:
        pass

    @abstractmethod
    def mark_invite_accepted(self, trip_id: str, invite_id: str, uid: str) -> None:
        pass


class TripRepository(ABC):
    """旅行・招待の永続化（trips/{tripId}, trips/{tripId}/invites）"""

    @abstractmethod
    def get_trip(self, trip_id: str) -> Trip | None:
        pass

    @abstractmethod
    def run_membership_transaction(
        self, body: Callable[[MembershipTransaction], T]
    ) -> T:
        """body を競合検出付きトランザクションで実行する

        競合時は body 全体を新しい読み取りからやり直す。
        リトライ上限に達した場合は Internal を送出する。
        """
        pass

    @abstractmethod
    def create_invite(
        self,
        trip_id: str,
        *,
        email: str,
        token: str,
        role: str,
        invited_by: str,
        expires_at: datetime.datetime,
        to_uid: str | None,
    ) -> str:
        """pending の招待を作成。IDを返す"""
        pass

    @abstractmethod
    def find_invite_by_token(self, trip_id: str, token: str) -> Invite | None:
        pass

    @abstractmethod
    def mark_invite_expired(self, trip_id: str, invite_id: str) -> None:
        pass


class CleanupStore(ABC):
    """カスケード削除用のストア操作"""

    @abstractmethod
    def list_document_ids(
        self, collection_path: tuple[str, ...], limit: int | None = None
    ) -> list[str]:
        """コレクション内のドキュメントIDを返す（limit 指定時は最大 limit 件）"""
        pass

    @abstractmethod
    def delete_documents(
        self, collection_path: tuple[str, ...], doc_ids: list[str]
    ) -> None:
        """1バッチで削除する（呼び出し側が件数上限を守る）"""
        pass

    @abstractmethod
    def list_trip_ids_with_encryption_keys(self) -> list[str]:
        """encryptionKeys サブコレクションを持つ旅行IDの一覧"""
        pass

    @abstractmethod
    def trip_exists(self, trip_id: str) -> bool:
        pass


class PushSender(ABC):
    """プッシュ配信サービス（Firebase Cloud Messaging 等）"""

    @abstractmethod
    def send_multicast(
        self,
        tokens: list[str],
        notification: PushNotification,
        data: dict[str, str],
    ) -> MulticastReport:
        """複数トークンへ1リクエストで送信し、トークンごとの結果を返す"""
        pass
