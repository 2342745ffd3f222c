"""Firestore Repository Adapter

domain.ports の各リポジトリの Firestore 実装。

Firestore コレクション構造:
  users/{uid}                                   ← プロファイル・通知設定
  users/{uid}/friends/{friendUid}               ← フレンド関係（双方向に1件ずつ）
  users/{uid}/tokens/{tokenId}                  ← FCM 配信先トークン
  friendRequests/{requestId}                    ← フレンド申請
  rateLimits/{uid}_{operation}                  ← レート制限カウンター
  trips/{tripId}                                ← 旅行（members / roles）
  trips/{tripId}/invites/{inviteId}             ← メール招待
  trips/{tripId}/activities/{activityId}        ← アクティビティログ
  trips/{tripId}/encryptionKeys/metadata        ← 暗号化設定
  trips/{tripId}/encryptionKeys/{uid}           ← メンバーごとの暗号鍵レコード
"""

from __future__ import annotations

import datetime
import hashlib
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from google.api_core.exceptions import GoogleAPICallError
from google.cloud import firestore

from tripsync.domain.errors import Internal
from tripsync.domain.models import (
    ActivityEntry,
    FriendRequest,
    FriendRequestStatus,
    IdentityRecord,
    Invite,
    InviteStatus,
    NotificationToken,
    RateLimitCounter,
    Trip,
    UserSummary,
)
from tripsync.domain.ports import (
    CleanupStore,
    FriendRepository,
    MembershipTransaction,
    NotificationRepository,
    RateLimitStore,
    TripRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_USERS = "users"
_FRIENDS = "friends"
_TOKENS = "tokens"
_FRIEND_REQUESTS = "friendRequests"
_RATE_LIMITS = "rateLimits"
_TRIPS = "trips"
_INVITES = "invites"
_ACTIVITIES = "activities"
_ENCRYPTION_KEYS = "encryptionKeys"
_ENCRYPTION_METADATA = "metadata"

# 前方一致検索の上限文字
_PREFIX_END = "\uf8ff"

_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.UTC)


def token_key(token: str) -> str:
    """トークンの SHA256 ハッシュ先頭 16 文字を返す（users/{uid}/tokens のドキュメントID）"""
    return hashlib.sha256(token.encode()).hexdigest()[:16]


def _trip_from_snapshot(snap: Any) -> Trip | None:
    if not snap.exists:
        return None
    d = snap.to_dict() or {}
    return Trip(
        id=snap.id,
        members=dict(d.get("members") or {}),
        roles=dict(d.get("roles") or {}),
        name=d.get("name") or "",
        owner_id=d.get("ownerId"),
    )


def _invite_from_dict(invite_id: str, trip_id: str, d: dict) -> Invite:
    try:
        status = InviteStatus(d.get("status", "pending"))
    except ValueError:
        status = InviteStatus.EXPIRED
    return Invite(
        id=invite_id,
        trip_id=trip_id,
        email=d.get("email") or "",
        token=d.get("token") or "",
        role=d.get("role") or "",
        status=status,
        invited_by=d.get("invitedBy") or "",
        # expiresAt 欠落は期限切れとして扱う
        expires_at=d.get("expiresAt") or _EPOCH,
        to_uid=d.get("toUid"),
        accepted_by=d.get("acceptedBy"),
    )


class FirestoreUserRepository(UserRepository):
    """
    Firestore を使った UserRepository 実装。

    users/{uid} のプロファイルを管理する。
    """

    def __init__(self, db: firestore.Client) -> None:
        """
        Args:
            db: 初期化済みの Firestore クライアント
        """
        self._db = db

    def upsert_profile(self, identity: IdentityRecord) -> bool:
        """プロファイルを作成または更新（createdAt は初回のみ書き込む）"""
        ref = self._db.collection(_USERS).document(identity.uid)
        base = {
            "email": identity.email.strip().lower() if identity.email else None,
            "displayName": identity.display_name or None,
            "displayNameLower": (
                identity.display_name.lower() if identity.display_name else None
            ),
            "photoURL": identity.photo_url or None,
        }

        @firestore.transactional
        def _upsert(tx: firestore.Transaction) -> bool:
            snap = ref.get(transaction=tx)
            if not snap.exists:
                tx.set(ref, {**base, "createdAt": firestore.SERVER_TIMESTAMP})
                return True
            tx.set(ref, base, merge=True)
            return False

        created = _upsert(self._db.transaction())
        logger.info("Upserted profile: uid=%s, created=%s", identity.uid, created)
        return created

    def find_uid_by_email(self, email: str) -> str | None:
        snaps = (
            self._db.collection(_USERS).where("email", "==", email).limit(1).stream()
        )
        for snap in snaps:
            return snap.id
        return None

    def search_by_email_prefix(self, prefix: str, limit: int) -> list[UserSummary]:
        return self._prefix_query("email", prefix, limit)

    def search_by_name_prefix(self, prefix: str, limit: int) -> list[UserSummary]:
        return self._prefix_query("displayNameLower", prefix, limit)

    def get_display_name(self, uid: str) -> str | None:
        snap = self._db.collection(_USERS).document(uid).get()
        if not snap.exists:
            return None
        return (snap.to_dict() or {}).get("displayName") or None

    def _prefix_query(self, field: str, prefix: str, limit: int) -> list[UserSummary]:
        snaps = (
            self._db.collection(_USERS)
            .where(field, ">=", prefix)
            .where(field, "<=", prefix + _PREFIX_END)
            .limit(limit)
            .stream()
        )
        return [
            UserSummary(
                uid=snap.id,
                email=d.get("email"),
                display_name=d.get("displayName"),
                photo_url=d.get("photoURL"),
            )
            for snap in snaps
            for d in (snap.to_dict() or {},)
        ]


class FirestoreNotificationRepository(NotificationRepository):
    """users/{uid}.notificationPrefs と users/{uid}/tokens を管理する"""

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def get_prefs(self, uid: str) -> dict | None:
        snap = self._db.collection(_USERS).document(uid).get()
        if not snap.exists:
            return None
        return (snap.to_dict() or {}).get("notificationPrefs")

    def list_tokens(self, uid: str) -> list[NotificationToken]:
        snaps = self._tokens(uid).stream()
        return [
            NotificationToken(
                id=snap.id,
                token=d.get("token") or "",
                platform=d.get("platform") or "",
            )
            for snap in snaps
            for d in (snap.to_dict() or {},)
        ]

    def save_token(self, uid: str, token: str, platform: str) -> str:
        token_id = token_key(token)
        self._tokens(uid).document(token_id).set(
            {
                "token": token,
                "platform": platform,
                "createdAt": firestore.SERVER_TIMESTAMP,
            },
            merge=True,
        )
        logger.info("Saved notification token: uid=%s, token_id=%s", uid, token_id)
        return token_id

    def delete_token(self, uid: str, token_id: str) -> None:
        self._tokens(uid).document(token_id).delete()
        logger.info("Deleted notification token: uid=%s, token_id=%s", uid, token_id)

    def _tokens(self, uid: str) -> Any:
        return self._db.collection(_USERS).document(uid).collection(_TOKENS)


class FirestoreFriendRepository(FriendRepository):
    """friendRequests と users/{uid}/friends を管理する"""

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def find_pending_request(self, from_uid: str, to_uid: str) -> FriendRequest | None:
        snaps = (
            self._db.collection(_FRIEND_REQUESTS)
            .where("fromUid", "==", from_uid)
            .where("toUid", "==", to_uid)
            .where("status", "==", FriendRequestStatus.PENDING.value)
            .limit(1)
            .stream()
        )
        for snap in snaps:
            return self._to_request(snap.id, snap.to_dict() or {})
        return None

    def create_request(self, from_uid: str, to_uid: str) -> str:
        ref = self._db.collection(_FRIEND_REQUESTS).add(
            {
                "fromUid": from_uid,
                "toUid": to_uid,
                "status": FriendRequestStatus.PENDING.value,
                "createdAt": firestore.SERVER_TIMESTAMP,
            }
        )[1]
        logger.info("Created friend request: request_id=%s", ref.id)
        return ref.id

    def get_request(self, request_id: str) -> FriendRequest | None:
        snap = self._db.collection(_FRIEND_REQUESTS).document(request_id).get()
        if not snap.exists:
            return None
        return self._to_request(snap.id, snap.to_dict() or {})

    def reject_request(self, request_id: str) -> None:
        self._db.collection(_FRIEND_REQUESTS).document(request_id).update(
            {
                "status": FriendRequestStatus.REJECTED.value,
                "decidedAt": firestore.SERVER_TIMESTAMP,
            }
        )
        logger.info("Rejected friend request: request_id=%s", request_id)

    def accept_request(self, request: FriendRequest) -> None:
        """フレンド関係2件と申請の accepted 更新を1バッチでコミット"""
        users = self._db.collection(_USERS)
        batch = self._db.batch()
        batch.set(
            users.document(request.from_uid)
            .collection(_FRIENDS)
            .document(request.to_uid),
            {"createdAt": firestore.SERVER_TIMESTAMP},
        )
        batch.set(
            users.document(request.to_uid)
            .collection(_FRIENDS)
            .document(request.from_uid),
            {"createdAt": firestore.SERVER_TIMESTAMP},
        )
        batch.update(
            self._db.collection(_FRIEND_REQUESTS).document(request.id),
            {
                "status": FriendRequestStatus.ACCEPTED.value,
                "decidedAt": firestore.SERVER_TIMESTAMP,
            },
        )
        batch.commit()
        logger.info(
            "Accepted friend request: request_id=%s, from=%s, to=%s",
            request.id,
            request.from_uid,
            request.to_uid,
        )

    @staticmethod
    def _to_request(request_id: str, d: dict) -> FriendRequest:
        return FriendRequest(
            id=request_id,
            from_uid=d.get("fromUid", ""),
            to_uid=d.get("toUid", ""),
            status=FriendRequestStatus(d.get("status", "pending")),
        )


class FirestoreRateLimitStore(RateLimitStore):
    """rateLimits/{uid}_{operation} のカウンター（トランザクションは使わない）"""

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def get(self, key: str) -> RateLimitCounter | None:
        snap = self._db.collection(_RATE_LIMITS).document(key).get()
        if not snap.exists:
            return None
        d = snap.to_dict() or {}
        return RateLimitCounter(
            count=int(d.get("count", 0)),
            window_start_ms=int(d.get("windowStart", 0)),
        )

    def start_window(self, key: str, now_ms: int) -> None:
        self._db.collection(_RATE_LIMITS).document(key).set(
            {"count": 1, "windowStart": now_ms, "lastRequest": now_ms}
        )

    def increment(self, key: str, now_ms: int) -> None:
        self._db.collection(_RATE_LIMITS).document(key).update(
            {"count": firestore.Increment(1), "lastRequest": now_ms}
        )


class FirestoreMembershipTransaction(MembershipTransaction):
    """
    firestore.Transaction をラップした MembershipTransaction。

    読み取りは transaction 経由で行い、書き込みはコミット時にまとめて適用される。
    """

    def __init__(self, db: firestore.Client, transaction: firestore.Transaction) -> None:
        self._db = db
        self._tx = transaction

    def _trip_ref(self, trip_id: str) -> Any:
        return self._db.collection(_TRIPS).document(trip_id)

    def get_trip(self, trip_id: str) -> Trip | None:
        return _trip_from_snapshot(self._trip_ref(trip_id).get(transaction=self._tx))

    def get_invite(self, trip_id: str, invite_id: str) -> Invite | None:
        snap = (
            self._trip_ref(trip_id)
            .collection(_INVITES)
            .document(invite_id)
            .get(transaction=self._tx)
        )
        if not snap.exists:
            return None
        return _invite_from_dict(snap.id, trip_id, snap.to_dict() or {})

    def is_encryption_enabled(self, trip_id: str) -> bool:
        snap = (
            self._trip_ref(trip_id)
            .collection(_ENCRYPTION_KEYS)
            .document(_ENCRYPTION_METADATA)
            .get(transaction=self._tx)
        )
        return snap.exists and (snap.to_dict() or {}).get("enabled") is True

    def encryption_key_exists(self, trip_id: str, uid: str) -> bool:
        snap = (
            self._trip_ref(trip_id)
            .collection(_ENCRYPTION_KEYS)
            .document(uid)
            .get(transaction=self._tx)
        )
        return snap.exists

    def update_membership(
        self,
        trip_id: str,
        members: dict[str, bool],
        roles: dict[str, str],
        updated_by: str,
    ) -> None:
        self._tx.update(
            self._trip_ref(trip_id),
            {
                "members": members,
                "roles": roles,
                "membersUpdatedBy": updated_by,
                "updatedAt": firestore.SERVER_TIMESTAMP,
            },
        )

    def create_encryption_key(self, trip_id: str, uid: str, shared_by: str) -> None:
        self._tx.set(
            self._trip_ref(trip_id).collection(_ENCRYPTION_KEYS).document(uid),
            {
                "pending": True,
                "sharedBy": shared_by,
                "sharedAt": firestore.SERVER_TIMESTAMP,
            },
        )

    def append_activity(self, trip_id: str, entry: ActivityEntry) -> None:
        self._tx.set(
            self._trip_ref(trip_id).collection(_ACTIVITIES).document(),
            {
                "tripId": trip_id,
                "type": entry.type,
                "actorId": entry.actor_id,
                "targetUid": entry.target_uid,
                "message": entry.message,
                "createdAt": firestore.SERVER_TIMESTAMP,
            },
        )

    def mark_invite_accepted(self, trip_id: str, invite_id: str, uid: str) -> None:
        self._tx.update(
            self._trip_ref(trip_id).collection(_INVITES).document(invite_id),
            {
                "status": InviteStatus.ACCEPTED.value,
                "acceptedBy": uid,
                "acceptedAt": firestore.SERVER_TIMESTAMP,
            },
        )


class FirestoreTripRepository(TripRepository):
    """trips/{tripId} とその invites を管理する"""

    def __init__(self, db: firestore.Client, max_attempts: int = 5) -> None:
        self._db = db
        self._max_attempts = max_attempts

    def get_trip(self, trip_id: str) -> Trip | None:
        return _trip_from_snapshot(self._db.collection(_TRIPS).document(trip_id).get())

    def run_membership_transaction(
        self, body: Callable[[MembershipTransaction], T]
    ) -> T:
        @firestore.transactional
        def _run(tx: firestore.Transaction) -> T:
            return body(FirestoreMembershipTransaction(self._db, tx))

        try:
            return _run(self._db.transaction(max_attempts=self._max_attempts))
        except (ValueError, GoogleAPICallError) as e:
            # ValueError: 競合によるリトライ上限超過
            logger.exception("Membership transaction failed")
            raise Internal("Transaction failed.") from e

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
        ref = (
            self._db.collection(_TRIPS)
            .document(trip_id)
            .collection(_INVITES)
            .add(
                {
                    "type": "email",
                    "invitedBy": invited_by,
                    "toUid": to_uid,
                    "email": email,
                    "token": token,
                    "role": role,
                    "status": InviteStatus.PENDING.value,
                    "createdAt": firestore.SERVER_TIMESTAMP,
                    "expiresAt": expires_at,
                    "acceptedBy": None,
                }
            )[1]
        )
        logger.info("Created invite: trip_id=%s, invite_id=%s", trip_id, ref.id)
        return ref.id

    def find_invite_by_token(self, trip_id: str, token: str) -> Invite | None:
        snaps = (
            self._db.collection(_TRIPS)
            .document(trip_id)
            .collection(_INVITES)
            .where("token", "==", token)
            .limit(1)
            .stream()
        )
        for snap in snaps:
            return _invite_from_dict(snap.id, trip_id, snap.to_dict() or {})
        return None

    def mark_invite_expired(self, trip_id: str, invite_id: str) -> None:
        """pending の場合のみ expired に更新する"""
        ref = (
            self._db.collection(_TRIPS)
            .document(trip_id)
            .collection(_INVITES)
            .document(invite_id)
        )

        @firestore.transactional
        def _expire(tx: firestore.Transaction) -> bool:
            snap = ref.get(transaction=tx)
            if not snap.exists:
                return False
            if (snap.to_dict() or {}).get("status") != InviteStatus.PENDING.value:
                return False
            tx.update(ref, {"status": InviteStatus.EXPIRED.value})
            return True

        if _expire(self._db.transaction()):
            logger.info(
                "Marked invite expired: trip_id=%s, invite_id=%s", trip_id, invite_id
            )


class FirestoreCleanupStore(CleanupStore):
    """カスケード削除・孤立鍵掃除のためのコレクション操作"""

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def list_document_ids(
        self, collection_path: tuple[str, ...], limit: int | None = None
    ) -> list[str]:
        col = self._db.collection(*collection_path)
        if limit is None:
            # list_documents はサブコレクションのみを持つ（本体が無い）ドキュメントも返す
            return [ref.id for ref in col.list_documents()]
        return [snap.id for snap in col.limit(limit).stream()]

    def delete_documents(
        self, collection_path: tuple[str, ...], doc_ids: list[str]
    ) -> None:
        if not doc_ids:
            return
        col = self._db.collection(*collection_path)
        batch = self._db.batch()
        for doc_id in doc_ids:
            batch.delete(col.document(doc_id))
        batch.commit()
        logger.info(
            "Deleted documents: collection=%s, count=%d",
            "/".join(collection_path),
            len(doc_ids),
        )

    def list_trip_ids_with_encryption_keys(self) -> list[str]:
        trip_ids: dict[str, None] = {}
        for snap in self._db.collection_group(_ENCRYPTION_KEYS).stream():
            trip_ref = snap.reference.parent.parent
            if trip_ref is None or trip_ref.parent.id != _TRIPS:
                continue
            trip_ids[trip_ref.id] = None
        return list(trip_ids)

    def trip_exists(self, trip_id: str) -> bool:
        return self._db.collection(_TRIPS).document(trip_id).get().exists
