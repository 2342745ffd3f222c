"""FriendService - フレンド申請の状態遷移（pending → accepted / rejected）"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from tripsync.domain.errors import (
    FailedPrecondition,
    InvalidArgument,
    NotFound,
    PermissionDenied,
)
from tripsync.domain.models import FriendRequestStatus
from tripsync.domain.ports import FriendRepository, UserRepository

logger = logging.getLogger(__name__)

ACTIONS = ("accept", "reject")


def normalize_email(raw: object) -> str:
    """前後の空白を除去して小文字化する。文字列以外は空文字"""
    return raw.strip().lower() if isinstance(raw, str) else ""


@dataclass(frozen=True)
class SendResult:
    request_id: str | None
    already: bool = False


@dataclass(frozen=True)
class RespondResult:
    # 既に確定済みの申請に応答した場合のみ、その状態を返す
    status: str | None = None


class FriendService:
    def __init__(self, users: UserRepository, friends: FriendRepository) -> None:
        self._users = users
        self._friends = friends

    def send_friend_request(self, from_uid: str, to_email: object) -> SendResult:
        """
        email 宛てにフレンド申請を送る。

        同じ (from, to) の pending 申請が既にある場合は作成せず already=True を返す。

        Raises:
            InvalidArgument: email 未指定
            NotFound: 宛先ユーザーが存在しない
            FailedPrecondition: 自分自身への申請
        """
        email = normalize_email(to_email)
        if not email:
            raise InvalidArgument("toEmail required.")

        to_uid = self._users.find_uid_by_email(email)
        if to_uid is None:
            raise NotFound("User not found.")
        if to_uid == from_uid:
            raise FailedPrecondition("Can't friend yourself.")

        existing = self._friends.find_pending_request(from_uid, to_uid)
        if existing is not None:
            return SendResult(request_id=existing.id, already=True)

        request_id = self._friends.create_request(from_uid, to_uid)
        logger.info(
            "Friend request created: id=%s, from=%s, to=%s",
            request_id,
            from_uid,
            to_uid,
        )
        return SendResult(request_id=request_id)

    def respond_to_friend_request(
        self, uid: str, request_id: object, action: object
    ) -> RespondResult:
        """
        受信したフレンド申請を承認・拒否する。

        確定済み（accepted / rejected）の申請には何もせず現在の状態を返す。
        承認時は双方向のフレンド関係と状態更新を一括で書き込む。
        """
        if not request_id or not isinstance(request_id, str) or action not in ACTIONS:
            raise InvalidArgument("requestId and action required.")

        request = self._friends.get_request(request_id)
        if request is None:
            raise NotFound("Request not found.")
        if request.to_uid != uid:
            raise PermissionDenied("Not your request.")
        if request.status is not FriendRequestStatus.PENDING:
            return RespondResult(status=request.status.value)

        if action == "reject":
            self._friends.reject_request(request_id)
            logger.info("Friend request rejected: id=%s", request_id)
            return RespondResult()

        self._friends.accept_request(request)
        logger.info(
            "Friend request accepted: id=%s, from=%s, to=%s",
            request_id,
            request.from_uid,
            request.to_uid,
        )
        return RespondResult()
