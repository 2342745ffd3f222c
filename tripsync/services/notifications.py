"""NotificationDispatcher - 通知設定に従ったプッシュ通知送信

ベストエフォート。このモジュールの失敗は呼び出し元に伝播させず、ログに残すだけ。

送信フロー:
  1. 通知設定を取得（取得失敗・未設定はすべて ON 扱い）
  2. 種別が OFF ならスキップ
  3. 配信先トークンを取得（0件ならスキップ）
  4. 全トークンへ1回のマルチキャスト送信
  5. 恒久的に無効と判定されたトークンを削除
"""

from __future__ import annotations

import logging

from tripsync.domain.models import (
    MulticastReport,
    NotificationPrefs,
    NotificationToken,
    PushNotification,
)
from tripsync.domain.ports import NotificationRepository, PushSender
from tripsync.observability import fields

logger = logging.getLogger(__name__)

CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"


class NotificationDispatcher:
    def __init__(self, repo: NotificationRepository, sender: PushSender) -> None:
        self._repo = repo
        self._sender = sender

    def dispatch(
        self, target_uid: str, notification: PushNotification, data: dict
    ) -> None:
        """
        target_uid の全端末にプッシュ通知を送る。例外は送出しない。

        Args:
            target_uid: 送信先ユーザー
            notification: タイトルと本文
            data: 付加データ。data["type"] が通知設定のカテゴリ判定に使われる
        """
        notification_type = data.get("type")
        try:
            prefs = self._load_prefs(target_uid)
            if not prefs.allows(notification_type):
                logger.debug(
                    "Notification disabled by prefs: uid=%s, type=%s",
                    target_uid,
                    notification_type,
                )
                return

            tokens = self._load_tokens(target_uid)
            if not tokens:
                logger.info(
                    "No notification tokens found for user",
                    extra=fields(uid=target_uid, type=notification_type),
                )
                return

            token_values = list(dict.fromkeys(t.token for t in tokens))
            report = self._sender.send_multicast(
                token_values, notification, self._stringify(data)
            )
            logger.info(
                "Notification sent",
                extra=fields(
                    uid=target_uid,
                    type=notification_type,
                    success_count=report.success_count,
                    failure_count=report.failure_count,
                ),
            )
            self._prune_invalid_tokens(target_uid, tokens, report)
        except Exception:
            logger.exception(
                "Error sending notification",
                extra=fields(uid=target_uid, type=notification_type),
            )

    def _load_prefs(self, uid: str) -> NotificationPrefs:
        try:
            return NotificationPrefs.from_dict(self._repo.get_prefs(uid))
        except Exception:
            logger.exception(
                "Error getting notification preferences", extra=fields(uid=uid)
            )
            return NotificationPrefs()

    def _load_tokens(self, uid: str) -> list[NotificationToken]:
        try:
            return [t for t in self._repo.list_tokens(uid) if t.token]
        except Exception:
            logger.exception("Error getting notification tokens", extra=fields(uid=uid))
            return []

    def _prune_invalid_tokens(
        self, uid: str, tokens: list[NotificationToken], report: MulticastReport
    ) -> None:
        invalid = {o.token for o in report.outcomes if o.permanently_invalid}
        if not invalid:
            return
        for token in tokens:
            if token.token not in invalid:
                continue
            try:
                self._repo.delete_token(uid, token.id)
                logger.info(
                    "Removed invalid notification token: uid=%s, token_id=%s",
                    uid,
                    token.id,
                )
            except Exception:
                logger.exception(
                    "Error deleting invalid token",
                    extra=fields(uid=uid, token_id=token.id),
                )

    @staticmethod
    def _stringify(data: dict) -> dict[str, str]:
        """FCM の data は文字列値のみ受け付ける"""
        payload = {str(k): str(v) for k, v in data.items() if v is not None}
        payload["click_action"] = CLICK_ACTION
        return payload
