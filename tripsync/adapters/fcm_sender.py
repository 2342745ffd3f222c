"""FCM Push Sender Adapter

firebase_admin.messaging を使ったプッシュ通知送信。
モバイルアプリ（Android / iOS）の FCM 登録トークン宛てにマルチキャスト送信する。

恒久的に無効なトークン（アンインストール・再登録など）は
DeliveryOutcome.permanently_invalid=True として返し、呼び出し側で削除させる。
"""

from __future__ import annotations

import logging

from firebase_admin import exceptions as fb_exceptions
from firebase_admin import messaging

from tripsync.domain.models import DeliveryOutcome, MulticastReport, PushNotification
from tripsync.domain.ports import PushSender

logger = logging.getLogger(__name__)

# send_each_for_multicast の1回あたりのトークン上限
MAX_TOKENS_PER_CALL = 500


def is_permanently_invalid(exc: BaseException | None) -> bool:
    """トークン自体が無効で、再送しても成功しないエラーか"""
    if exc is None:
        return False
    if isinstance(exc, (messaging.UnregisteredError, messaging.SenderIdMismatchError)):
        return True
    if isinstance(exc, fb_exceptions.InvalidArgumentError):
        return "registration token" in str(exc).lower()
    return False


class FcmPushSender(PushSender):
    """
    firebase_admin.messaging を使った PushSender 実装。

    Firebase Admin は呼び出し前に初期化済みであること。
    """

    def __init__(self, app=None) -> None:
        """
        Args:
            app: 送信に使う firebase_admin.App（None の場合はデフォルトアプリ）
        """
        self._app = app

    def send_multicast(
        self,
        tokens: list[str],
        notification: PushNotification,
        data: dict[str, str],
    ) -> MulticastReport:
        outcomes: list[DeliveryOutcome] = []
        for start in range(0, len(tokens), MAX_TOKENS_PER_CALL):
            chunk = tokens[start : start + MAX_TOKENS_PER_CALL]
            message = messaging.MulticastMessage(
                tokens=chunk,
                notification=messaging.Notification(
                    title=notification.title,
                    body=notification.body,
                ),
                data=data,
                android=messaging.AndroidConfig(priority="high"),
                apns=messaging.APNSConfig(
                    payload=messaging.APNSPayload(aps=messaging.Aps(sound="default")),
                ),
            )
            batch = messaging.send_each_for_multicast(message, app=self._app)
            for token, response in zip(chunk, batch.responses):
                if response.success:
                    outcomes.append(DeliveryOutcome(token=token, success=True))
                    continue
                invalid = is_permanently_invalid(response.exception)
                if not invalid:
                    logger.warning("FCM delivery failed: %s", response.exception)
                outcomes.append(
                    DeliveryOutcome(
                        token=token,
                        success=False,
                        permanently_invalid=invalid,
                        error=str(response.exception or ""),
                    )
                )
        return MulticastReport(outcomes=outcomes)
