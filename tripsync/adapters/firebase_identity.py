"""Firebase Auth Identity Adapter"""

from __future__ import annotations

import logging

import firebase_admin.auth as fb_auth

from tripsync.domain.errors import NotFound
from tripsync.domain.models import IdentityRecord
from tripsync.domain.ports import IdentityProvider

logger = logging.getLogger(__name__)


class FirebaseIdentityProvider(IdentityProvider):
    """firebase_admin.auth のユーザーレコードを IdentityRecord に変換する"""

    def __init__(self, app=None) -> None:
        self._app = app

    def get_user(self, uid: str) -> IdentityRecord:
        try:
            user = fb_auth.get_user(uid, app=self._app)
        except fb_auth.UserNotFoundError as e:
            logger.warning("Auth user not found: uid=%s", uid)
            raise NotFound("User not found.") from e
        return IdentityRecord(
            uid=user.uid,
            email=user.email,
            display_name=user.display_name,
            photo_url=user.photo_url,
        )
