"""UserService - プロファイルの同期とユーザー検索"""

from __future__ import annotations

import logging

from tripsync.domain.errors import InvalidArgument
from tripsync.domain.models import UserSummary
from tripsync.domain.ports import IdentityProvider, UserRepository

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10
MIN_SEARCH_LENGTH = 2


class UserService:
    def __init__(self, identity: IdentityProvider, users: UserRepository) -> None:
        self._identity = identity
        self._users = users

    def ensure_user_profile(self, uid: str) -> bool:
        """
        認証プロバイダの情報で users/{uid} を作成・更新する（冪等）。

        Returns:
            新規作成した場合 True
        """
        identity = self._identity.get_user(uid)
        created = self._users.upsert_profile(identity)
        if created:
            logger.info("User profile created: uid=%s", uid)
        return created

    def search_users(self, uid: str, search_term: object) -> list[UserSummary]:
        """
        email → 表示名の順に前方一致で検索する（自分自身は除外、最大10件）。

        Raises:
            InvalidArgument: 検索語が2文字未満
        """
        term = str(search_term or "").strip().lower()
        if len(term) < MIN_SEARCH_LENGTH:
            raise InvalidArgument("Search term must be at least 2 characters.")

        found: dict[str, UserSummary] = {}
        for user in self._users.search_by_email_prefix(term, SEARCH_LIMIT):
            if user.uid != uid and user.email:
                found[user.uid] = user

        if len(found) < SEARCH_LIMIT:
            for user in self._users.search_by_name_prefix(term, SEARCH_LIMIT):
                if len(found) >= SEARCH_LIMIT:
                    break
                if user.uid != uid and user.uid not in found:
                    found[user.uid] = user

        return list(found.values())[:SEARCH_LIMIT]
