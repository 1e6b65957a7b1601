from __future__ import annotations

import logging
import os

from redis.exceptions import RedisError

from app.infra.redis_state import KeyValueStore

logger = logging.getLogger(__name__)

SESSION_STORAGE_KEY = os.getenv("TENANCY_SESSION_KEY", "bhoomi_current_account")
MAX_ACCOUNT_ID_LENGTH = 128


def _normalize_account_id(raw: object) -> str | None:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(raw, str):
        return None
    value = raw.strip()
    if not value or len(value) > MAX_ACCOUNT_ID_LENGTH:
        return None
    if any(ch.isspace() or not ch.isprintable() for ch in value):
        return None
    return value


class SessionPersistence:
    """Remembers the last selected account id in a key-value store.

    Reads never raise: a missing, unreadable or malformed value is reported as
    absent. Store failures on write are logged and dropped, since the pointer
    only affects which account a later sign-in starts from.
    """

    def __init__(self, store: KeyValueStore, *, scope: str | None = None) -> None:
        self._store = store
        self._scope = scope

    @property
    def key(self) -> str:
        if self._scope:
            return f"{SESSION_STORAGE_KEY}:{self._scope}"
        return SESSION_STORAGE_KEY

    def load(self) -> str | None:
        try:
            raw = self._store.get(self.key)
        except RedisError:
            logger.warning("could not read persisted account id from %s", self.key, exc_info=True)
            return None
        if raw is None:
            return None
        account_id = _normalize_account_id(raw)
        if account_id is None:
            logger.warning("ignoring corrupt persisted account id under %s", self.key)
        return account_id

    def save(self, account_id: str) -> None:
        try:
            self._store.set(self.key, account_id)
        except RedisError:
            logger.warning("could not persist account id %s to %s", account_id, self.key, exc_info=True)

    def clear(self) -> None:
        try:
            self._store.delete(self.key)
        except RedisError:
            logger.warning("could not clear persisted account id under %s", self.key, exc_info=True)
