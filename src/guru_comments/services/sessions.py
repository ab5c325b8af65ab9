"""Session records kept in the key-value store."""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass

from guru_comments.services.kv import KVStore, KVStoreError

logger = logging.getLogger(__name__)

SESSION_PREFIX = "session:"
DEFAULT_SESSION_TTL_SECONDS = 7 * 24 * 60 * 60


@dataclass(frozen=True)
class IssuedSession:
    session_id: str
    expires_at: float


def generate_session_id(now: float | None = None) -> str:
    """Return a time-prefixed random session identifier."""
    stamp = format(int((now if now is not None else time.time()) * 1000), "x")
    return f"{stamp}-{secrets.token_hex(8)}"


class SessionStore:
    """Map opaque session ids to user ids with expiry."""

    def __init__(
        self,
        kv: KVStore,
        ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._kv = kv
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{SESSION_PREFIX}{session_id}"

    def create(self, user_id: str) -> IssuedSession:
        """Open a new session for ``user_id``. Store errors propagate."""
        now = self._clock()
        session_id = generate_session_id(now)
        self._kv.put(self._key(session_id), user_id, ttl_seconds=self.ttl_seconds)
        return IssuedSession(session_id=session_id, expires_at=now + self.ttl_seconds)

    def get_user_id(self, session_id: str) -> str | None:
        """Return the session's user id, or None if unknown, expired or unreadable."""
        try:
            return self._kv.get(self._key(session_id)) or None
        except KVStoreError as exc:
            logger.error("Error retrieving session: %s", exc)
            return None

    def delete(self, session_id: str) -> bool:
        try:
            self._kv.delete(self._key(session_id))
        except KVStoreError as exc:
            logger.error("Error deleting session: %s", exc)
            return False
        return True
