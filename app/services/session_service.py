"""
app/services/session_service.py

Purpose: Session management

- In-memory map of user id -> current multi-step interaction
- Per-entry TTL so abandoned conversations do not pile up
- Injectable clock for deterministic tests

Sessions live in process memory only. A restart (or another instance
serving the next update) drops them and the user simply starts the
step again.
"""

import time
from typing import Callable, Dict, Optional, Tuple

from app.core.config import DEFAULT_SESSION_TTL_SECONDS
from app.core.logging import get_logger
from app.flow.states import Session

logger = get_logger(__name__)


class SessionStore:
    """
    get / set / clear for conversation sessions.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[Session, float]] = {}

    def get(self, user_id: str) -> Optional[Session]:
        entry = self._entries.get(user_id)
        if entry is None:
            return None

        session, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[user_id]
            logger.debug("Session expired", extra={"user_id": user_id, "action": session.action.value})
            return None

        return session

    def set(self, user_id: str, session: Session):
        now = self._clock()
        self._evict_expired(now)
        self._entries[user_id] = (session, now + self.ttl_seconds)
        logger.debug("Session saved", extra={"user_id": user_id, "action": session.action.value})

    def clear(self, user_id: str) -> bool:
        """
        Returns:
            True if a session was removed
        """
        return self._entries.pop(user_id, None) is not None

    def __len__(self) -> int:
        return len(self._entries)

    def _evict_expired(self, now: float):
        expired = [user_id for user_id, (_, expires_at) in self._entries.items() if now >= expires_at]
        for user_id in expired:
            del self._entries[user_id]
