"""
app/services/rate_limiter.py

Purpose: Sliding-window message counter

- Per-user list of recent message timestamps (ms)
- Pruned to the window on every access
- Pure in-memory bookkeeping; the ban escalation lives in moderation_service
"""

from dataclasses import dataclass
from typing import Dict, List

from app.core.config import DEFAULT_SPAM_LIMIT, DEFAULT_SPAM_WINDOW_MS

# Stale windows are swept every this many checks
EVICTION_INTERVAL = 256


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    count: int


class RateLimiter:
    """
    Counts messages per user inside a sliding window.
    """

    def __init__(self, limit: int = DEFAULT_SPAM_LIMIT, window_ms: int = DEFAULT_SPAM_WINDOW_MS):
        self.limit = limit
        self.window_ms = window_ms
        self._windows: Dict[str, List[int]] = {}
        self._checks = 0

    def check_and_record(self, user_id: str, now_ms: int) -> RateDecision:
        """
        Records a message at now_ms and reports whether the user is still
        within the limit. The (limit + 1)-th message inside one window is
        the first one that is not allowed.
        """
        window = [t for t in self._windows.get(user_id, []) if now_ms - t <= self.window_ms]
        window.append(now_ms)
        self._windows[user_id] = window

        self._checks += 1
        if self._checks % EVICTION_INTERVAL == 0:
            self._evict_stale(now_ms)

        return RateDecision(allowed=len(window) <= self.limit, count=len(window))

    def clear(self, user_id: str):
        self._windows.pop(user_id, None)

    def count(self, user_id: str) -> int:
        return len(self._windows.get(user_id, []))

    def _evict_stale(self, now_ms: int):
        stale = [
            user_id for user_id, window in self._windows.items()
            if not window or now_ms - window[-1] > self.window_ms
        ]
        for user_id in stale:
            del self._windows[user_id]

    def active_windows(self) -> Dict[str, int]:
        """Message counts per user with a non-empty window."""
        return {user_id: len(window) for user_id, window in self._windows.items() if window}
