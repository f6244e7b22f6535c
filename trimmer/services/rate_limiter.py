"""
Rate Limiter - Fixed-window submission limit per client address.

Owned by the application (app.state.rate_limiter) and pruned by the
periodic cleanup loop. Purely a gate: it never affects a task once created.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    count: int
    started_at: float


class RateLimiter:
    """Allow at most `max_requests` per `window_seconds` for each key."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock or time.monotonic
        self._windows: dict[str, _Window] = {}

    def check(self, key: str) -> bool:
        """Record a request for `key`. Returns False when the limit is exceeded."""
        now = self._clock()
        window = self._windows.get(key)

        if window is None or now - window.started_at > self.window_seconds:
            self._windows[key] = _Window(count=1, started_at=now)
            return True

        if window.count >= self.max_requests:
            logger.warning(f"Rate limit exceeded for {key} ({window.count} requests)")
            return False

        window.count += 1
        return True

    def prune(self) -> int:
        """Drop expired windows. Returns how many were removed."""
        now = self._clock()
        expired = [
            key
            for key, window in self._windows.items()
            if now - window.started_at > self.window_seconds
        ]
        for key in expired:
            del self._windows[key]
        return len(expired)

    def clear(self) -> None:
        self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)
