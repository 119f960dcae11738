from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Protocol, Tuple

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], float]


class RateLimiter(Protocol):
    def allow(self, key: str) -> bool:
        ...


class FixedWindowRateLimiter:
    """
    At most `limit` calls per key in each window of `window_seconds`.

    Expired windows are pruned on access; nothing runs in the background, so a
    fake clock makes the limiter fully deterministic in tests.
    """

    def __init__(self, limit: int, window_seconds: float, clock: Clock = time.monotonic) -> None:
        if limit < 0 or window_seconds <= 0:
            raise ValueError("limit must be >= 0 and window_seconds > 0")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        expired = [k for k, (start, _) in self._windows.items() if now - start >= self.window_seconds]
        for key in expired:
            del self._windows[key]

    def allow(self, key: str) -> bool:
        with self._lock:
            now = self._clock()
            self._prune(now)
            start, count = self._windows.get(key, (now, 0))
            if count >= self.limit:
                LOGGER.warning("Rate limit reached for %s (%d per %ss)", key, self.limit, self.window_seconds)
                return False
            self._windows[key] = (start, count + 1)
            return True

    def __len__(self) -> int:
        return len(self._windows)
