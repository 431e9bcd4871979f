"""
In-process sliding window rate limiter keyed by client identifier.

Each key keeps the timestamps of its recent hits; a key is limited once the
number of hits inside the window reaches the limit. State lives in the
worker process, so limits apply per worker.
"""

from collections import deque
from threading import Lock
from typing import Deque, Dict, Tuple
import time


class SlidingWindowRateLimiter:
    """Counts hits per key over the trailing `window_seconds`."""

    def __init__(self, limit: int, window_seconds: int):
        self.limit = limit
        self.window_seconds = window_seconds
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = Lock()

    def _prune(self, key: str, now: float) -> Deque[float]:
        """Drop expired hits; keys left without hits are forgotten."""
        hits = self._hits.get(key, deque())
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if not hits:
            self._hits.pop(key, None)
        return hits

    def _record(self, key: str, hits: Deque[float], now: float) -> None:
        hits.append(now)
        self._hits[key] = hits

    def check(self, key: str) -> Tuple[bool, int, int]:
        """
        Inspect a key without recording a hit.

        Returns:
            Tuple of (is_allowed, remaining, retry_after_seconds)
        """
        now = time.time()
        with self._lock:
            hits = self._prune(key, now)
            if len(hits) >= self.limit:
                retry_after = int(hits[0] + self.window_seconds - now) + 1
                return False, 0, max(retry_after, 1)
            return True, self.limit - len(hits), 0

    def hit(self, key: str) -> None:
        now = time.time()
        with self._lock:
            self._record(key, self._prune(key, now), now)

    def is_allowed(self, key: str) -> Tuple[bool, int, int]:
        """Check a key and, when allowed, record the hit in the same step."""
        now = time.time()
        with self._lock:
            hits = self._prune(key, now)
            if len(hits) >= self.limit:
                retry_after = int(hits[0] + self.window_seconds - now) + 1
                return False, 0, max(retry_after, 1)
            self._record(key, hits, now)
            return True, self.limit - len(hits), 0

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
