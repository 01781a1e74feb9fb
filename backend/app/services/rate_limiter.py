"""In-memory sliding-window rate limiting for the auth endpoints."""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict

from app.core.exceptions import RateLimitExceededError


@dataclass
class _Bucket:
    timestamps: Deque[float]


class InMemoryRateLimiter:
    """Sliding-window rate limiter suitable for single-node deployments."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buckets: Dict[str, _Bucket] = {}

    def _prune(self, key: str, cutoff: float) -> _Bucket:
        bucket = self._buckets.setdefault(key, _Bucket(timestamps=deque()))
        while bucket.timestamps and bucket.timestamps[0] < cutoff:
            bucket.timestamps.popleft()
        return bucket

    def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        now = time.time()
        with self._lock:
            bucket = self._prune(key, now - window_seconds)
            if len(bucket.timestamps) >= limit:
                return False

            bucket.timestamps.append(now)
            return True

    def remaining(self, key: str, limit: int, window_seconds: int) -> int:
        with self._lock:
            bucket = self._prune(key, time.time() - window_seconds)
            return max(0, limit - len(bucket.timestamps))

    def retry_after(self, key: str, window_seconds: int) -> int:
        """Seconds until the oldest hit in the window expires."""
        now = time.time()
        with self._lock:
            bucket = self._prune(key, now - window_seconds)
            if not bucket.timestamps:
                return 0
            return max(1, math.ceil(bucket.timestamps[0] + window_seconds - now))

    def enforce(self, key: str, limit: int, window_seconds: int, message: str) -> None:
        if not self.allow(key, limit, window_seconds):
            raise RateLimitExceededError(message, retry_after=self.retry_after(key, window_seconds))

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


rate_limiter = InMemoryRateLimiter()
