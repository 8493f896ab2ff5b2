"""
rate_limiter.py — Rolling-window admission budget for outbound API calls.

Advisory and non-blocking: callers ask can_admit() before an outbound call
and record_admission() when they actually make it.  A denied caller skips the
call instead of waiting.

Redis path:  sorted set  {key}  (score = timestamp), shared by every worker.
Fallback:    in-memory deque per worker, used when Redis is absent or errors.
"""

import logging
import threading
import time
import uuid
from collections import deque
from typing import Callable

logger = logging.getLogger(__name__)


class RateLimiter:

    def __init__(self, max_requests: int, window_seconds: float,
                 clock: Callable[[], float] = time.time,
                 redis_client=None, key: str = 'ratelimit:pexels'):
        self.max_requests   = max_requests
        self.window_seconds = window_seconds
        self.key            = key
        self._clock         = clock
        self._redis         = redis_client
        self._timestamps: deque[float] = deque()
        self._lock = threading.Lock()

    # ── Redis ────────────────────────────────────────────────────────────────

    def _redis_count(self, now: float) -> int | None:
        if self._redis is None:
            return None
        try:
            pipe = self._redis.pipeline()
            pipe.zremrangebyscore(self.key, '-inf', now - self.window_seconds)
            pipe.zcard(self.key)
            pipe.expire(self.key, int(self.window_seconds) + 1)
            _, count, _ = pipe.execute()
            return count
        except Exception as exc:
            logger.warning('Redis rate-limit check error for %s: %s — falling back', self.key, exc)
            return None

    def _redis_record(self, now: float) -> bool:
        if self._redis is None:
            return False
        try:
            pipe = self._redis.pipeline()
            pipe.zremrangebyscore(self.key, '-inf', now - self.window_seconds)
            pipe.zadd(self.key, {f'{now}:{uuid.uuid4().hex[:8]}': now})
            # Keep only the newest max_requests members.
            pipe.zremrangebyrank(self.key, 0, -(self.max_requests + 1))
            pipe.expire(self.key, int(self.window_seconds) + 1)
            pipe.execute()
            return True
        except Exception as exc:
            logger.warning('Redis rate-limit record error for %s: %s — falling back', self.key, exc)
            return False

    # ── In-memory ────────────────────────────────────────────────────────────

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def _local_count(self, now: float) -> int:
        with self._lock:
            self._prune(now)
            return len(self._timestamps)

    # ── Public API ───────────────────────────────────────────────────────────

    def can_admit(self) -> bool:
        return self.remaining() > 0

    def record_admission(self) -> None:
        now = self._clock()
        if self._redis_record(now):
            return
        with self._lock:
            self._prune(now)
            self._timestamps.append(now)
            # The window never holds more than max_requests entries.
            while len(self._timestamps) > self.max_requests:
                self._timestamps.popleft()

    def remaining(self) -> int:
        now = self._clock()
        count = self._redis_count(now)
        if count is None:
            count = self._local_count(now)
        return max(self.max_requests - count, 0)
