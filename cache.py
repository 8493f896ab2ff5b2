"""
cache.py — Time-boxed key/value stores shared across requests.

TTLCache holds JSON-serialisable values for a fixed time-to-live.  With a
Redis client it stores entries under '<namespace>:<key>' with SETEX and lets
Redis expire them; without one it keeps (timestamp, value) pairs in a dict
guarded by a lock, treats an entry as valid only while now - ts < ttl, and
deletes expired entries when they are read.  put() also sweeps the dict once
it grows past sweep_threshold so abandoned keys do not accumulate.

Instances are created once per process in app.py and handed to request
handlers through dependencies.py.  Tests build their own with a fake clock.
"""

import json
import logging
import threading
import time
from typing import Any, Callable

import redis

logger = logging.getLogger(__name__)

_MISSING = object()


class TTLCache:

    def __init__(self, ttl_seconds: float, namespace: str = 'cache',
                 redis_client: redis.Redis | None = None,
                 clock: Callable[[], float] = time.time,
                 sweep_threshold: int = 1000):
        self.ttl_seconds     = ttl_seconds
        self.namespace       = namespace
        self._redis          = redis_client
        self._clock          = clock
        self._sweep_threshold = sweep_threshold
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def _redis_key(self, key: str) -> str:
        return f'{self.namespace}:{key}'

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for key, or default if absent or expired."""
        if self._redis is not None:
            try:
                raw = self._redis.get(self._redis_key(key))
                return json.loads(raw) if raw is not None else default
            except redis.RedisError as exc:
                logger.warning('Redis %s GET error: %s — trying memory', self.namespace, exc)

        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            created_at, value = entry
            if now - created_at >= self.ttl_seconds:
                del self._entries[key]
                return default
            return value

    def put(self, key: str, value: Any) -> None:
        if self._redis is not None:
            try:
                self._redis.setex(self._redis_key(key), int(self.ttl_seconds), json.dumps(value))
                return
            except redis.RedisError as exc:
                logger.warning('Redis %s SET error: %s — falling back to memory', self.namespace, exc)

        now = self._clock()
        with self._lock:
            self._entries[key] = (now, value)
            if len(self._entries) > self._sweep_threshold:
                self._evict_expired(now)

    def invalidate(self, key: str) -> None:
        if self._redis is not None:
            try:
                self._redis.delete(self._redis_key(key))
            except redis.RedisError as exc:
                logger.warning('Redis %s DEL error: %s', self.namespace, exc)
        with self._lock:
            self._entries.pop(key, None)

    def evict_expired(self) -> int:
        """Drop every expired in-memory entry; returns how many were removed."""
        with self._lock:
            return self._evict_expired(self._clock())

    def _evict_expired(self, now: float) -> int:
        expired = [k for k, (ts, _) in self._entries.items() if now - ts >= self.ttl_seconds]
        for k in expired:
            del self._entries[k]
        if expired:
            logger.info('Evicted %d expired %s entr%s', len(expired), self.namespace,
                        'y' if len(expired) == 1 else 'ies')
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SuggestionCache(TTLCache):
    """Generated suggestion lists keyed by note and requesting user."""

    def __init__(self, ttl_seconds: float, **kwargs):
        super().__init__(ttl_seconds, namespace='suggestions', **kwargs)

    @staticmethod
    def key_for(note_id: str, user_id: str) -> str:
        return f'{note_id}:{user_id}'

    def get_suggestions(self, note_id: str, user_id: str) -> list[dict] | None:
        return self.get(self.key_for(note_id, user_id))

    def put_suggestions(self, note_id: str, user_id: str, suggestions: list[dict]) -> None:
        self.put(self.key_for(note_id, user_id), suggestions)


class OwnershipCache(TTLCache):
    """Boolean access decisions keyed by user and note."""

    def __init__(self, ttl_seconds: float, **kwargs):
        super().__init__(ttl_seconds, namespace='ownership', **kwargs)

    @staticmethod
    def key_for(user_id: str, note_id: str) -> str:
        return f'{user_id}:{note_id}'

    def get_access(self, user_id: str, note_id: str) -> bool | None:
        value = self.get(self.key_for(user_id, note_id), _MISSING)
        return None if value is _MISSING else bool(value)

    def put_access(self, user_id: str, note_id: str, has_access: bool) -> None:
        self.put(self.key_for(user_id, note_id), bool(has_access))

    def invalidate_access(self, user_id: str, note_id: str) -> None:
        self.invalidate(self.key_for(user_id, note_id))
