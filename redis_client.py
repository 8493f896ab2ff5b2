"""
redis_client.py — Optional shared Redis connection for Travel Notes.

Consumers:
  - cache.py  (suggestion cache, ownership cache)
  - auth.py   (login lockout, per-user generation rate limit)

If REDIS_URL is unset or the server does not answer a PING, get_redis()
returns None and every consumer keeps its state in process memory instead.
That is fine for a single worker; with several workers each one then holds
its own copy of the caches and limits.
"""

import logging
import os
from urllib.parse import urlparse, urlunparse

import redis

logger = logging.getLogger(__name__)

_redis_client: redis.Redis | None = None
_redis_checked = False


def get_redis() -> redis.Redis | None:
    """Connect on first use, then return the same client (or None) forever."""
    global _redis_client, _redis_checked

    if _redis_checked:
        return _redis_client
    _redis_checked = True

    url = os.getenv('REDIS_URL', '').strip()
    if not url:
        logger.info('REDIS_URL not set — caches and rate limiters are per-process')
        return None

    try:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=3,
        )
        client.ping()
        logger.info('Redis connected: %s', _redact_url(url))
        _redis_client = client
    except redis.RedisError as exc:
        logger.warning('Redis unavailable (%s) — falling back to in-memory stores', exc)
        _redis_client = None

    return _redis_client


def _redact_url(url: str) -> str:
    """Hide the password part of a redis:// URL for logging."""
    parsed = urlparse(url)
    if not parsed.password:
        return url
    netloc = f'{parsed.username or ""}:***@{parsed.hostname}'
    if parsed.port:
        netloc += f':{parsed.port}'
    return urlunparse(parsed._replace(netloc=netloc))
