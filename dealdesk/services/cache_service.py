"""
Transaction Cache Service

Read-side views of a transaction are cached under
``{TRANSACTION_CACHE_PREFIX}:{transaction_id}:{view}`` keys.
``get_transaction_by_id`` reads through the ``detail`` view; every
committed mutation calls ``invalidate_transaction`` so the next read
rebuilds from the database.

Backed by Redis when REDIS_URL points at a server; ``memory://`` (the
default, and what tests use) selects a process-local dict.
"""

import fnmatch
import json
import logging
import os
import time

import redis
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

TRANSACTION_TTL = 300   # 5 minutes


class _MemoryBackend:
    """Process-local stand-in for the subset of the Redis API used here."""

    def __init__(self):
        self._store = {}  # key → (value_json, expire_ts)

    def _alive(self, key):
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry[1] < time.time():
            del self._store[key]
            return None
        return entry

    def get(self, key):
        entry = self._alive(key)
        return entry[0] if entry else None

    def setex(self, key, ttl_seconds, value):
        self._store[key] = (value, time.time() + ttl_seconds)

    def delete(self, *keys):
        return sum(1 for k in keys if self._store.pop(k, None) is not None)

    def scan_iter(self, match="*"):
        return [k for k in list(self._store) if fnmatch.fnmatchcase(k, match) and self._alive(k)]

    def flushdb(self):
        self._store.clear()


_backend = None


def _setting(name, default):
    if has_app_context():
        return current_app.config.get(name, default)
    return os.getenv(name, default)


def _get_backend():
    """Build the backend on first use from REDIS_URL."""
    global _backend
    if _backend is None:
        url = _setting("REDIS_URL", "memory://") or "memory://"
        if url.startswith("memory://"):
            _backend = _MemoryBackend()
        else:
            _backend = redis.Redis.from_url(url, decode_responses=True)
            logger.info("Transaction cache on Redis at %s", url.rsplit("@", 1)[-1])
    return _backend


def reset_backend():
    """Forget the backend so the next call re-reads REDIS_URL."""
    global _backend
    _backend = None


def transaction_key(transaction_id, view):
    prefix = _setting("TRANSACTION_CACHE_PREFIX", "transaction")
    return f"{prefix}:{transaction_id}:{view}"


def set_transaction_view(transaction_id, view, value, ttl=TRANSACTION_TTL):
    """Store a JSON-serialisable view of a transaction."""
    _get_backend().setex(transaction_key(transaction_id, view), ttl, json.dumps(value, default=str))


def get_transaction_view(transaction_id, view):
    """Cached view, or None on a miss or an unreadable entry."""
    raw = _get_backend().get(transaction_key(transaction_id, view))
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None


def invalidate_transaction(transaction_id):
    """Drop every cached view of one transaction; returns the number removed.

    Backend errors propagate. Services call this after commit and log
    failures instead of failing the operation.
    """
    backend = _get_backend()
    keys = list(backend.scan_iter(match=transaction_key(transaction_id, "*")))
    if not keys:
        return 0
    backend.delete(*keys)
    logger.debug(
        "Invalidated %d cached views", len(keys),
        extra={"event_type": "cache.invalidated", "transaction_id": transaction_id},
    )
    return len(keys)


def clear_all():
    """Flush the whole cache database (tests)."""
    _get_backend().flushdb()
