"""
Keyed TTL store.

Backs three concerns:
  - Task / issue list-view cache (short TTL, invalidated on writes)
  - Export job registry (``export:<job_id>``, EXPORT_JOB_TTL)
  - Pub/sub transport for ``event_bus``

Uses Redis when REDIS_URL points at a Redis server, otherwise a process
local dict for development/testing.
"""

import json
import logging
import os
import threading
import time
from collections import deque

from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

# ── In-memory backend ────────────────────────────────────────────────────

_memory_store: dict = {}  # key → (value_json, expire_ts)
_memory_lock = threading.Lock()

PUBLISH_LOG_SIZE = 500


class _MemoryBackend:
    """Dict cache for dev/testing. Keeps the last PUBLISH_LOG_SIZE published messages."""

    def __init__(self, publish_log_size=PUBLISH_LOG_SIZE):
        self.published: deque[tuple[str, str]] = deque(maxlen=publish_log_size)

    def get(self, key):
        with _memory_lock:
            entry = _memory_store.get(key)
            if entry is None:
                return None
            val, expires = entry
            if expires and time.time() > expires:
                _memory_store.pop(key, None)
                return None
            return val

    def setex(self, key, ttl_seconds, value):
        with _memory_lock:
            _memory_store[key] = (value, time.time() + ttl_seconds)

    def delete(self, *keys):
        with _memory_lock:
            for k in keys:
                _memory_store.pop(k, None)

    def keys(self, pattern):
        """Glob matching for 'prefix*' patterns."""
        with _memory_lock:
            if pattern.endswith("*"):
                prefix = pattern[:-1]
                return [k for k in _memory_store if k.startswith(prefix)]
            return [k for k in _memory_store if k == pattern]

    def publish(self, channel, message):
        self.published.append((channel, message))
        return 0

    def flushdb(self):
        with _memory_lock:
            _memory_store.clear()
        self.published.clear()

    def ping(self):
        return True


# ── Singleton backend ────────────────────────────────────────────────────

_backend = None


def _config(key, default=None):
    if has_app_context():
        return current_app.config.get(key, default)
    return os.getenv(key, default)


def _get_backend():
    """Lazy-initialise Redis or fall back to in-memory."""
    global _backend
    if _backend is not None:
        return _backend

    redis_url = _config("REDIS_URL")
    if redis_url and not redis_url.startswith("memory://"):
        try:
            import redis as _redis
            timeout = float(_config("EVENT_PUBLISH_TIMEOUT", 2))
            _backend = _redis.from_url(
                redis_url, decode_responses=True,
                socket_timeout=timeout, socket_connect_timeout=timeout,
            )
            _backend.ping()
            logger.info("Cache: using Redis at %s", redis_url.split("@")[-1])
        except Exception as exc:
            logger.warning("Redis unavailable (%s) — falling back to memory cache", exc)
            _backend = _MemoryBackend()
    else:
        _backend = _MemoryBackend()
    return _backend


def reset_backend():
    """Drop the backend singleton (re-resolved on next use)."""
    global _backend
    if isinstance(_backend, _MemoryBackend):
        _backend.flushdb()
    _backend = None


# ── Default TTLs ─────────────────────────────────────────────────────────

DEFAULT_TTL = 300


# ── Key builders ─────────────────────────────────────────────────────────

def view_key(kind, project_id, variant=""):
    return f"view:{kind}:{project_id}:{variant}"


# ── Public API ───────────────────────────────────────────────────────────


def get_cached(key, ttl=DEFAULT_TTL, loader=None):
    """Cache-aside.  If *loader* is provided, it's called on miss
    and the result is cached."""
    be = _get_backend()
    raw = be.get(key)
    if raw is not None:
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Discarding undecodable cache entry %s", key)
    if loader is None:
        return None
    value = loader()
    if value is not None:
        be.setex(key, ttl, json.dumps(value, default=str))
    return value


def set_cached(key, value, ttl=DEFAULT_TTL):
    _get_backend().setex(key, ttl, json.dumps(value, default=str))


def delete_cached(key):
    _get_backend().delete(key)


def invalidate_views(kind, project_id):
    """Drop every cached list view of *kind* ("tasks", "issues") for a project."""
    be = _get_backend()
    keys = be.keys(f"view:{kind}:{project_id}:*")
    if keys:
        be.delete(*keys)
    logger.debug("Invalidated %d %s view(s) for project %s", len(keys), kind, project_id)


def publish(channel, message):
    """Publish a raw string on *channel*; returns the receiver count."""
    return _get_backend().publish(channel, message)


def published_messages(channel=None):
    """Messages recorded by the memory backend (empty list on Redis)."""
    be = _get_backend()
    if not isinstance(be, _MemoryBackend):
        return []
    return [m for c, m in be.published if channel is None or c == channel]


def health_check():
    """Return cache backend status."""
    try:
        be = _get_backend()
        be.ping()
        backend_type = "redis" if not isinstance(be, _MemoryBackend) else "memory"
        return {"status": "ok", "backend": backend_type}
    except Exception as exc:
        return {"status": "error", "detail": str(exc)}
