# local_explorer/api/cache.py
"""Cache-aside layer with interchangeable backends.

Backends only move opaque JSON strings around. ``QueryCache`` owns the
semantics: expiry, shape checking of payloads, and making sure no backend
failure ever reaches the caller.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import redis
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from local_explorer.api.db import CacheEntryRow
from local_explorer.api.errors import CacheError

logger = logging.getLogger(__name__)

Payload = List[Dict[str, Any]]


def normalize_query(query: str) -> str:
    return " ".join((query or "").split()).casefold()


def places_cache_key(query: str, limit: int, radii: Sequence[int]) -> str:
    """Key for resolved places; every parameter that changes the result is in it."""
    radius_part = "-".join(str(r) for r in radii)
    return f"places:v2:{normalize_query(query)}:{limit}:{radius_part}"


def items_cache_key(user_id: str, itinerary_id: str) -> str:
    return f"items:v1:{user_id}:{itinerary_id}"


class CacheBackend:
    """get / set / delete over raw string payloads."""

    name = "backend"

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, payload: str, ttl_seconds: int) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass


class MemoryCacheBackend(CacheBackend):
    """Process-local store, used when no Redis is configured."""

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    def get(self, key):
        entry = self._entries.get(key)
        if entry is None:
            return None
        payload, expires_at = entry
        if self.clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return payload

    def set(self, key, payload, ttl_seconds):
        self._entries[key] = (payload, self.clock() + ttl_seconds)

    def delete(self, key):
        self._entries.pop(key, None)

    def close(self):
        self._entries.clear()


class RedisCacheBackend(CacheBackend):
    """Redis keys with a relative TTL (SETEX)."""

    name = "redis"

    def __init__(self, client: redis.Redis, prefix: str = "cache:"):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, timeout: float = 2.0) -> "RedisCacheBackend":
        client = redis.Redis.from_url(
            url, socket_timeout=timeout, socket_connect_timeout=timeout
        )
        return cls(client)

    def get(self, key):
        try:
            raw = self.client.get(self.prefix + key)
        except redis.RedisError as e:
            raise CacheError(f"Redis GET failed: {e}") from e
        if raw is None:
            return None
        return raw.decode("utf-8") if isinstance(raw, bytes) else raw

    def set(self, key, payload, ttl_seconds):
        try:
            self.client.setex(self.prefix + key, ttl_seconds, payload)
        except redis.RedisError as e:
            raise CacheError(f"Redis SET failed: {e}") from e

    def delete(self, key):
        try:
            self.client.delete(self.prefix + key)
        except redis.RedisError as e:
            raise CacheError(f"Redis DEL failed: {e}") from e

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            raise CacheError(f"Redis PING failed: {e}") from e

    def close(self):
        self.client.close()


class SqlCacheBackend(CacheBackend):
    """Durable ``cache_entries`` table with an absolute expiry timestamp."""

    name = "sql"

    def __init__(self, store, clock: Callable[[], float] = time.time):
        self.store = store
        self.clock = clock

    def get(self, key):
        try:
            with self.store.session_scope() as session:
                row = session.get(CacheEntryRow, key)
                if row is None:
                    return None
                if self.clock() >= row.expires_at:
                    session.delete(row)
                    return None
                return row.payload
        except SQLAlchemyError as e:
            raise CacheError(f"Cache table read failed: {e}") from e

    def set(self, key, payload, ttl_seconds):
        try:
            with self.store.session_scope() as session:
                session.merge(CacheEntryRow(
                    key=key, payload=payload, expires_at=self.clock() + ttl_seconds
                ))
        except SQLAlchemyError as e:
            raise CacheError(f"Cache table write failed: {e}") from e

    def delete(self, key):
        try:
            with self.store.session_scope() as session:
                session.query(CacheEntryRow).filter_by(key=key).delete(
                    synchronize_session=False
                )
        except SQLAlchemyError as e:
            raise CacheError(f"Cache table delete failed: {e}") from e

    def ping(self) -> bool:
        try:
            with self.store.session_scope() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise CacheError(f"Cache table ping failed: {e}") from e
        return True


def _decode(raw: str) -> Optional[Payload]:
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        return None
    return value


class QueryCache:
    """Cache-aside over an ordered list of backends (fastest first)."""

    def __init__(self, backends: Sequence[CacheBackend]):
        if not backends:
            raise ValueError("QueryCache needs at least one backend")
        self.backends = list(backends)

    @property
    def primary(self) -> CacheBackend:
        return self.backends[0]

    def get(self, key: str, ttl_seconds: Optional[int] = None) -> Optional[Payload]:
        """Return a cached list, or None on miss, expiry, corruption or error.

        With ``ttl_seconds`` set, a hit on a lower tier is copied back into
        the faster tiers in front of it.
        """
        for index, backend in enumerate(self.backends):
            try:
                raw = backend.get(key)
            except CacheError as e:
                logger.warning(f"Cache GET error on {backend.name} for {key}: {e}")
                continue
            if raw is None:
                continue
            value = _decode(raw)
            if value is None:
                logger.warning(f"Discarding corrupt cache entry {key} on {backend.name}")
                self._safe_delete(backend, key)
                continue
            if ttl_seconds and index:
                self._refill(self.backends[:index], key, raw, ttl_seconds)
            return value
        return None

    def set(self, key: str, value: Payload, ttl_seconds: int) -> None:
        payload = json.dumps(value, separators=(",", ":"))
        for backend in self.backends:
            try:
                backend.set(key, payload, ttl_seconds)
            except CacheError as e:
                logger.warning(f"Cache SET error on {backend.name} for {key}: {e}")

    def invalidate(self, key: str) -> None:
        for backend in self.backends:
            self._safe_delete(backend, key)

    def lookup(self, key: str, ttl_seconds: int,
               resolve: Callable[[], Payload]) -> Tuple[Payload, bool]:
        """Return ``(value, hit)``; on a miss ``resolve`` supplies the value."""
        cached = self.get(key, ttl_seconds)
        if cached is not None:
            logger.debug(f"Cache hit for {key}")
            return cached, True

        value = resolve()
        self.set(key, value, ttl_seconds)
        return value, False

    def ping(self) -> Dict[str, bool]:
        """Reachability of each backend by name."""
        status = {}
        for backend in self.backends:
            try:
                status[backend.name] = backend.ping()
            except CacheError as e:
                logger.warning(f"Cache PING error on {backend.name}: {e}")
                status[backend.name] = False
        return status

    def close(self) -> None:
        for backend in self.backends:
            try:
                backend.close()
            except Exception as e:
                logger.warning(f"Error closing cache backend {backend.name}: {e}")

    @staticmethod
    def _refill(backends: Sequence[CacheBackend], key: str, raw: str, ttl_seconds: int) -> None:
        for backend in backends:
            try:
                backend.set(key, raw, ttl_seconds)
            except CacheError as e:
                logger.warning(f"Cache refill error on {backend.name} for {key}: {e}")

    @staticmethod
    def _safe_delete(backend: CacheBackend, key: str) -> None:
        try:
            backend.delete(key)
        except CacheError as e:
            logger.warning(f"Cache DEL error on {backend.name} for {key}: {e}")


__all__ = [
    "CacheBackend",
    "MemoryCacheBackend",
    "RedisCacheBackend",
    "SqlCacheBackend",
    "QueryCache",
    "normalize_query",
    "places_cache_key",
    "items_cache_key",
]
