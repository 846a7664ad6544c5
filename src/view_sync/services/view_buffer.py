"""Buffered view counters kept in the shared buffer store.

View events are absorbed into per-entity Redis counters
(``views:{category}:buffer:{id}``) and drained by the sync job. This module
provides:

- ``ViewBufferStore``: the store contract the sync job depends on
- ``RedisViewBuffer``: the production implementation on ``redis.asyncio``
- ``InMemoryViewBuffer``: a process-local implementation for tests and local runs
- ``BufferAccessor``: snapshot/clear wrapper that degrades instead of raising

Clearing is delta-subtractive: only the amount that was flushed is removed,
so increments landing between the snapshot and the clear are kept.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from collections.abc import Mapping
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Final, Protocol, runtime_checkable

from redis import asyncio as redis_asyncio
from redis.exceptions import RedisError

from view_sync.core.categories import ViewCategory
from view_sync.core.errors import BufferUnavailableError
from view_sync.core.settings import settings

logger = logging.getLogger(__name__)

# Keys fetched per SCAN page and per MGET round trip.
SCAN_PAGE_SIZE: Final[int] = 500

# KEYS[1] = buffer key, KEYS[2] = last sync key, ARGV[1] = flushed delta, ARGV[2] = now (ms)
_CLEAR_SCRIPT: Final[str] = """
local remaining = redis.call('DECRBY', KEYS[1], ARGV[1])
if remaining <= 0 then
    redis.call('DEL', KEYS[1])
end
redis.call('SET', KEYS[2], ARGV[2])
return remaining
"""

# Errors that mean the store could not be reached at all.
STORE_UNAVAILABLE_ERRORS: Final = (BufferUnavailableError, OSError, ConnectionError, TimeoutError)


@runtime_checkable
class ViewBufferStore(Protocol):
    """Atomic counter store absorbing view increments between flushes."""

    async def increment_by(self, category: ViewCategory, entity_id: str, delta: int = 1) -> int:
        """Add ``delta`` to the buffered count and return the new value."""
        ...

    async def snapshot(self, category: ViewCategory) -> dict[str, int]:
        """Return every buffered ``entity_id -> delta`` for a category."""
        ...

    async def clear(self, category: ViewCategory, entity_id: str, delta: int) -> int:
        """Subtract a flushed ``delta`` and return what is still buffered."""
        ...

    async def buffered(self, category: ViewCategory, entity_id: str) -> int:
        """Return the currently buffered count for one entity."""
        ...

    async def ping(self) -> bool:
        """Return True when the store answers."""
        ...


def _now_ms() -> int:
    return int(time.time() * 1000)


def _parse_count(key: str, raw: Any) -> int | None:
    if raw is None:
        # Key disappeared between SCAN and MGET.
        return None
    if isinstance(raw, bytes):
        raw = raw.decode()
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric buffer value at %s: %r", key, raw)
        return None
    if value < 0:
        logger.warning("Ignoring negative buffer value at %s: %d", key, value)
        return None
    return value


class RedisViewBuffer:
    """Redis-backed view buffer.

    Increments use ``INCRBY`` and clears run a Lua script that ``DECRBY``s the
    flushed delta, deleting the key only once it reaches zero, and stamps the
    entity's last sync time in the same atomic step.
    """

    def __init__(self, client: redis_asyncio.Redis, scan_page_size: int = SCAN_PAGE_SIZE) -> None:
        self._redis = client
        self._scan_page_size = scan_page_size
        self._clear_script = client.register_script(_CLEAR_SCRIPT)

    async def increment_by(self, category: ViewCategory, entity_id: str, delta: int = 1) -> int:
        if delta < 0:
            raise ValueError("View increments must be non-negative")
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.incrby(category.buffer_key(entity_id), delta)
                # Cached totals include the buffer, so they are stale now.
                pipe.delete(category.count_cache_key(entity_id))
                results = await pipe.execute()
        except RedisError as exc:
            raise BufferUnavailableError(f"Failed to buffer {category.value} view") from exc
        return int(results[0])

    async def snapshot(self, category: ViewCategory) -> dict[str, int]:
        prefix = category.buffer_prefix
        try:
            keys = [
                key.decode() if isinstance(key, bytes) else key
                async for key in self._redis.scan_iter(
                    match=f"{prefix}*", count=self._scan_page_size
                )
            ]
            if not keys:
                return {}

            values: list[Any] = []
            for start in range(0, len(keys), self._scan_page_size):
                values.extend(await self._redis.mget(keys[start:start + self._scan_page_size]))
        except RedisError as exc:
            raise BufferUnavailableError(
                f"Failed to read buffered {category.value} views"
            ) from exc

        counts: dict[str, int] = {}
        for key, raw in zip(keys, values):
            value = _parse_count(key, raw)
            if value is not None:
                counts[key[len(prefix):]] = value
        return counts

    async def clear(self, category: ViewCategory, entity_id: str, delta: int) -> int:
        try:
            remaining = await self._clear_script(
                keys=[category.buffer_key(entity_id), category.last_sync_key(entity_id)],
                args=[delta, _now_ms()],
            )
        except RedisError as exc:
            raise BufferUnavailableError(
                f"Failed to clear {category.value} buffer for {entity_id}"
            ) from exc

        remaining = int(remaining)
        if remaining < 0:
            logger.warning(
                "Buffer for %s %s went negative (%d) while clearing %d views",
                category.value,
                entity_id,
                remaining,
                delta,
            )
        return max(remaining, 0)

    async def buffered(self, category: ViewCategory, entity_id: str) -> int:
        key = category.buffer_key(entity_id)
        try:
            raw = await self._redis.get(key)
        except RedisError as exc:
            raise BufferUnavailableError(f"Failed to read {key}") from exc
        return _parse_count(key, raw) or 0

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as exc:
            raise BufferUnavailableError("Redis ping failed") from exc

    async def last_synced_at(self, category: ViewCategory, entity_id: str) -> datetime | None:
        """Return when the entity's buffer was last flushed, if ever."""
        key = category.last_sync_key(entity_id)
        try:
            raw = await self._redis.get(key)
        except RedisError as exc:
            raise BufferUnavailableError(f"Failed to read {key}") from exc
        stamp = _parse_count(key, raw)
        if stamp is None:
            return None
        return datetime.fromtimestamp(stamp / 1000, tz=timezone.utc)

    async def get_cached_total(self, category: ViewCategory, entity_id: str) -> int | None:
        """Return a cached durable+buffered total, if one is still live."""
        key = category.count_cache_key(entity_id)
        try:
            raw = await self._redis.get(key)
        except RedisError as exc:
            raise BufferUnavailableError(f"Failed to read {key}") from exc
        return _parse_count(key, raw)

    async def cache_total(
        self, category: ViewCategory, entity_id: str, total: int, ttl_seconds: int
    ) -> None:
        """Cache a durable+buffered total for ``ttl_seconds``."""
        if ttl_seconds <= 0:
            return
        try:
            await self._redis.set(category.count_cache_key(entity_id), total, ex=ttl_seconds)
        except RedisError as exc:
            raise BufferUnavailableError("Failed to cache view total") from exc


class InMemoryViewBuffer:
    """Process-local view buffer with the same semantics as ``RedisViewBuffer``.

    Cached totals never expire here; ``increment_by`` still invalidates them.
    """

    def __init__(self, initial: Mapping[ViewCategory, Mapping[str, int]] | None = None) -> None:
        self._lock = Lock()
        self._counts: dict[ViewCategory, dict[str, int]] = defaultdict(dict)
        self._last_sync: dict[tuple[ViewCategory, str], int] = {}
        self._cached_totals: dict[tuple[ViewCategory, str], int] = {}
        for category, counts in (initial or {}).items():
            self._counts[category].update(counts)

    async def increment_by(self, category: ViewCategory, entity_id: str, delta: int = 1) -> int:
        if delta < 0:
            raise ValueError("View increments must be non-negative")
        with self._lock:
            bucket = self._counts[category]
            bucket[entity_id] = bucket.get(entity_id, 0) + delta
            self._cached_totals.pop((category, entity_id), None)
            return bucket[entity_id]

    async def snapshot(self, category: ViewCategory) -> dict[str, int]:
        with self._lock:
            return dict(self._counts[category])

    async def clear(self, category: ViewCategory, entity_id: str, delta: int) -> int:
        with self._lock:
            bucket = self._counts[category]
            remaining = bucket.get(entity_id, 0) - delta
            if remaining <= 0:
                bucket.pop(entity_id, None)
            else:
                bucket[entity_id] = remaining
            self._last_sync[(category, entity_id)] = _now_ms()
            return max(remaining, 0)

    async def buffered(self, category: ViewCategory, entity_id: str) -> int:
        with self._lock:
            return self._counts[category].get(entity_id, 0)

    async def ping(self) -> bool:
        return True

    async def last_synced_at(self, category: ViewCategory, entity_id: str) -> datetime | None:
        with self._lock:
            stamp = self._last_sync.get((category, entity_id))
        if stamp is None:
            return None
        return datetime.fromtimestamp(stamp / 1000, tz=timezone.utc)

    async def get_cached_total(self, category: ViewCategory, entity_id: str) -> int | None:
        with self._lock:
            return self._cached_totals.get((category, entity_id))

    async def cache_total(
        self, category: ViewCategory, entity_id: str, total: int, ttl_seconds: int
    ) -> None:
        if ttl_seconds <= 0:
            return
        with self._lock:
            self._cached_totals[(category, entity_id)] = total


class BufferAccessor:
    """Reads and clears buffered counts for the sync job.

    Store outages never propagate from here: an unreachable store reads as an
    empty buffer and a failed clear reports ``False``.
    """

    def __init__(self, store: ViewBufferStore) -> None:
        self.store = store

    async def read_buffered_counts(self, category: ViewCategory) -> dict[str, int]:
        """Return a snapshot of buffered deltas for ``category``."""
        logger.debug("Fetching buffered %s views", category.value)
        try:
            counts = await self.store.snapshot(category)
        except STORE_UNAVAILABLE_ERRORS as exc:
            logger.warning(
                "Buffer store unavailable while reading %s views: %s", category.value, exc
            )
            return {}

        logger.info("Retrieved %d buffered %s views", len(counts), category.value)
        return counts

    async def clear_buffer(self, category: ViewCategory, entity_id: str, delta: int) -> bool:
        """Remove a flushed delta from one entity's buffer."""
        try:
            remaining = await self.store.clear(category, entity_id, delta)
        except STORE_UNAVAILABLE_ERRORS as exc:
            logger.error(
                "Failed to clear view buffer for %s %s: %s", category.value, entity_id, exc
            )
            return False

        logger.debug(
            "Cleared %d views from %s %s buffer (%d still buffered)",
            delta,
            category.value,
            entity_id,
            remaining,
        )
        return True

    async def ping(self) -> bool:
        """Probe store liveness; never raises."""
        try:
            alive = await self.store.ping()
        except Exception:
            logger.error("Failed to verify buffer store connection", exc_info=True)
            return False
        logger.info("Buffer store ping result: %s", alive)
        return alive


_REDIS_CLIENT: redis_asyncio.Redis | None = None


def get_redis_client() -> redis_asyncio.Redis:
    """Return the process-wide async Redis client, creating it lazily."""
    global _REDIS_CLIENT
    if _REDIS_CLIENT is None:
        _REDIS_CLIENT = redis_asyncio.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.redis_socket_timeout_seconds,
            socket_connect_timeout=settings.redis_socket_timeout_seconds,
        )
    return _REDIS_CLIENT


async def close_redis_client() -> None:
    """Close the process-wide Redis client if one was created."""
    global _REDIS_CLIENT
    if _REDIS_CLIENT is not None:
        await _REDIS_CLIENT.aclose()
        _REDIS_CLIENT = None


def get_view_buffer() -> RedisViewBuffer:
    """Return a Redis view buffer bound to the process-wide client."""
    return RedisViewBuffer(get_redis_client())
