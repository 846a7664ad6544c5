"""Read path for view totals: durable count plus whatever is still buffered."""

from __future__ import annotations

import logging

from view_sync.core.categories import ViewCategory
from view_sync.core.settings import settings
from view_sync.services.counter_store import CounterStore, get_counter_store
from view_sync.services.view_buffer import (
    STORE_UNAVAILABLE_ERRORS,
    InMemoryViewBuffer,
    RedisViewBuffer,
    get_view_buffer,
)

logger = logging.getLogger(__name__)


class ViewCountService:
    """Serve current view totals without waiting for the next flush."""

    def __init__(
        self,
        buffer: RedisViewBuffer | InMemoryViewBuffer | None,
        counter_store: CounterStore,
        cache_ttl_seconds: int = 300,
    ) -> None:
        self.buffer = buffer
        self.counter_store = counter_store
        self.cache_ttl_seconds = cache_ttl_seconds

    async def get_view_count(self, category: ViewCategory, entity_id: str) -> int | None:
        """Return durable + buffered views, or None for an unknown entity.

        Totals are cached in the buffer store for ``cache_ttl_seconds``. When the
        buffer store is disabled or unreachable the durable count is returned.
        """
        if self.buffer is None:
            return await self.counter_store.get_count(category, entity_id)

        try:
            cached = await self.buffer.get_cached_total(category, entity_id)
            if cached is not None:
                return cached

            durable = await self.counter_store.get_count(category, entity_id)
            if durable is None:
                return None
            total = durable + await self.buffer.buffered(category, entity_id)
            await self.buffer.cache_total(category, entity_id, total, self.cache_ttl_seconds)
            return total
        except STORE_UNAVAILABLE_ERRORS as exc:
            logger.error("Failed to get %s view count from buffer: %s", category.value, exc)
            return await self.counter_store.get_count(category, entity_id)


def get_view_count_service() -> ViewCountService:
    """Return a view count service honouring VIEW_TRACKING_REDIS_ENABLED."""
    return ViewCountService(
        get_view_buffer() if settings.view_tracking_enabled else None,
        get_counter_store(),
        cache_ttl_seconds=settings.view_count_cache_ttl_seconds,
    )
