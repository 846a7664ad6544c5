"""Periodic flush of buffered view counts into durable counters.

This module provides the sync job that drains the view buffer:

- ``CategorySyncer`` flushes one category (story views, chapter views)
- ``SyncCoordinator`` runs every category concurrently and reports ``SyncMetrics``

Per category the flow is snapshot -> batch write -> (fallback on batch
failure) -> clear. A buffered delta is cleared only after its durable write
succeeded, and only by the amount written. Failed entities stay buffered and
are retried by the next scheduled run; there is no in-process retry loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Final, Literal

from view_sync.core.categories import ViewCategory
from view_sync.core.settings import settings
from view_sync.services.counter_store import CounterStore, get_counter_store
from view_sync.services.view_buffer import BufferAccessor, ViewBufferStore, get_view_buffer
from view_sync.services.view_writers import (
    BatchWriter,
    Entry,
    EntryWrite,
    FallbackWriter,
    WriteOutcome,
)

# Configure logger for this module
logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE: Final[int] = 500

Trigger = Literal["scheduled", "manual"]


@dataclass
class CategoryResult:
    """Tally of one category's flush."""

    category: ViewCategory
    processed: int = 0
    views_added: int = 0
    errors: int = 0
    # Batches that failed as a whole and were retried entity by entity.
    fallbacks: int = 0
    # Entities with no durable row; their buffered views were discarded.
    skipped: int = 0
    crashed: bool = False


@dataclass
class SyncMetrics:
    """Outcome of one sync run, returned to the scheduler or manual caller."""

    start_time: datetime
    end_time: datetime
    trigger: Trigger
    categories: dict[ViewCategory, CategoryResult] = field(default_factory=dict)
    success: bool = True

    @property
    def duration_ms(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() * 1000)

    def processed(self, category: ViewCategory) -> int:
        result = self.categories.get(category)
        return result.processed if result else 0

    def views_added(self, category: ViewCategory) -> int:
        result = self.categories.get(category)
        return result.views_added if result else 0

    @property
    def stories_processed(self) -> int:
        return self.processed(ViewCategory.STORY)

    @property
    def chapters_processed(self) -> int:
        return self.processed(ViewCategory.CHAPTER)

    @property
    def story_views_added(self) -> int:
        return self.views_added(ViewCategory.STORY)

    @property
    def chapter_views_added(self) -> int:
        return self.views_added(ViewCategory.CHAPTER)

    @property
    def total_views_added(self) -> int:
        return sum(result.views_added for result in self.categories.values())

    @property
    def errors(self) -> int:
        return sum(result.errors for result in self.categories.values())

    def summary(self) -> dict[str, object]:
        """Return a JSON-friendly summary for logs and HTTP responses."""
        return {
            "trigger": self.trigger,
            "duration": f"{self.duration_ms}ms",
            "stories_processed": self.stories_processed,
            "chapters_processed": self.chapters_processed,
            "story_views_added": self.story_views_added,
            "chapter_views_added": self.chapter_views_added,
            "total_views_added": self.total_views_added,
            "errors": self.errors,
            "success": self.success,
        }


class CategorySyncer:
    """Flushes the buffered views of a single category.

    Batches run one after another; the writes inside a batch run concurrently.
    Every failure is contained here and tallied in the returned result.
    """

    def __init__(
        self,
        category: ViewCategory,
        accessor: BufferAccessor,
        batch_writer: BatchWriter,
        fallback_writer: FallbackWriter,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_pause_seconds: float = 0.0,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.category = category
        self.accessor = accessor
        self.batch_writer = batch_writer
        self.fallback_writer = fallback_writer
        self.batch_size = batch_size
        self.batch_pause_seconds = batch_pause_seconds

    async def sync(self) -> CategoryResult:
        """Flush this category's buffer and return its tally. Never raises."""
        result = CategoryResult(category=self.category)
        try:
            await self._sync_into(result)
        except Exception:
            result.errors += 1
            logger.error("Unexpected error syncing %s views", self.category.value, exc_info=True)

        logger.info(
            "%s view sync complete: %d processed, %d views added, %d errors",
            self.category.value.capitalize(),
            result.processed,
            result.views_added,
            result.errors,
        )
        return result

    def partition(self, entries: Sequence[Entry]) -> list[list[Entry]]:
        """Split entries into batches of at most ``batch_size``."""
        return [
            list(entries[start:start + self.batch_size])
            for start in range(0, len(entries), self.batch_size)
        ]

    async def _sync_into(self, result: CategoryResult) -> None:
        buffered = await self.accessor.read_buffered_counts(self.category)
        if not buffered:
            logger.info("No buffered %s views to sync", self.category.value)
            return

        logger.info("Syncing %d %s entries with buffered views", len(buffered), self.category.value)
        for index, batch in enumerate(self.partition(list(buffered.items()))):
            if index and self.batch_pause_seconds:
                await asyncio.sleep(self.batch_pause_seconds)
            await self._sync_batch(batch, result)

    async def _sync_batch(self, batch: list[Entry], result: CategoryResult) -> None:
        batch_result = await self.batch_writer.apply_batch(self.category, batch)
        writes: list[EntryWrite]
        if batch_result.ok:
            writes = batch_result.writes
        else:
            result.fallbacks += 1
            # Deltas that already landed must not be added a second time.
            retry = [(write.entity_id, write.delta) for write in batch_result.failed]
            logger.warning(
                "Falling back to individual writes for %d of %d %s entries",
                len(retry),
                len(batch),
                self.category.value,
            )
            writes = batch_result.committed + await self.fallback_writer.apply_individually(
                self.category, retry
            )

        to_clear: list[EntryWrite] = []
        for write in writes:
            if write.outcome is WriteOutcome.FAILED:
                result.errors += 1
                continue
            if write.outcome is WriteOutcome.APPLIED:
                result.processed += 1
                result.views_added += write.delta
            else:
                result.skipped += 1
            to_clear.append(write)

        await self._clear(to_clear, result)

    async def _clear(self, writes: Iterable[EntryWrite], result: CategoryResult) -> None:
        writes = list(writes)
        cleared = await asyncio.gather(
            *(
                self.accessor.clear_buffer(self.category, write.entity_id, write.delta)
                for write in writes
            ),
            return_exceptions=True,
        )
        for write, outcome in zip(writes, cleared):
            if outcome is True:
                continue
            # The durable write stands; the entry is re-read next cycle.
            result.errors += 1
            if isinstance(outcome, BaseException):
                logger.error(
                    "Unexpected error clearing %s %s buffer",
                    self.category.value,
                    write.entity_id,
                    exc_info=outcome,
                )


class SyncCoordinator:
    """Runs one ``CategorySyncer`` per category and aggregates the results.

    Both entry points share the same logic and always return ``SyncMetrics``;
    nothing raised by a category or a store escapes to the caller.
    """

    def __init__(
        self,
        buffer_store: ViewBufferStore,
        counter_store: CounterStore,
        *,
        categories: Iterable[ViewCategory] = tuple(ViewCategory),
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_pause_seconds: float = 0.0,
    ) -> None:
        self.accessor = BufferAccessor(buffer_store)
        batch_writer = BatchWriter(counter_store)
        fallback_writer = FallbackWriter(counter_store)
        self.syncers = [
            CategorySyncer(
                category,
                self.accessor,
                batch_writer,
                fallback_writer,
                batch_size=batch_size,
                batch_pause_seconds=batch_pause_seconds,
            )
            for category in categories
        ]

    async def run_sync(self) -> SyncMetrics:
        """Flush every category; entry point for the scheduler."""
        return await self._run("scheduled")

    async def trigger_manual_sync(self) -> SyncMetrics:
        """Flush every category on demand (administrative or emergency use)."""
        logger.info("Manual sync triggered")
        return await self._run("manual")

    async def _run(self, trigger: Trigger) -> SyncMetrics:
        start_time = datetime.now(timezone.utc)
        logger.info("Starting buffered view sync job (%s)", trigger)

        # Liveness is informational only; the run proceeds either way.
        await self.accessor.ping()

        success = True
        categories: dict[ViewCategory, CategoryResult] = {}
        try:
            outcomes = await asyncio.gather(
                *(syncer.sync() for syncer in self.syncers),
                return_exceptions=True,
            )
            for syncer, outcome in zip(self.syncers, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error(
                        "%s view sync crashed",
                        syncer.category.value.capitalize(),
                        exc_info=outcome,
                    )
                    categories[syncer.category] = _crashed(syncer.category)
                    success = False
                else:
                    categories[syncer.category] = outcome
        except Exception:
            logger.error("Buffered view sync job failed", exc_info=True)
            categories = {syncer.category: _crashed(syncer.category) for syncer in self.syncers}
            success = False

        metrics = SyncMetrics(
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
            trigger=trigger,
            categories=categories,
            success=success,
        )
        logger.info(
            "Buffered view sync job completed in %dms: %d stories, %d chapters, "
            "%d views added, %d errors",
            metrics.duration_ms,
            metrics.stories_processed,
            metrics.chapters_processed,
            metrics.total_views_added,
            metrics.errors,
        )
        return metrics


def _crashed(category: ViewCategory) -> CategoryResult:
    return CategoryResult(category=category, errors=1, crashed=True)


def get_sync_coordinator() -> SyncCoordinator:
    """Return a coordinator wired to the configured Redis buffer and database."""
    return SyncCoordinator(
        get_view_buffer(),
        get_counter_store(),
        batch_size=settings.view_sync_batch_size,
        batch_pause_seconds=settings.view_sync_batch_pause_seconds,
    )
