"""Writers that push buffered view deltas into durable counters.

``BatchWriter`` fires one increment per entity concurrently and reports the
batch as failed if any of them raised. ``FallbackWriter`` then retries only the
entities whose batch write did not commit, one at a time, so a delta is never
added twice in the same run.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from view_sync.core.categories import ViewCategory
from view_sync.services.counter_store import CounterStore

logger = logging.getLogger(__name__)

Entry = tuple[str, int]


class WriteOutcome(Enum):
    """Result of one entity's durable increment."""

    APPLIED = "applied"    # counter incremented (or zero delta)
    MISSING = "missing"    # no durable row for the entity; nothing to add to
    FAILED = "failed"      # write raised; delta must stay buffered


@dataclass
class EntryWrite:
    """Outcome of writing one entity's delta."""

    entity_id: str
    delta: int
    outcome: WriteOutcome
    error: BaseException | None = None

    @property
    def committed(self) -> bool:
        """True when the buffered delta may be cleared."""
        return self.outcome is not WriteOutcome.FAILED


@dataclass
class BatchResult:
    """Outcome of one concurrent batch of increments."""

    category: ViewCategory
    writes: list[EntryWrite] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(write.committed for write in self.writes)

    @property
    def committed(self) -> list[EntryWrite]:
        return [write for write in self.writes if write.committed]

    @property
    def failed(self) -> list[EntryWrite]:
        return [write for write in self.writes if not write.committed]


async def _apply_one(
    store: CounterStore, category: ViewCategory, entity_id: str, delta: int
) -> WriteOutcome:
    if delta == 0:
        return WriteOutcome.APPLIED
    applied = await store.add_to_counter(category, entity_id, delta)
    return WriteOutcome.APPLIED if applied else WriteOutcome.MISSING


class BatchWriter:
    """Applies a bounded batch of increments as one logical write attempt."""

    def __init__(self, store: CounterStore) -> None:
        self.store = store

    async def apply_batch(self, category: ViewCategory, entries: Sequence[Entry]) -> BatchResult:
        """Write every entry concurrently and wait for all of them to settle.

        Args:
            category: Category the entity ids belong to
            entries: ``(entity_id, delta)`` pairs, at most one per entity

        Returns:
            BatchResult whose ``ok`` is False if any write raised
        """
        results = await asyncio.gather(
            *(_apply_one(self.store, category, entity_id, delta) for entity_id, delta in entries),
            return_exceptions=True,
        )

        batch = BatchResult(category=category)
        for (entity_id, delta), result in zip(entries, results):
            if isinstance(result, BaseException):
                batch.writes.append(
                    EntryWrite(entity_id, delta, WriteOutcome.FAILED, error=result)
                )
            else:
                batch.writes.append(EntryWrite(entity_id, delta, result))

        if not batch.ok:
            first_error = batch.failed[0].error
            logger.warning(
                "Batch of %d %s increments failed (%d writes raised, first: %s)",
                len(batch.writes),
                category.value,
                len(batch.failed),
                first_error,
            )
        return batch


class FallbackWriter:
    """Applies increments one entity at a time with isolated failures."""

    def __init__(self, store: CounterStore) -> None:
        self.store = store

    async def apply_individually(
        self, category: ViewCategory, entries: Sequence[Entry]
    ) -> list[EntryWrite]:
        """Write each entry sequentially; one failure never stops the rest."""
        writes: list[EntryWrite] = []
        for entity_id, delta in entries:
            try:
                outcome = await _apply_one(self.store, category, entity_id, delta)
            except Exception as exc:
                logger.error(
                    "Failed to sync %d views for %s %s",
                    delta,
                    category.value,
                    entity_id,
                    exc_info=True,
                )
                writes.append(EntryWrite(entity_id, delta, WriteOutcome.FAILED, error=exc))
                continue

            logger.debug("Fallback wrote %d views for %s %s", delta, category.value, entity_id)
            writes.append(EntryWrite(entity_id, delta, outcome))
        return writes
