"""Durable view counters stored in the relational database."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, runtime_checkable

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from view_sync.core.categories import ViewCategory
from view_sync.core.errors import CounterReadError, CounterWriteError
from view_sync.db.session import SessionLocal
from view_sync.models import Chapter, Story

logger = logging.getLogger(__name__)

CATEGORY_MODELS: dict[ViewCategory, type[Story] | type[Chapter]] = {
    ViewCategory.STORY: Story,
    ViewCategory.CHAPTER: Chapter,
}


@runtime_checkable
class CounterStore(Protocol):
    """Authoritative running totals, mutated only by additive increments."""

    async def add_to_counter(self, category: ViewCategory, entity_id: str, delta: int) -> bool:
        """Add ``delta`` to an entity's counter.

        Returns False when no row exists for the entity; raises on failure.
        """
        ...

    async def get_count(self, category: ViewCategory, entity_id: str) -> int | None:
        """Return the durable count, or None for an unknown entity."""
        ...


class SqlCounterStore:
    """SQLAlchemy-backed counter store.

    Each call opens its own short-lived session in a worker thread so that
    concurrent increments never share a session.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    async def add_to_counter(self, category: ViewCategory, entity_id: str, delta: int) -> bool:
        return await asyncio.to_thread(self._add_sync, category, entity_id, delta)

    async def get_count(self, category: ViewCategory, entity_id: str) -> int | None:
        return await asyncio.to_thread(self._get_sync, category, entity_id)

    def _add_sync(self, category: ViewCategory, entity_id: str, delta: int) -> bool:
        model = CATEGORY_MODELS[category]
        # Touch read_count only; never overwrite it with an absolute value.
        stmt = (
            update(model)
            .where(model.id == entity_id)
            .values(read_count=model.read_count + delta)
            .execution_options(synchronize_session=False)
        )
        try:
            with self._session_factory() as db:
                result = db.execute(stmt)
                db.commit()
        except SQLAlchemyError as exc:
            raise CounterWriteError(
                f"Failed to add {delta} views to {category.value} {entity_id}"
            ) from exc

        if result.rowcount == 0:
            logger.warning("No %s row with id %s; %d views not applied", category.value, entity_id, delta)
            return False
        return True

    def _get_sync(self, category: ViewCategory, entity_id: str) -> int | None:
        model = CATEGORY_MODELS[category]
        try:
            with self._session_factory() as db:
                return db.execute(
                    select(model.read_count).where(model.id == entity_id)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise CounterReadError(
                f"Failed to read view count of {category.value} {entity_id}"
            ) from exc


def get_counter_store() -> SqlCounterStore:
    """Return a counter store bound to the application's session factory."""
    return SqlCounterStore()
