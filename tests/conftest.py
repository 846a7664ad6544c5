# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Awaitable, Callable, Iterable, Iterator, Mapping
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("VIEW_SYNC_BATCH_PAUSE_SECONDS", "0")

from view_sync.api.v1.dependencies import get_coordinator_dep, get_view_count_service_dep
from view_sync.core.categories import ViewCategory
from view_sync.core.errors import CounterWriteError
from view_sync.core.settings import settings
from view_sync.db.session import Base
from view_sync.main import app as fastapi_app
from view_sync.models import Chapter, Story
from view_sync.services.counter_store import SqlCounterStore
from view_sync.services.view_buffer import InMemoryViewBuffer
from view_sync.services.view_counts import ViewCountService
from view_sync.services.view_sync import SyncCoordinator

STORY = ViewCategory.STORY
CHAPTER = ViewCategory.CHAPTER

CRON_SECRET = "test-cron-secret"

WriteHook = Callable[[ViewCategory, str, int], Awaitable[None]]


class FakeCounterStore:
    """In-memory durable counters with scriptable failures.

    Only entities present in ``counts`` exist; writes to anything else report
    a missing row, like an UPDATE that matched nothing.
    """

    def __init__(
        self,
        counts: Mapping[tuple[ViewCategory, str], int] | None = None,
        *,
        failing: Iterable[tuple[ViewCategory, str]] = (),
        fail_once: Iterable[tuple[ViewCategory, str]] = (),
    ) -> None:
        self.counts: dict[tuple[ViewCategory, str], int] = dict(counts or {})
        self.failing = set(failing)
        self.fail_once = set(fail_once)
        self.calls: list[tuple[ViewCategory, str, int]] = []
        self.on_write: WriteHook | None = None

    def seed(self, category: ViewCategory, ids: Iterable[str], value: int = 0) -> None:
        for entity_id in ids:
            self.counts[(category, entity_id)] = value

    def writes_for(self, category: ViewCategory, entity_id: str) -> list[int]:
        return [delta for cat, eid, delta in self.calls if cat == category and eid == entity_id]

    async def add_to_counter(self, category: ViewCategory, entity_id: str, delta: int) -> bool:
        key = (category, entity_id)
        self.calls.append((category, entity_id, delta))
        if self.on_write is not None:
            await self.on_write(category, entity_id, delta)
        if key in self.failing:
            raise CounterWriteError(f"write to {entity_id} refused")
        if key in self.fail_once:
            self.fail_once.discard(key)
            raise CounterWriteError(f"transient failure for {entity_id}")
        if key not in self.counts:
            return False
        self.counts[key] += delta
        return True

    async def get_count(self, category: ViewCategory, entity_id: str) -> int | None:
        return self.counts.get((category, entity_id))


@pytest.fixture()
def buffer() -> InMemoryViewBuffer:
    return InMemoryViewBuffer()


@pytest.fixture()
def counter_store() -> FakeCounterStore:
    return FakeCounterStore()


@pytest.fixture()
def coordinator(buffer: InMemoryViewBuffer, counter_store: FakeCounterStore) -> SyncCoordinator:
    return SyncCoordinator(buffer, counter_store)


@pytest.fixture()
def sql_engine(tmp_path: Path) -> Iterator[Engine]:
    # File-backed so that worker threads get their own connections.
    engine = create_engine(
        f"sqlite:///{tmp_path / 'views.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(sql_engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=sql_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def sql_store(session_factory: sessionmaker[Session]) -> SqlCounterStore:
    return SqlCounterStore(session_factory)


@pytest.fixture()
def seeded_stories(db_session: Session) -> dict[str, int]:
    """Persist two stories with one chapter and return the starting counts."""
    counts = {"storyA": 100, "storyB": 40}
    for story_id, read_count in counts.items():
        db_session.add(Story(id=story_id, title=story_id, read_count=read_count))
    db_session.add(Chapter(id="chapterA1", story_id="storyA", title="One", read_count=7))
    db_session.commit()
    return counts


@pytest.fixture()
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def cron_secret(monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.setattr(settings, "cron_secret", CRON_SECRET)
    return CRON_SECRET


@pytest.fixture()
def auth_headers(cron_secret: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {cron_secret}"}


@pytest.fixture()
def client(
    app: FastAPI, buffer: InMemoryViewBuffer, counter_store: FakeCounterStore
) -> Iterator[TestClient]:
    app.dependency_overrides[get_coordinator_dep] = lambda: SyncCoordinator(buffer, counter_store)
    app.dependency_overrides[get_view_count_service_dep] = lambda: ViewCountService(
        buffer, counter_store, cache_ttl_seconds=60
    )
    try:
        with TestClient(app, base_url="http://test") as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
