"""Tests for the view count read path."""

import pytest

from tests.conftest import STORY, FakeCounterStore
from view_sync.core.errors import BufferUnavailableError
from view_sync.services.view_buffer import InMemoryViewBuffer
from view_sync.services.view_counts import ViewCountService


@pytest.mark.asyncio
async def test_total_includes_unflushed_views() -> None:
    buffer = InMemoryViewBuffer({STORY: {"s1": 6}})
    service = ViewCountService(buffer, FakeCounterStore({(STORY, "s1"): 100}))

    assert await service.get_view_count(STORY, "s1") == 106


@pytest.mark.asyncio
async def test_total_is_cached_until_next_increment() -> None:
    buffer = InMemoryViewBuffer()
    store = FakeCounterStore({(STORY, "s1"): 10})
    service = ViewCountService(buffer, store, cache_ttl_seconds=60)

    assert await service.get_view_count(STORY, "s1") == 10
    store.counts[(STORY, "s1")] = 99
    assert await service.get_view_count(STORY, "s1") == 10

    await buffer.increment_by(STORY, "s1")
    assert await service.get_view_count(STORY, "s1") == 100


@pytest.mark.asyncio
async def test_unknown_entity_has_no_count() -> None:
    service = ViewCountService(InMemoryViewBuffer(), FakeCounterStore())

    assert await service.get_view_count(STORY, "missing") is None


@pytest.mark.asyncio
async def test_falls_back_to_durable_count_when_buffer_fails(mocker) -> None:
    buffer = InMemoryViewBuffer({STORY: {"s1": 6}})
    mocker.patch.object(buffer, "get_cached_total", side_effect=BufferUnavailableError("down"))
    service = ViewCountService(buffer, FakeCounterStore({(STORY, "s1"): 100}))

    assert await service.get_view_count(STORY, "s1") == 100


@pytest.mark.asyncio
async def test_disabled_buffer_reads_durable_count() -> None:
    service = ViewCountService(None, FakeCounterStore({(STORY, "s1"): 5}))

    assert await service.get_view_count(STORY, "s1") == 5
