"""Tests for the view count endpoint."""

from fastapi import status

from tests.conftest import CHAPTER, STORY
from view_sync.core.errors import CounterReadError


def test_view_count_includes_buffered_views(client, buffer, counter_store) -> None:
    counter_store.counts[(STORY, "storyA")] = 100
    buffer._counts[STORY]["storyA"] = 3

    response = client.get("/api/v1/views/story/storyA")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"category": "story", "entity_id": "storyA", "views": 103}


def test_view_count_for_chapter(client, counter_store) -> None:
    counter_store.counts[(CHAPTER, "c1")] = 8

    response = client.get("/api/v1/views/chapter/c1")

    assert response.json()["views"] == 8


def test_unknown_entity_is_404(client) -> None:
    response = client.get("/api/v1/views/story/nope")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["detail"] == "Story not found"


def test_unknown_category_is_rejected(client) -> None:
    response = client.get("/api/v1/views/comment/x")

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_unreadable_database_is_503(client, counter_store, mocker) -> None:
    mocker.patch.object(counter_store, "get_count", side_effect=CounterReadError("db down"))

    response = client.get("/api/v1/views/story/storyA")

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json()["detail"] == "View count unavailable"
