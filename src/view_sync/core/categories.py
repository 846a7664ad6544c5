"""Counted entity categories."""

from __future__ import annotations

from enum import Enum


class ViewCategory(str, Enum):
    """Class of counted entity, each flushed independently."""

    STORY = "story"
    CHAPTER = "chapter"

    @property
    def buffer_prefix(self) -> str:
        return f"views:{self.value}:buffer:"

    @property
    def last_sync_prefix(self) -> str:
        return f"views:{self.value}:last_sync:"

    @property
    def count_cache_prefix(self) -> str:
        return f"views:{self.value}:count:"

    def buffer_key(self, entity_id: str) -> str:
        return f"{self.buffer_prefix}{entity_id}"

    def last_sync_key(self, entity_id: str) -> str:
        return f"{self.last_sync_prefix}{entity_id}"

    def count_cache_key(self, entity_id: str) -> str:
        return f"{self.count_cache_prefix}{entity_id}"
