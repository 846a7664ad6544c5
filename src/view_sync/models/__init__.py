# src/view_sync/models/__init__.py
"""SQLAlchemy models holding the durable view counters."""

from .story import Chapter, Story

__all__ = ["Story", "Chapter"]
