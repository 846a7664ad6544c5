# src/view_sync/services/__init__.py
"""Business logic services for buffering and flushing view counts."""

from .counter_store import CounterStore, SqlCounterStore
from .view_buffer import BufferAccessor, InMemoryViewBuffer, RedisViewBuffer, ViewBufferStore
from .view_counts import ViewCountService
from .view_sync import CategoryResult, CategorySyncer, SyncCoordinator, SyncMetrics
from .view_writers import BatchWriter, FallbackWriter

__all__ = [
    "BatchWriter",
    "BufferAccessor",
    "CategoryResult",
    "CategorySyncer",
    "CounterStore",
    "FallbackWriter",
    "InMemoryViewBuffer",
    "RedisViewBuffer",
    "SqlCounterStore",
    "SyncCoordinator",
    "SyncMetrics",
    "ViewBufferStore",
    "ViewCountService",
]
