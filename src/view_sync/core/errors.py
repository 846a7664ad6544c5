"""Exceptions shared by the view sync components."""

from __future__ import annotations


class ViewSyncError(RuntimeError):
    """Base exception raised for view sync failures."""


class BufferUnavailableError(ViewSyncError):
    """Raised when the buffer store cannot be reached or rejects a command."""


class CounterWriteError(ViewSyncError):
    """Raised when a durable counter increment could not be committed."""


class CounterReadError(ViewSyncError):
    """Raised when a durable counter could not be read."""
