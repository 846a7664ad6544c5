"""Buffered view counting and periodic flush into durable counters."""

__version__ = "0.1.0"
