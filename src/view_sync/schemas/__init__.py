# src/view_sync/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .sync import SyncJobInfo, SyncMetricsSummary, SyncRunResponse, ViewCountResponse

__all__ = [
    "SyncJobInfo",
    "SyncMetricsSummary",
    "SyncRunResponse",
    "ViewCountResponse",
]
