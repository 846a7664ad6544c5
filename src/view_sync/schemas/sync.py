"""View sync Pydantic schemas."""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from view_sync.core.categories import ViewCategory


class SyncMetricsSummary(BaseModel):
    """Condensed metrics of one sync run."""

    trigger: Literal["scheduled", "manual"]
    duration: str = Field(..., description="Run duration, e.g. '42ms'.")
    stories_processed: int
    chapters_processed: int
    story_views_added: int
    chapter_views_added: int
    total_views_added: int
    errors: int
    success: bool


class SyncRunResponse(BaseModel):
    """Response returned after triggering a sync run."""

    success: bool
    message: str = "View sync completed"
    metrics: SyncMetricsSummary


class SyncJobInfo(BaseModel):
    """Configuration of the sync job, for monitoring."""

    job: str
    schedule: str
    interval: str
    enabled: bool
    dedup_ttl: str
    batch_size: int


class ViewCountResponse(BaseModel):
    """Current total view count of one entity."""

    category: ViewCategory
    entity_id: str
    views: int = Field(..., ge=0, description="Durable views plus views not yet flushed.")
