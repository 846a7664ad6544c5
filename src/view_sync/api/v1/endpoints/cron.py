"""Trigger endpoints called by the external scheduler."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from view_sync.api.v1.dependencies import CoordinatorDep, CronAuthDep
from view_sync.core.settings import settings
from view_sync.schemas.sync import SyncJobInfo, SyncMetricsSummary, SyncRunResponse
from view_sync.services.view_sync import SyncMetrics

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[CronAuthDep])


def _to_response(metrics: SyncMetrics) -> SyncRunResponse:
    return SyncRunResponse(
        success=metrics.success,
        metrics=SyncMetricsSummary.model_validate(metrics.summary()),
    )


@router.post("/sync-views", response_model=SyncRunResponse)
async def sync_views(coordinator: CoordinatorDep) -> SyncRunResponse:
    """Run the scheduled flush of buffered views.

    Returns:
        Whether the run completed and its metrics summary
    """
    logger.info("Cron job triggered: sync-views")
    return _to_response(await coordinator.run_sync())


@router.post("/sync-views/manual", response_model=SyncRunResponse)
async def sync_views_manual(coordinator: CoordinatorDep) -> SyncRunResponse:
    """Run an out-of-schedule flush (administrative or emergency use)."""
    return _to_response(await coordinator.trigger_manual_sync())


@router.get("/sync-views", response_model=SyncJobInfo)
async def sync_views_info() -> SyncJobInfo:
    """Describe the sync job configuration for monitoring."""
    return SyncJobInfo.model_validate(settings.job_info)
