"""Shared API dependencies for trigger authentication and service wiring."""

import logging
import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from view_sync.core.settings import settings
from view_sync.services.view_counts import ViewCountService, get_view_count_service
from view_sync.services.view_sync import SyncCoordinator, get_sync_coordinator

logger = logging.getLogger(__name__)

# HTTP Bearer scheme carrying the scheduler's shared secret
bearer_scheme = HTTPBearer(auto_error=False)


def verify_cron_secret(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> None:
    """Reject callers that do not present ``Bearer <CRON_SECRET>``.

    Raises:
        HTTPException: 500 if CRON_SECRET is not configured, 401 on a bad token
    """
    cron_secret = settings.cron_secret
    if not cron_secret:
        logger.error("CRON_SECRET not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Cron job not configured",
        )

    presented = credentials.credentials if credentials else ""
    if not secrets.compare_digest(presented.encode(), cron_secret.encode()):
        logger.warning("Unauthorized cron job attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


def get_coordinator_dep() -> SyncCoordinator:
    """Return the sync coordinator for dependency injection."""
    return get_sync_coordinator()


def get_view_count_service_dep() -> ViewCountService:
    """Return the view count service for dependency injection."""
    return get_view_count_service()


CronAuthDep = Depends(verify_cron_secret)
CoordinatorDep = Annotated[SyncCoordinator, Depends(get_coordinator_dep)]
ViewCountServiceDep = Annotated[ViewCountService, Depends(get_view_count_service_dep)]
