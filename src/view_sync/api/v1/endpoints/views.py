"""Read-only view count endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from view_sync.api.v1.dependencies import ViewCountServiceDep
from view_sync.core.categories import ViewCategory
from view_sync.core.errors import CounterReadError
from view_sync.schemas.sync import ViewCountResponse

router = APIRouter(prefix="/views", tags=["views"])


@router.get("/{category}/{entity_id}", response_model=ViewCountResponse)
async def get_view_count(
    category: ViewCategory,
    entity_id: str,
    service: ViewCountServiceDep,
) -> ViewCountResponse:
    """Return the current total view count of a story or chapter.

    Raises:
        HTTPException: 404 if the entity does not exist, 503 if the database
            cannot be read
    """
    try:
        views = await service.get_view_count(category, entity_id)
    except CounterReadError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="View count unavailable",
        ) from exc
    if views is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{category.value.capitalize()} not found",
        )
    return ViewCountResponse(category=category, entity_id=entity_id, views=views)
