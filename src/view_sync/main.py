# src/view_sync/main.py
"""Main entry point for the view sync HTTP service."""

from __future__ import annotations

from fastapi import FastAPI

from view_sync.api.v1 import cron_router, views_router
from view_sync.core.settings import settings
from view_sync.services.view_buffer import close_redis_client

# Initialize FastAPI app
app = FastAPI(
    title="Story View Sync API",
    description="Buffered view counting and periodic flush into durable counters",
    version=settings.app_version,
)

# Include API routers
app.include_router(cron_router, prefix="/api/v1")
app.include_router(views_router, prefix="/api/v1")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await close_redis_client()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("view_sync.main:app", host="0.0.0.0", port=8000)
