"""Version 1 API endpoints."""

from .endpoints import cron_router, views_router

__all__ = [
    "cron_router",
    "views_router",
]
