# src/view_sync/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .cron import router as cron_router
from .views import router as views_router

__all__ = [
    "cron_router",
    "views_router",
]
