# src/view_sync/scripts/sync_views.py
"""
Cron job to flush buffered story and chapter views into the database.

Run this on the schedule configured by VIEW_SYNC_CRON (default twice a day).
Each run drains whatever is buffered; entities that fail stay buffered for the
next run.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from collections.abc import Sequence

from view_sync.core.settings import settings
from view_sync.db.session import create_tables
from view_sync.services.view_buffer import close_redis_client
from view_sync.services.view_sync import SyncCoordinator, SyncMetrics, get_sync_coordinator

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def run_once(coordinator: SyncCoordinator, *, manual: bool = False) -> SyncMetrics:
    """Run one sync cycle and release the Redis connection afterwards."""
    try:
        if manual:
            return await coordinator.trigger_manual_sync()
        return await coordinator.run_sync()
    finally:
        await close_redis_client()


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Flush buffered views into durable counters")
    parser.add_argument(
        "--manual",
        action="store_true",
        help="Use the manual trigger entry point (logged as a manual run).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL for this run",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create the story and chapter tables if missing before syncing.",
    )
    args = parser.parse_args(argv)

    configure_logging(args.log_level or settings.log_level)
    if args.create_tables:
        create_tables()
        logger.info("Ensured view counter tables exist")
    metrics = asyncio.run(run_once(get_sync_coordinator(), manual=args.manual))
    print(json.dumps(metrics.summary()))
    return 0 if metrics.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
