import asyncio
import logging
from typing import Optional

from ..notifications.reporter import JobReporter
from .monthly_stats import run_monthly_stats
from .playback_cleanup import run_playback_cleanup
from .stats_dispatcher import run_stats_job

logger = logging.getLogger(__name__)

JOB_NAMES = ("stats", "monthly-stats", "playback-cleanup")


async def run_job(name: str, db, test_mode: bool = False, reporter: Optional[JobReporter] = None,
                  triggered_by: str = "manual") -> dict:
    """Run one batch job by name and return its summary"""
    reporter = reporter or JobReporter.from_env()

    if name == "stats":
        return await run_stats_job(db, test_mode=test_mode, reporter=reporter)
    if name == "monthly-stats":
        return await asyncio.to_thread(run_monthly_stats, db, test_mode, None, True, reporter)
    if name == "playback-cleanup":
        return await asyncio.to_thread(run_playback_cleanup, db, test_mode, triggered_by, reporter)

    raise ValueError(f"Unknown job: {name}")
