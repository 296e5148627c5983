"""
Stats Dispatcher
Splits the playbacks collection into ranges and aggregates them with
bounded concurrency
"""

import math
import time
import asyncio
import logging
from dataclasses import dataclass, field, asdict
from typing import List, Optional

from ..config import StatsSettings
from ..db.connection import get_collection
from ..notifications.reporter import JobReporter
from .stats_aggregation import process_range, RangeResult

logger = logging.getLogger(__name__)


@dataclass
class StatsSummary:
    total_users: int = 0
    total_ranges: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    failed_users: List[str] = field(default_factory=list)
    success_rate_percentage: str = "0"
    average_time_per_user_ms: str = "0"
    total_execution_time_ms: int = 0

    def to_message(self) -> dict:
        return {
            "status": "success",
            "total_users": self.total_users,
            "total_invoked_ranges": self.total_ranges,
            "total_success_processed_users": self.success,
            "total_failed_processed_users": self.failed,
            "total_skipped_users": self.skipped,
            "success_rate_percentage": self.success_rate_percentage,
            "total_execution_time_ms": self.total_execution_time_ms,
            "average_time_per_user_ms": self.average_time_per_user_ms,
            "failed_process_users": self.failed_users,
        }


def build_ranges(total: int, size_per_range: int):
    return [(i * size_per_range, size_per_range) for i in range(math.ceil(total / size_per_range))]


def summarize(total_users: int, results: List[RangeResult], execution_ms: int) -> StatsSummary:
    success = sum(r.success_count for r in results)
    duration = sum(r.duration_ms for r in results)

    return StatsSummary(
        total_users=total_users,
        total_ranges=len(results),
        success=success,
        failed=sum(r.failed_count for r in results),
        skipped=sum(r.skipped_count for r in results),
        failed_users=[user for r in results for user in r.failed_users],
        success_rate_percentage=f"{success / total_users * 100:.2f}" if total_users else "0",
        average_time_per_user_ms=f"{duration / success:.2f}" if success else "0",
        total_execution_time_ms=execution_ms,
    )


async def dispatch_stats(
    db,
    settings: Optional[StatsSettings] = None,
    test_mode: bool = False,
    range_worker=process_range,
) -> StatsSummary:
    """Process every playback range with at most max_concurrency in flight"""
    settings = settings or StatsSettings.from_env()
    started = time.monotonic()

    total = get_collection(db, "playbacks", test_mode).count_documents({})
    ranges = build_ranges(total, settings.size_per_range)
    logger.info(
        f"🚀 Dispatching {len(ranges)} ranges for {total} playback documents "
        f"(concurrency: {settings.max_concurrency})"
    )

    semaphore = asyncio.Semaphore(settings.max_concurrency)

    async def run(skip: int, limit: int) -> RangeResult:
        async with semaphore:
            return await asyncio.to_thread(range_worker, db, skip, limit, test_mode)

    results = await asyncio.gather(*(run(skip, limit) for skip, limit in ranges))

    summary = summarize(total, list(results), int((time.monotonic() - started) * 1000))
    logger.info(
        f"🎉 Dispatcher completed in {summary.total_execution_time_ms}ms with {summary.total_ranges} ranges: "
        f"{summary.success} processed, {summary.failed} failed"
    )
    return summary


async def run_stats_job(db, test_mode: bool = False, reporter: Optional[JobReporter] = None,
                        settings: Optional[StatsSettings] = None) -> dict:
    reporter = reporter or JobReporter.from_env()
    try:
        summary = await dispatch_stats(db, settings=settings, test_mode=test_mode)
    except Exception as e:
        logger.error(f"❌ Stats dispatcher failed: {e}")
        reporter.report({"status": "failure", "error": str(e)})
        raise

    reporter.report(summary.to_message())
    return asdict(summary)
