"""
Playback Data Cleanup Job
Deletes playback documents older than the retention window in batches,
stopping before the run-time limit is reached
"""

import time
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional, Callable, Tuple

from pymongo import DeleteOne

from ..config import CleanupSettings
from ..db.connection import get_collection
from ..notifications.reporter import JobReporter
from .time_period import cutoff_date as compute_cutoff, utcnow

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    success: bool
    records_deleted: int
    total_records_found: int
    remaining_records: int
    completion_percentage: float
    was_timeout_stopped: bool
    execution_time_ms: int
    cutoff_date: str
    processing_mode: str
    batch_size: Optional[int]
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def cleanup_playback_data(
    collection,
    cutoff: datetime,
    count_to_delete: int,
    settings: CleanupSettings,
    started_at: float,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> Tuple[int, bool]:
    """
    Delete playbacks created before cutoff

    Small datasets go through a single delete_many; larger ones are deleted
    in unordered bulk batches of settings.batch_size, checking the safety
    timeout after every full batch.

    Returns:
        (records deleted, whether the safety timeout stopped the run)
    """
    query = {"createdAt": {"$lt": cutoff}}

    if count_to_delete <= settings.batch_size:
        logger.info("Small dataset, using direct deletion")
        return collection.delete_many(query).deleted_count, False

    logger.info(f"Large dataset detected ({count_to_delete} records), using cursor-based batch deletion")
    safety_seconds = settings.timeout_safety_minutes * 60
    total_deleted = 0
    batch_number = 1
    batch = []
    timed_out = False

    cursor = collection.find(query, projection={"_id": 1})
    try:
        for record in cursor:
            batch.append(DeleteOne({"_id": record["_id"]}))
            if len(batch) < settings.batch_size:
                continue

            logger.info(f"Processing batch {batch_number} ({len(batch)} operations)...")
            deleted = collection.bulk_write(batch, ordered=False).deleted_count
            total_deleted += deleted
            logger.info(f"Batch {batch_number} completed: deleted {deleted} records (total: {total_deleted})")

            batch = []
            batch_number += 1

            if settings.batch_delay_ms > 0:
                sleep(settings.batch_delay_ms / 1000)

            if clock() - started_at > safety_seconds:
                logger.info(
                    f"⏰ Safety timeout reached ({settings.timeout_safety_minutes} minutes), "
                    f"stopping batch processing gracefully"
                )
                timed_out = True
                break

        if batch and not timed_out:
            logger.info(f"Processing final batch ({len(batch)} operations)...")
            deleted = collection.bulk_write(batch, ordered=False).deleted_count
            total_deleted += deleted
            logger.info(f"Final batch completed: deleted {deleted} records (total: {total_deleted})")
    finally:
        cursor.close()

    return total_deleted, timed_out


def cleanup_old_playback_data(
    db,
    test_mode: bool = False,
    settings: Optional[CleanupSettings] = None,
    now: Optional[datetime] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> CleanupResult:
    settings = settings or CleanupSettings.from_env()
    started_at = clock()
    collection = get_collection(db, "playbacks", test_mode)
    cutoff = compute_cutoff(settings.days, now or utcnow())

    logger.info(f"Starting cleanup - keeping {settings.days} days of data")
    count_to_delete = collection.count_documents({"createdAt": {"$lt": cutoff}})
    logger.info(f"Found {count_to_delete} records to delete")

    if count_to_delete == 0:
        return CleanupResult(
            success=True,
            records_deleted=0,
            total_records_found=0,
            remaining_records=0,
            completion_percentage=100.0,
            was_timeout_stopped=False,
            execution_time_ms=int((clock() - started_at) * 1000),
            cutoff_date=cutoff.isoformat(),
            processing_mode="none",
            batch_size=None,
            message="No records to delete",
        )

    total_deleted, timed_out = cleanup_playback_data(
        collection, cutoff, count_to_delete, settings, started_at, clock=clock, sleep=sleep
    )

    remaining = max(count_to_delete - total_deleted, 0)
    batched = count_to_delete > settings.batch_size

    if timed_out and remaining > 0:
        logger.info(
            f"⏰ Cleanup stopped early due to timeout: {total_deleted} records deleted, {remaining} remaining"
        )
    else:
        logger.info(f"✅ Cleanup completed: {total_deleted} records deleted")

    return CleanupResult(
        success=True,
        records_deleted=total_deleted,
        total_records_found=count_to_delete,
        remaining_records=remaining,
        completion_percentage=round(total_deleted / count_to_delete * 100, 1),
        was_timeout_stopped=timed_out,
        execution_time_ms=int((clock() - started_at) * 1000),
        cutoff_date=cutoff.isoformat(),
        processing_mode="batch" if batched else "direct",
        batch_size=settings.batch_size if batched else None,
    )


def run_playback_cleanup(
    db,
    test_mode: bool = False,
    triggered_by: str = "manual",
    reporter: Optional[JobReporter] = None,
    settings: Optional[CleanupSettings] = None,
) -> dict:
    """Run the cleanup and report its summary (or error) to the configured channels"""
    reporter = reporter or JobReporter.from_env()
    started = time.monotonic()
    logger.info(f"🚀 Playback Data Cleanup started{' (TEST MODE)' if test_mode else ''}")

    try:
        result = cleanup_old_playback_data(db, test_mode=test_mode, settings=settings)
    except Exception as e:
        logger.error(f"❌ Playback Data Cleanup failed: {e}")
        reporter.report({
            "source": "playback-data-cleanup",
            "type": "cleanup_error",
            "data": {
                "success": False,
                "error": str(e),
                "executionTime": f"{int((time.monotonic() - started) * 1000)}ms",
                "timestamp": utcnow().isoformat(),
                "testMode": test_mode,
            },
        })
        raise

    execution_ms = int((time.monotonic() - started) * 1000)
    summary = {
        "recordsDeleted": result.records_deleted,
        "totalRecordsFound": result.total_records_found,
        "remainingRecords": result.remaining_records,
        "completionPercentage": result.completion_percentage,
        "wasTimeoutStopped": result.was_timeout_stopped,
        "processingMode": result.processing_mode,
        "batchSize": result.batch_size,
        "cutoffDate": result.cutoff_date,
        "executionTime": f"{execution_ms}ms",
        "timestamp": utcnow().isoformat(),
        "testMode": test_mode,
        "triggeredBy": triggered_by,
    }
    reporter.report({"source": "playback-data-cleanup", "type": "cleanup_summary", "data": summary})

    logger.info(f"🎉 Playback Data Cleanup completed successfully in {execution_ms}ms")
    return summary
