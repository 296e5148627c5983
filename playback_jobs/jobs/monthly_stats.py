"""
Monthly Stats Notification Job
Creates one monthly statistic notification for every user with stats this
month, pushes it to opted-in users and then runs the playback cleanup
"""

import time
import logging
from datetime import datetime
from typing import Dict, List, Optional

import requests
from pymongo.errors import PyMongoError

from .. import config
from ..db.connection import get_collection
from ..errors import JobError
from ..notifications.reporter import JobReporter
from .playback_cleanup import run_playback_cleanup
from .time_period import month_bounds, utcnow

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = "monthlyStatistic"
OPT_IN_FIELD = "userPreferences.notifications.monthlyStatistic"
SOCKET_TRIGGER_PATH = "/notifications/socket"


def generate_monthly_notifications(db, start: datetime, end: datetime, test_mode: bool = False) -> Dict:
    stats_collection = get_collection(db, "stats", test_mode)
    notifications_collection = get_collection(db, "notifications", test_mode)
    users_collection = get_collection(db, "users", test_mode)

    logger.info("📊 Processing monthly notifications...")
    try:
        monthly_users = list(stats_collection.aggregate([
            {"$unwind": "$stats"},
            {"$match": {"stats.createdAt": {"$gte": start, "$lt": end}}},
            {"$group": {"_id": "$user"}},
        ]))
    except PyMongoError as e:
        logger.error(f"❌ Aggregation failed: {e}")
        raise JobError(f"Monthly stats generation failed: {e}") from e

    logger.info(f"📈 Found {len(monthly_users)} users with monthly stats")
    if not monthly_users:
        logger.info("⏭️ No monthly stats found, skipping notification creation")
        return {
            "notifications_created": 0,
            "users_processed": 0,
            "users_updated": 0,
            "notification_id": None,
            "socket_user_ids": [],
        }

    now = utcnow()
    notification = notifications_collection.insert_one({
        "type": NOTIFICATION_TYPE,
        "createdAt": now,
        "updatedAt": now,
    })

    user_ids = [entry["_id"] for entry in monthly_users]
    opted_in = {"_id": {"$in": user_ids}, OPT_IN_FIELD: True}
    socket_user_ids = [str(user["_id"]) for user in users_collection.find(opted_in, {"_id": 1})]

    update_result = users_collection.update_many(
        opted_in,
        {"$push": {"notifications.unread": notification.inserted_id}},
    )

    logger.info("✅ Monthly notification process completed:")
    logger.info(f"   - Users processed: {len(user_ids)}")
    logger.info(f"   - Users updated: {update_result.modified_count}")
    logger.info(f"   - Notification ID: {notification.inserted_id}")

    return {
        "notifications_created": 1,
        "users_processed": len(user_ids),
        "users_updated": update_result.modified_count,
        "notification_id": notification.inserted_id,
        "socket_user_ids": socket_user_ids,
    }


def trigger_socket_notifications(user_ids: List[str], api_domain: Optional[str],
                                 secret_key: Optional[str], timeout: float = 10.0) -> bool:
    """Ask the backend to emit notification:update to the given users"""
    if not api_domain or not secret_key:
        logger.warning("⚠️ API_DOMAIN or API_INTERNAL_SECRET_KEY not set, skipping socket notifications")
        return False

    url = api_domain.rstrip("/") + SOCKET_TRIGGER_PATH
    try:
        response = requests.post(
            url,
            json={"userIds": user_ids},
            headers={"x-api-key": secret_key},
            timeout=timeout,
        )
        response.raise_for_status()
        logger.info(f"🔔 Socket notifications triggered for {len(user_ids)} users")
        return True
    except requests.RequestException as e:
        logger.warning(f"⚠️ Failed to trigger socket notifications: {e}")
        return False


def run_monthly_stats(
    db,
    test_mode: bool = False,
    now: Optional[datetime] = None,
    run_cleanup: bool = True,
    reporter: Optional[JobReporter] = None,
) -> Dict:
    reporter = reporter or JobReporter.from_env()
    started = time.monotonic()
    logger.info(f"🚀 Monthly Stats job started{' (TEST MODE)' if test_mode else ''}")

    try:
        start, end = month_bounds(now)
        result = generate_monthly_notifications(db, start, end, test_mode)
        logger.info(f"📮 Generated {result['notifications_created']} monthly notifications")

        if result["users_updated"] > 0 and result["socket_user_ids"]:
            trigger_socket_notifications(
                result["socket_user_ids"], config.api_domain(), config.internal_secret_key()
            )

        cleanup_triggered = False
        if run_cleanup:
            try:
                run_playback_cleanup(
                    db, test_mode=test_mode, triggered_by="monthly-stats-notification", reporter=reporter
                )
                cleanup_triggered = True
            except Exception as e:
                logger.warning(f"⚠️ Playback cleanup failed: {e}")

        execution_ms = int((time.monotonic() - started) * 1000)
        summary = {
            "notificationsCreated": result["notifications_created"],
            "usersProcessed": result["users_processed"],
            "usersUpdated": result["users_updated"],
            "notificationId": str(result["notification_id"]) if result["notification_id"] else None,
            "executionTime": f"{execution_ms}ms",
            "timestamp": utcnow().isoformat(),
            "testMode": test_mode,
            "cleanupTriggered": cleanup_triggered,
        }
    except Exception as e:
        logger.error(f"❌ Monthly Stats job failed: {e}")
        reporter.report({
            "source": "monthly-stats-notification",
            "type": "monthly_stats_error",
            "data": {"error": str(e), "timestamp": utcnow().isoformat(), "testMode": test_mode},
        })
        raise

    reporter.report({"source": "monthly-stats-notification", "type": "monthly_stats_summary", "data": summary})
    logger.info(f"🎉 Monthly Stats job completed successfully in {summary['executionTime']}")
    return summary
