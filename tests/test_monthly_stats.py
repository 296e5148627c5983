from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests
from bson import ObjectId
from pymongo.errors import OperationFailure

from playback_jobs.errors import JobError
from playback_jobs.jobs import monthly_stats
from playback_jobs.jobs.monthly_stats import (
    generate_monthly_notifications,
    run_monthly_stats,
    trigger_socket_notifications,
)

START = datetime(2025, 5, 1, tzinfo=timezone.utc)
END = datetime(2025, 6, 1, tzinfo=timezone.utc)
USER_A, USER_B = ObjectId(), ObjectId()
NOTIFICATION_ID = ObjectId()


def seed_monthly_users(db, prefix=""):
    db[f"{prefix}stats"].aggregate.return_value = [{"_id": USER_A}, {"_id": USER_B}]
    db[f"{prefix}notifications"].insert_one.return_value = MagicMock(inserted_id=NOTIFICATION_ID)
    db[f"{prefix}users"].find.return_value = [{"_id": USER_A}]
    db[f"{prefix}users"].update_many.return_value = MagicMock(modified_count=1)


def test_no_monthly_stats_creates_nothing(db):
    db["stats"].aggregate.return_value = []

    result = generate_monthly_notifications(db, START, END)

    assert result == {
        "notifications_created": 0,
        "users_processed": 0,
        "users_updated": 0,
        "notification_id": None,
        "socket_user_ids": [],
    }
    db["notifications"].insert_one.assert_not_called()


def test_aggregation_matches_month_window(db):
    db["stats"].aggregate.return_value = []

    generate_monthly_notifications(db, START, END)

    pipeline = db["stats"].aggregate.call_args[0][0]
    assert pipeline[0] == {"$unwind": "$stats"}
    assert pipeline[1] == {"$match": {"stats.createdAt": {"$gte": START, "$lt": END}}}
    assert pipeline[2] == {"$group": {"_id": "$user"}}


def test_notification_pushed_to_opted_in_users(db):
    seed_monthly_users(db)

    result = generate_monthly_notifications(db, START, END)

    assert result["notifications_created"] == 1
    assert result["users_processed"] == 2
    assert result["users_updated"] == 1
    assert result["notification_id"] == NOTIFICATION_ID
    assert result["socket_user_ids"] == [str(USER_A)]

    inserted = db["notifications"].insert_one.call_args[0][0]
    assert inserted["type"] == "monthlyStatistic"

    query, update = db["users"].update_many.call_args[0]
    assert query == {
        "_id": {"$in": [USER_A, USER_B]},
        "userPreferences.notifications.monthlyStatistic": True,
    }
    assert update == {"$push": {"notifications.unread": NOTIFICATION_ID}}


def test_test_mode_uses_test_collections(db):
    seed_monthly_users(db, prefix="test-")

    result = generate_monthly_notifications(db, START, END, test_mode=True)

    assert result["users_updated"] == 1
    db["stats"].aggregate.assert_not_called()


def test_aggregation_failure_raises_job_error(db):
    db["stats"].aggregate.side_effect = OperationFailure("bad pipeline")

    with pytest.raises(JobError, match="Monthly stats generation failed"):
        generate_monthly_notifications(db, START, END)


def test_socket_trigger_skipped_without_config(monkeypatch):
    post = MagicMock()
    monkeypatch.setattr(monthly_stats.requests, "post", post)

    assert trigger_socket_notifications(["u1"], None, "secret") is False
    post.assert_not_called()


def test_socket_trigger_posts_user_ids(monkeypatch):
    post = MagicMock()
    monkeypatch.setattr(monthly_stats.requests, "post", post)

    assert trigger_socket_notifications(["u1", "u2"], "https://api.example.com/", "secret") is True

    post.assert_called_once_with(
        "https://api.example.com/notifications/socket",
        json={"userIds": ["u1", "u2"]},
        headers={"x-api-key": "secret"},
        timeout=10.0,
    )


def test_socket_trigger_failure_is_not_raised(monkeypatch):
    monkeypatch.setattr(monthly_stats.requests, "post", MagicMock(side_effect=requests.ConnectionError("down")))

    assert trigger_socket_notifications(["u1"], "https://api.example.com", "secret") is False


def test_run_monthly_stats_full_flow(db, reporter, monkeypatch):
    seed_monthly_users(db)
    socket = MagicMock(return_value=True)
    cleanup = MagicMock(return_value={})
    monkeypatch.setattr(monthly_stats, "trigger_socket_notifications", socket)
    monkeypatch.setattr(monthly_stats, "run_playback_cleanup", cleanup)
    monkeypatch.setenv("API_DOMAIN", "https://api.example.com")
    monkeypatch.setenv("API_INTERNAL_SECRET_KEY", "secret")

    summary = run_monthly_stats(db, now=datetime(2025, 5, 20, tzinfo=timezone.utc), reporter=reporter)

    assert summary["notificationsCreated"] == 1
    assert summary["usersUpdated"] == 1
    assert summary["notificationId"] == str(NOTIFICATION_ID)
    assert summary["cleanupTriggered"] is True
    socket.assert_called_once_with([str(USER_A)], "https://api.example.com", "secret")
    assert cleanup.call_args.kwargs["triggered_by"] == "monthly-stats-notification"

    message = reporter.report.call_args[0][0]
    assert message["type"] == "monthly_stats_summary"
    assert message["data"] is summary


def test_run_monthly_stats_cleanup_failure_is_flagged(db, reporter, monkeypatch):
    db["stats"].aggregate.return_value = []
    monkeypatch.setattr(monthly_stats, "run_playback_cleanup", MagicMock(side_effect=RuntimeError("cleanup")))

    summary = run_monthly_stats(db, reporter=reporter)

    assert summary["cleanupTriggered"] is False
    assert summary["notificationId"] is None


def test_run_monthly_stats_reports_error_and_reraises(db, reporter):
    db["stats"].aggregate.side_effect = OperationFailure("bad pipeline")

    with pytest.raises(JobError):
        run_monthly_stats(db, reporter=reporter, run_cleanup=False)

    message = reporter.report.call_args[0][0]
    assert message["type"] == "monthly_stats_error"
    assert "Monthly stats generation failed" in message["data"]["error"]
