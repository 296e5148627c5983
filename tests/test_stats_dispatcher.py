import asyncio
import threading
import time

import pytest

from playback_jobs.config import StatsSettings
from playback_jobs.jobs.stats_aggregation import RangeResult
from playback_jobs.jobs.stats_dispatcher import (
    build_ranges,
    dispatch_stats,
    run_stats_job,
    summarize,
)


def test_build_ranges_covers_partial_last_range():
    assert build_ranges(2500, 1000) == [(0, 1000), (1000, 1000), (2000, 1000)]
    assert build_ranges(0, 1000) == []


def test_summarize_rates_and_failed_users():
    results = [
        RangeResult(skip=0, limit=2, success_count=2, duration_ms=30),
        RangeResult(skip=2, limit=2, success_count=1, failed_count=1, failed_users=["u4"], duration_ms=15),
    ]
    summary = summarize(4, results, execution_ms=50)

    assert summary.success == 3
    assert summary.failed == 1
    assert summary.failed_users == ["u4"]
    assert summary.success_rate_percentage == "75.00"
    assert summary.average_time_per_user_ms == "15.00"
    assert summary.to_message()["status"] == "success"


def test_summarize_empty_collection():
    summary = summarize(0, [], execution_ms=1)
    assert summary.success_rate_percentage == "0"
    assert summary.average_time_per_user_ms == "0"


def test_dispatch_respects_max_concurrency(db):
    db["playbacks"].count_documents.return_value = 10
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}

    def worker(_db, skip, limit, test_mode):
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        time.sleep(0.05)
        with lock:
            state["active"] -= 1
        return RangeResult(skip=skip, limit=limit, success_count=min(limit, 10 - skip), duration_ms=5)

    summary = asyncio.run(dispatch_stats(
        db, settings=StatsSettings(size_per_range=2, max_concurrency=2), range_worker=worker
    ))

    assert summary.total_ranges == 5
    assert summary.success == 10
    assert state["peak"] <= 2


def test_dispatch_passes_test_mode_to_workers(db):
    db["test-playbacks"].count_documents.return_value = 1
    seen = []

    def worker(_db, skip, limit, test_mode):
        seen.append(test_mode)
        return RangeResult(skip=skip, limit=limit, success_count=1)

    asyncio.run(dispatch_stats(db, settings=StatsSettings(), test_mode=True, range_worker=worker))
    assert seen == [True]


def test_run_stats_job_reports_failure_and_reraises(db, reporter):
    db["playbacks"].count_documents.side_effect = RuntimeError("db down")

    with pytest.raises(RuntimeError):
        asyncio.run(run_stats_job(db, reporter=reporter, settings=StatsSettings()))

    reporter.report.assert_called_once_with({"status": "failure", "error": "db down"})


def test_run_stats_job_reports_summary(db, reporter):
    db["playbacks"].count_documents.return_value = 0

    summary = asyncio.run(run_stats_job(db, reporter=reporter, settings=StatsSettings()))

    assert summary["total_users"] == 0
    message = reporter.report.call_args[0][0]
    assert message["status"] == "success"
    assert message["total_invoked_ranges"] == 0
