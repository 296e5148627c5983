import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from playback_jobs.jobs.scheduler import DEFAULT_SCHEDULES, JobScheduler, next_run
from playback_jobs.jobs.time_period import month_bounds

# a Wednesday
NOW = datetime(2025, 5, 14, 10, 30, tzinfo=timezone.utc)


def test_daily_later_today():
    assert next_run("daily@12:00", NOW) == datetime(2025, 5, 14, 12, 0, tzinfo=timezone.utc)


def test_daily_rolls_to_tomorrow():
    assert next_run("daily@10:30", NOW) == datetime(2025, 5, 15, 10, 30, tzinfo=timezone.utc)


def test_weekly_next_sunday():
    assert next_run("weekly@sunday@02:00", NOW) == datetime(2025, 5, 18, 2, 0, tzinfo=timezone.utc)


def test_weekly_same_day_already_passed():
    assert next_run("weekly@wednesday@09:00", NOW) == datetime(2025, 5, 21, 9, 0, tzinfo=timezone.utc)


def test_monthly_rolls_to_next_month():
    assert next_run("monthly@1@01:00", NOW) == datetime(2025, 6, 1, 1, 0, tzinfo=timezone.utc)
    assert next_run("monthly@20@01:00", NOW) == datetime(2025, 5, 20, 1, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("schedule", ["hourly@10", "daily@25:00", "weekly@someday@01:00", "monthly@31@01:00", "daily"])
def test_invalid_schedules(schedule):
    with pytest.raises(ValueError):
        next_run(schedule, NOW)


def test_run_pending_isolates_failures():
    calls = []

    async def broken():
        calls.append("broken")
        raise RuntimeError("boom")

    async def healthy():
        calls.append("healthy")

    scheduler = JobScheduler(clock=lambda: NOW)
    scheduler.add_job("broken", "daily@11:00", broken)
    scheduler.add_job("healthy", "daily@11:00", healthy)

    later = datetime(2025, 5, 14, 11, 0, 5, tzinfo=timezone.utc)
    ran = asyncio.run(scheduler.run_pending(later))

    assert sorted(ran) == ["broken", "healthy"]
    assert sorted(calls) == ["broken", "healthy"]
    assert scheduler.jobs["healthy"].next_run_at == datetime(2025, 5, 15, 11, 0, tzinfo=timezone.utc)


def test_nothing_due_before_schedule():
    async def job():
        raise AssertionError("should not run")

    scheduler = JobScheduler(clock=lambda: NOW)
    scheduler.add_job("stats", "daily@11:00", job)

    assert asyncio.run(scheduler.run_pending(NOW)) == []


def test_monthly_last_day_schedule():
    assert next_run("monthly@last@23:00", NOW) == datetime(2025, 5, 31, 23, 0, tzinfo=timezone.utc)
    after_run = datetime(2025, 5, 31, 23, 30, tzinfo=timezone.utc)
    assert next_run("monthly@last@23:00", after_run) == datetime(2025, 6, 30, 23, 0, tzinfo=timezone.utc)
    leap = datetime(2024, 2, 3, tzinfo=timezone.utc)
    assert next_run("monthly@last@23:00", leap) == datetime(2024, 2, 29, 23, 0, tzinfo=timezone.utc)


def test_default_monthly_run_falls_inside_the_month_it_reports():
    run_at = next_run(DEFAULT_SCHEDULES["monthly-stats"], NOW)
    start, end = month_bounds(run_at)

    # every daily stats run of the month has already happened
    last_daily = next_run(DEFAULT_SCHEDULES["stats"], run_at) - timedelta(days=1)
    assert start <= NOW < end
    assert start <= last_daily < run_at < end
