"""
In-process job scheduler

Schedules are written as:
    daily@HH:MM
    weekly@<monday..sunday>@HH:MM
    monthly@<day 1-28 or last>@HH:MM
All times are UTC.
"""

import asyncio
import calendar
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from .time_period import add_months, utcnow

logger = logging.getLogger(__name__)

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

DEFAULT_SCHEDULES = {
    "stats": "daily@00:00",
    "monthly-stats": "monthly@last@23:00",
    "playback-cleanup": "weekly@sunday@02:00",
}


def _parse_clock(value: str):
    try:
        hour, minute = (int(part) for part in value.split(":"))
    except ValueError:
        raise ValueError(f"Invalid time of day: {value}")
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Invalid time of day: {value}")
    return hour, minute


def _last_day_of_month(moment: datetime) -> datetime:
    return moment.replace(day=calendar.monthrange(moment.year, moment.month)[1])


def next_run(schedule: str, now: Optional[datetime] = None) -> datetime:
    """Return the first run time strictly after now"""
    now = now or utcnow()
    parts = schedule.strip().lower().split("@")
    kind = parts[0]

    if kind == "daily" and len(parts) == 2:
        hour, minute = _parse_clock(parts[1])
        candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        return candidate if candidate > now else candidate + timedelta(days=1)

    if kind == "weekly" and len(parts) == 3:
        if parts[1] not in WEEKDAYS:
            raise ValueError(f"Invalid weekday: {parts[1]}")
        hour, minute = _parse_clock(parts[2])
        days_ahead = (WEEKDAYS.index(parts[1]) - now.weekday()) % 7
        candidate = (now + timedelta(days=days_ahead)).replace(hour=hour, minute=minute, second=0, microsecond=0)
        return candidate if candidate > now else candidate + timedelta(days=7)

    if kind == "monthly" and len(parts) == 3 and parts[1] == "last":
        # the monthly stats window is the current month, so run before it closes
        hour, minute = _parse_clock(parts[2])
        candidate = _last_day_of_month(now).replace(hour=hour, minute=minute, second=0, microsecond=0)
        if candidate > now:
            return candidate
        return _last_day_of_month(add_months(candidate.replace(day=1), 1))

    if kind == "monthly" and len(parts) == 3:
        day = int(parts[1]) if parts[1].isdigit() else 0
        if not 1 <= day <= 28:
            raise ValueError(f"Invalid day of month: {parts[1]}")
        hour, minute = _parse_clock(parts[2])
        candidate = now.replace(day=day, hour=hour, minute=minute, second=0, microsecond=0)
        return candidate if candidate > now else add_months(candidate, 1)

    raise ValueError(f"Invalid schedule: {schedule}")


@dataclass
class ScheduledJob:
    name: str
    schedule: str
    func: Callable[[], Awaitable]
    next_run_at: Optional[datetime] = None


class JobScheduler:
    """Runs registered coroutine jobs on their schedules in a background thread"""

    def __init__(self, poll_seconds: float = 30.0, clock: Callable[[], datetime] = utcnow):
        self.jobs: Dict[str, ScheduledJob] = {}
        self.poll_seconds = poll_seconds
        self.clock = clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def add_job(self, name: str, schedule: str, func: Callable[[], Awaitable]):
        job = ScheduledJob(name=name, schedule=schedule, func=func, next_run_at=next_run(schedule, self.clock()))
        self.jobs[name] = job
        logger.info(f"🗓️  Scheduled {name} ({schedule}), next run at {job.next_run_at.isoformat()}")
        return job

    def due_jobs(self, now: Optional[datetime] = None) -> List[ScheduledJob]:
        now = now or self.clock()
        return [job for job in self.jobs.values() if job.next_run_at <= now]

    async def run_pending(self, now: Optional[datetime] = None) -> List[str]:
        """Run every due job once; one job failing does not stop the others"""
        now = now or self.clock()
        ran = []
        for job in self.due_jobs(now):
            logger.info(f"▶️  Running scheduled job: {job.name}")
            try:
                await job.func()
            except Exception as e:
                logger.error(f"❌ Scheduled job {job.name} failed: {e}")
            job.next_run_at = next_run(job.schedule, now)
            ran.append(job.name)
        return ran

    async def _loop(self):
        while not self._stop.is_set():
            await self.run_pending()
            await asyncio.get_running_loop().run_in_executor(None, self._stop.wait, self.poll_seconds)

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=lambda: asyncio.run(self._loop()), daemon=True, name="job-scheduler")
        self._thread.start()
        logger.info("🚀 Job scheduler started")

    def stop(self, timeout: float = 5.0):
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
        logger.info("🛑 Job scheduler stopped")
