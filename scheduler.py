# scheduler.py
# -------------------------------
# Background scheduler for the fetch jobs.
#
# Each job gets its own daemon thread that fires once at start-up (unless told
# otherwise) and then sleeps until the next tick of its cadence. A tick that
# overruns pushes the next one out; missed ticks are skipped, never queued.
# Exceptions raised by a job are logged and the job keeps its schedule, so one
# failing feed can't stall the others.
# -------------------------------

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, tzinfo
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class Cadence:
    """When a job should run next."""

    def next_run(self, now: datetime) -> datetime:
        raise NotImplementedError


@dataclass(frozen=True)
class EveryInterval(Cadence):
    """
    Fire every `seconds`, aligned to multiples of the period since the epoch
    (so a 10s interval ticks at :00, :10, :20 ... like cron).
    """
    seconds: float

    def __post_init__(self):
        if self.seconds <= 0:
            raise ValueError("Interval must be positive")

    def next_run(self, now: datetime) -> datetime:
        ts = now.timestamp()
        next_ts = (ts // self.seconds + 1) * self.seconds
        return now + timedelta(seconds=next_ts - ts)


@dataclass(frozen=True)
class DailyAt(Cadence):
    """
    Fire once a day at hour:minute wall-clock time in `tz`, or in the
    system's local timezone when `tz` is None.
    The UTC offset is resolved for the day of the run, so the job keeps its
    wall-clock time across DST changes.
    """
    hour: int
    minute: int = 0
    tz: Optional[tzinfo] = None

    def __post_init__(self):
        if not (0 <= self.hour < 24 and 0 <= self.minute < 60):
            raise ValueError(f"Invalid time of day: {self.hour:02d}:{self.minute:02d}")

    @classmethod
    def parse(cls, value: str, tz: Optional[tzinfo] = None) -> "DailyAt":
        """Build from 'HH:MM'."""
        try:
            hour, minute = value.strip().split(":")
            return cls(int(hour), int(minute), tz)
        except ValueError as e:
            raise ValueError(f"Expected HH:MM, got {value!r}") from e

    def _localize(self, wall: datetime) -> datetime:
        if self.tz is None:
            # naive -> aware in system local time, offset looked up for that date
            return wall.astimezone()
        return wall.replace(tzinfo=self.tz)

    def next_run(self, now: datetime) -> datetime:
        wall_now = now.astimezone(self.tz).replace(tzinfo=None)
        day = wall_now.date()
        if datetime.combine(day, time(self.hour, self.minute)) <= wall_now:
            day += timedelta(days=1)
        return self._localize(datetime.combine(day, time(self.hour, self.minute)))


def local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass
class ScheduledJob:
    name: str
    func: Callable[[], object]
    cadence: Cadence
    run_at_startup: bool = True
    runs: int = field(default=0)
    failures: int = field(default=0)


class Scheduler:
    """Runs each registered job on its own daemon thread."""

    def __init__(self, clock: Callable[[], datetime] = local_now):
        self._clock = clock
        self._jobs: List[ScheduledJob] = []
        self._threads: List[threading.Thread] = []
        self._stop = threading.Event()
        self._started = False

    @property
    def jobs(self) -> List[ScheduledJob]:
        return list(self._jobs)

    @property
    def running(self) -> bool:
        return self._started and not self._stop.is_set()

    def add_job(self, name: str, func: Callable[[], object], cadence: Cadence,
                run_at_startup: bool = True) -> ScheduledJob:
        if self._started:
            raise RuntimeError("Cannot add jobs after the scheduler has started")
        job = ScheduledJob(name=name, func=func, cadence=cadence, run_at_startup=run_at_startup)
        self._jobs.append(job)
        return job

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        for job in self._jobs:
            t = threading.Thread(target=self._loop, args=(job,), name=f"job-{job.name}", daemon=True)
            self._threads.append(t)
            t.start()
        logger.info("Scheduler started with %d job(s): %s",
                    len(self._jobs), ", ".join(j.name for j in self._jobs))

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if wait:
            for t in self._threads:
                if t is not threading.current_thread():
                    t.join(timeout)
        logger.info("Scheduler stopped")

    def run_job(self, job: ScheduledJob) -> None:
        """Run one tick of `job`, containing any failure."""
        job.runs += 1
        try:
            job.func()
        except Exception:
            job.failures += 1
            logger.exception("Scheduled job %s failed", job.name)

    def _loop(self, job: ScheduledJob) -> None:
        if job.run_at_startup and not self._stop.is_set():
            self.run_job(job)
        while not self._stop.is_set():
            now = self._clock()
            delay = (job.cadence.next_run(now) - now).total_seconds()
            if self._stop.wait(max(delay, 0)):
                break
            self.run_job(job)
