from __future__ import annotations

import logging
import math
import threading
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .storage.state import ScheduleState

LOGGER = logging.getLogger(__name__)

POLL_JOB_ID = "weather_poll_job"
DEFAULT_RTC_WAKEALARM_PATH = Path("/sys/class/rtc/rtc0/wakealarm")
MISFIRE_GRACE_SECONDS = 60


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SchedulerState(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    STOPPED = "stopped"


class ScheduleStore(Protocol):
    def load(self, job_id: str) -> ScheduleState | None:
        ...

    def save(self, job_id: str, *, anchor: datetime, interval_seconds: int) -> None:
        ...


class WakeAlarm(Protocol):
    def arm(self, when: datetime) -> None:
        ...

    def release(self) -> None:
        ...


class RtcWakeAlarm:
    """Programs the real-time clock so a suspended device resumes for the next tick."""

    def __init__(self, path: Path = DEFAULT_RTC_WAKEALARM_PATH) -> None:
        self._path = Path(path)

    def _write(self, value: str) -> None:
        try:
            self._path.write_text(value, encoding="ascii")
        except OSError as exc:
            LOGGER.warning("Could not write wake alarm %s: %s", self._path, exc)

    def arm(self, when: datetime) -> None:
        # The kernel rejects a new alarm while one is pending.
        self._write("0")
        self._write(str(int(when.timestamp())))

    def release(self) -> None:
        self._write("0")


def next_fire_time(anchor: datetime, interval_seconds: int, now: datetime) -> datetime:
    """Earliest ``anchor + k * interval`` that is not before ``now``."""
    if interval_seconds <= 0:
        raise ValueError("interval_seconds must be > 0")
    if anchor >= now:
        return anchor
    elapsed = (now - anchor).total_seconds()
    periods = math.ceil(elapsed / interval_seconds)
    return anchor + timedelta(seconds=periods * interval_seconds)


class PollScheduler:
    def __init__(
        self,
        run: Callable[[], object],
        *,
        interval_seconds: int,
        state_store: ScheduleStore,
        job_id: str = POLL_JOB_ID,
        wake: bool = False,
        wake_alarm: WakeAlarm | None = None,
        scheduler: BackgroundScheduler | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._run = run
        self._interval_seconds = interval_seconds
        self._state_store = state_store
        self._job_id = job_id
        self._wake = wake
        self._wake_alarm = wake_alarm if wake else None
        self._scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)
        self._clock = clock
        self._anchor: datetime | None = None
        self._stopped = False
        self._lock = threading.RLock()

    @property
    def interval_seconds(self) -> int:
        return self._interval_seconds

    @property
    def anchor(self) -> datetime | None:
        return self._anchor

    @property
    def state(self) -> SchedulerState:
        if self._stopped:
            return SchedulerState.STOPPED
        if self._scheduler.running and self._scheduler.get_job(self._job_id) is not None:
            return SchedulerState.SCHEDULED
        return SchedulerState.IDLE

    @property
    def next_tick_at(self) -> datetime | None:
        if not self._scheduler.running:
            return None
        job = self._scheduler.get_job(self._job_id)
        if job is None:
            return None
        return job.next_run_time

    def _trigger(self, anchor: datetime) -> IntervalTrigger:
        return IntervalTrigger(
            seconds=self._interval_seconds,
            start_date=anchor,
            timezone=timezone.utc,
        )

    def _restore_anchor(self, now: datetime) -> datetime:
        stored = self._state_store.load(self._job_id)
        if stored is None:
            anchor = now
        elif stored.interval_seconds != self._interval_seconds:
            # Keep the tick that was already pending, then switch to the new interval.
            anchor = next_fire_time(stored.anchor, stored.interval_seconds, now)
        else:
            return stored.anchor

        self._state_store.save(
            self._job_id, anchor=anchor, interval_seconds=self._interval_seconds
        )
        return anchor

    def start(self, *, paused: bool = False) -> None:
        with self._lock:
            if self._stopped:
                raise RuntimeError("PollScheduler cannot be restarted after stop()")
            if self.state is SchedulerState.SCHEDULED:
                return

            now = self._clock()
            self._anchor = self._restore_anchor(now)
            first_tick = next_fire_time(self._anchor, self._interval_seconds, now)
            self._scheduler.add_job(
                self._tick,
                trigger=self._trigger(self._anchor),
                id=self._job_id,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=None if self._wake else MISFIRE_GRACE_SECONDS,
                next_run_time=first_tick,
            )
            if not self._scheduler.running:
                self._scheduler.start(paused=paused)
            self._arm_wake_alarm(first_tick)
            LOGGER.info(
                "Weather poll scheduled every %ss, next tick at %s",
                self._interval_seconds,
                first_tick.isoformat(),
            )

    def set_interval(self, interval_seconds: int) -> None:
        """Change the interval from the next scheduling computation on.

        A tick that is already pending keeps its time.
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")

        with self._lock:
            if interval_seconds == self._interval_seconds:
                return
            self._interval_seconds = interval_seconds
            pending = self.next_tick_at
            if pending is None:
                LOGGER.info("Weather poll interval set to %ss", interval_seconds)
                return

            self._anchor = pending
            self._state_store.save(
                self._job_id, anchor=pending, interval_seconds=interval_seconds
            )
            self._scheduler.modify_job(
                self._job_id,
                trigger=self._trigger(pending),
                next_run_time=pending,
            )
            LOGGER.info(
                "Weather poll interval set to %ss after the tick at %s",
                interval_seconds,
                pending.isoformat(),
            )

    def add_interval_job(self, func: Callable[[], object], *, seconds: int, job_id: str) -> None:
        self._scheduler.add_job(
            func,
            "interval",
            seconds=seconds,
            id=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=MISFIRE_GRACE_SECONDS,
        )

    def _tick(self) -> None:
        try:
            self._run()
        except Exception:
            LOGGER.exception("Weather poll tick failed")
        finally:
            anchor = self._anchor
            if anchor is not None and not self._stopped:
                upcoming = next_fire_time(
                    anchor, self._interval_seconds, self._clock() + timedelta(seconds=1)
                )
                self._arm_wake_alarm(upcoming)

    def _arm_wake_alarm(self, when: datetime) -> None:
        if self._wake_alarm is not None:
            self._wake_alarm.arm(when)

    def stop(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            if self._scheduler.running:
                try:
                    self._scheduler.remove_job(self._job_id)
                except JobLookupError:
                    pass
                self._scheduler.shutdown(wait=False)
            if self._wake_alarm is not None:
                self._wake_alarm.release()
            LOGGER.info("Weather poll scheduler stopped")

    close = stop
