"""
Fasting timer: derived elapsed/remaining time for the active session.

The timer never stores a "paused duration". Every tick recomputes its fields
from the wall clock, so pausing only stops the periodic refresh; the fast's
real timeline keeps running.

Loop states: STOPPED -> RUNNING <-> PAUSED -> STOPPED
"""
import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from django.utils import timezone

from . import clock

logger = logging.getLogger(__name__)

TICK_JOB_ID = 'fasting-timer-tick'
TICK_INTERVAL_SECONDS = 1


class TimerLoopState(str, Enum):
    STOPPED = 'stopped'
    RUNNING = 'running'
    PAUSED = 'paused'


@dataclass
class TimerState:
    """Timer fields for one active session, in whole seconds."""

    start_time: datetime
    target_end_time: datetime
    elapsed_seconds: int = 0
    remaining_seconds: int = 0
    is_running: bool = True
    is_paused: bool = False

    @classmethod
    def for_session(cls, start_time: datetime, target_hours: float, now: datetime) -> 'TimerState':
        state = cls(start_time=start_time, target_end_time=start_time + timedelta(hours=target_hours))
        state.recompute(now)
        return state

    @property
    def total_seconds(self) -> int:
        return int((self.target_end_time - self.start_time).total_seconds())

    def recompute(self, now: datetime) -> None:
        self.elapsed_seconds = max(0, math.floor((now - self.start_time).total_seconds()))
        self.remaining_seconds = max(0, math.floor((self.target_end_time - now).total_seconds()))

    def progress(self) -> float:
        return clock.progress(self.elapsed_seconds, self.total_seconds)


class FastingTimer:
    """
    Owns the TimerState of the active session and its periodic tick job.

    The tick job is registered on an APScheduler scheduler under a fixed id
    with replace_existing=True, so at most one tick job exists no matter how
    often pause/resume are called. Without a scheduler the timer is ticked
    manually.
    """

    def __init__(
        self,
        scheduler=None,
        on_complete: Optional[Callable[[], None]] = None,
        interval_seconds: int = TICK_INTERVAL_SECONDS,
    ):
        self.scheduler = scheduler
        self.on_complete = on_complete
        self.interval_seconds = interval_seconds
        self._state: Optional[TimerState] = None
        self._loop_state = TimerLoopState.STOPPED
        self._completion_fired = False
        self._lock = threading.RLock()

    # ---- Read-only properties ----

    @property
    def state(self) -> Optional[TimerState]:
        return self._state

    @property
    def loop_state(self) -> TimerLoopState:
        return self._loop_state

    @property
    def is_running(self) -> bool:
        return self._loop_state == TimerLoopState.RUNNING

    # ---- Loop control ----

    def start(self, start_time: datetime, target_hours: float, now: Optional[datetime] = None) -> TimerState:
        """Build a fresh TimerState and enter RUNNING."""
        now = now or timezone.now()
        with self._lock:
            self._state = TimerState.for_session(start_time, target_hours, now)
            self._completion_fired = False
        self.resume(now=now)
        return self._state

    def pause(self) -> None:
        """Stop the periodic refresh, keeping the last snapshot."""
        with self._lock:
            if self._state is None or self._loop_state != TimerLoopState.RUNNING:
                return
            self._remove_tick_job()
            self._state.is_paused = True
            self._loop_state = TimerLoopState.PAUSED
        logger.debug("Timer paused")

    def resume(self, now: Optional[datetime] = None) -> None:
        """Recompute from the wall clock and (re)start the periodic refresh."""
        with self._lock:
            if self._state is None:
                return
            self._remove_tick_job()
            self._state.is_paused = False
            self._state.is_running = True
            self._state.recompute(now or timezone.now())
            self._loop_state = TimerLoopState.RUNNING
            self._add_tick_job()
        logger.debug("Timer running")

    def stop(self) -> None:
        """Tear down the tick job and discard the state."""
        with self._lock:
            self._remove_tick_job()
            self._state = None
            self._loop_state = TimerLoopState.STOPPED
            self._completion_fired = False

    def retarget(self, start_time: datetime, target_hours: float, now: Optional[datetime] = None) -> None:
        """Move the start (and therefore the target end) without restarting the loop."""
        with self._lock:
            if self._state is None:
                return
            self._state.start_time = start_time
            self._state.target_end_time = start_time + timedelta(hours=target_hours)
            self._state.recompute(now or timezone.now())
            self._completion_fired = False

    def rearm_completion(self) -> None:
        """Allow the completion callback to fire again (after a failed auto-end)."""
        with self._lock:
            self._completion_fired = False

    # ---- Tick ----

    def tick(self, now: Optional[datetime] = None) -> Optional[TimerState]:
        """
        Recompute elapsed/remaining seconds. The first tick that sees
        remaining == 0 fires on_complete; later ticks do not.
        """
        fire = False
        with self._lock:
            state = self._state
            if state is None or self._loop_state != TimerLoopState.RUNNING:
                return state
            state.recompute(now or timezone.now())
            if state.remaining_seconds == 0 and not self._completion_fired:
                self._completion_fired = True
                fire = True

        if fire and self.on_complete is not None:
            logger.info("Fasting target reached")
            self.on_complete()
        return state

    def snapshot(self) -> dict:
        """Display values for the current state."""
        state = self._state
        if state is None:
            return {
                'elapsed': '00:00:00',
                'remaining': '00:00:00',
                'progress': 0.0,
                'isRunning': False,
                'elapsedHours': '0.0',
                'remainingHours': '0.0',
            }
        return {
            'elapsed': clock.format_duration(state.elapsed_seconds),
            'remaining': clock.format_duration(state.remaining_seconds),
            'progress': state.progress(),
            'isRunning': state.is_running and not state.is_paused,
            'elapsedHours': clock.format_hours(state.elapsed_seconds),
            'remainingHours': clock.format_hours(state.remaining_seconds),
        }

    # ---- Scheduler plumbing ----

    def _add_tick_job(self) -> None:
        if self.scheduler is None:
            return
        self.scheduler.add_job(
            self.tick,
            trigger='interval',
            seconds=self.interval_seconds,
            id=TICK_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def _remove_tick_job(self) -> None:
        if self.scheduler is None:
            return
        if self.scheduler.get_job(TICK_JOB_ID):
            self.scheduler.remove_job(TICK_JOB_ID)
