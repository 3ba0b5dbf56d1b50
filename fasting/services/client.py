"""
FastingClient: wires the fasting client core together.

Owns the API client, local store, notifier, offline queue, session and
schedule stores, auto-start monitor and connectivity monitor, and runs the
periodic jobs on an APScheduler BackgroundScheduler:

- fasting timer tick every second (registered by the timer itself)
- auto-start check every 60 seconds
- schedule refresh every 5 minutes
- connectivity probe every 30 seconds

Usage:
    client = FastingClient()
    client.start()
    client.sessions.start_session('16:8', 16)
    ...
    client.shutdown()
"""
import logging
from datetime import datetime
from typing import Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from django.utils import timezone

from .api_client import HealthTrackerAPIClient, from_iso, to_iso
from .auto_start import AutoStartMonitor
from .connectivity import ConnectivityMonitor
from .local_store import LocalStore
from .notifications import Notifier
from .offline_queue import OfflineQueue
from .schedule_store import ScheduledFastsStore, ScheduleConflictError
from .session_store import FastingSessionStore

logger = logging.getLogger(__name__)

AUTO_START_JOB_ID = 'fasting-auto-start'
REFRESH_JOB_ID = 'fasting-schedule-refresh'
CONNECTIVITY_JOB_ID = 'fasting-connectivity'

AUTO_START_INTERVAL_SECONDS = 60
REFRESH_INTERVAL_SECONDS = 5 * 60
CONNECTIVITY_INTERVAL_SECONDS = 30


class FastingClient:
    def __init__(self, api_client=None, local_store=None, scheduler=None, notifier=None):
        self.api = api_client or HealthTrackerAPIClient()
        self.local_store = local_store or LocalStore()
        self.scheduler = scheduler or BackgroundScheduler(timezone='UTC')
        self.notifier = notifier or Notifier()

        self.queue = OfflineQueue(self.api, self.local_store, notifier=self.notifier)
        self.sessions = FastingSessionStore(
            self.api, self.queue, scheduler=self.scheduler, notifier=self.notifier, local_store=self.local_store
        )
        self.schedules = ScheduledFastsStore(self.api, self.queue, self.sessions)
        self.auto_start = AutoStartMonitor(self.sessions, self.schedules, self.local_store, self.notifier)
        self.connectivity = ConnectivityMonitor(self.api, self.queue)
        self.connectivity.on_reconnect(self.refresh)

    # ---- Lifecycle ----

    def restore(self) -> None:
        """Probe connectivity, replay anything queued and reload state from the API."""
        self.connectivity.check()
        if self.queue.is_online:
            self.queue.sync_if_pending()
            self.refresh()

    def start(self) -> None:
        """Restore state and start the periodic jobs."""
        self.restore()

        now = timezone.now()
        self._add_job(self.auto_start.check_and_start, AUTO_START_JOB_ID, AUTO_START_INTERVAL_SECONDS, now)
        self._add_job(self.auto_start.refresh_schedules, REFRESH_JOB_ID, REFRESH_INTERVAL_SECONDS, now)
        self._add_job(self.connectivity.check, CONNECTIVITY_JOB_ID, CONNECTIVITY_INTERVAL_SECONDS)

        if not self.scheduler.running:
            self.scheduler.start()
        logger.info("Fasting client started")

    def shutdown(self, wait: bool = False) -> None:
        """Stop future jobs; requests already in flight run to completion."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
        logger.info("Fasting client stopped")

    def _add_job(self, func, job_id: str, seconds: int, next_run_time: Optional[datetime] = None) -> None:
        kwargs = {}
        if next_run_time is not None:
            kwargs['next_run_time'] = next_run_time
        self.scheduler.add_job(
            func,
            trigger='interval',
            seconds=seconds,
            id=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **kwargs,
        )

    def refresh(self) -> None:
        """Last-fetch-wins read repair of every cached collection."""
        self.sessions.fetch_active_session()
        self.sessions.fetch_recent_sessions()
        self.sessions.fetch_stats()
        self.auto_start.refresh_schedules()

    # ---- Scheduled fasts ----

    def create_scheduled_fast(self, fasting_type: str, scheduled_start: datetime, scheduled_end: datetime,
                              is_recurring: bool = False, recurrence_pattern: Optional[Dict] = None,
                              reminder_time: Optional[int] = None, notes: str = '') -> Dict:
        """Create a schedule unless it overlaps the active session or another schedule."""
        if scheduled_end <= scheduled_start:
            raise ValueError('Scheduled end must be after scheduled start')

        conflict = self.schedules.check_conflict(scheduled_start, scheduled_end)
        if conflict.has_conflict:
            raise ScheduleConflictError(conflict)

        fast = self.schedules.create_scheduled_fast({
            'type': fasting_type,
            'scheduledStart': scheduled_start,
            'scheduledEnd': scheduled_end,
            'isRecurring': is_recurring,
            'recurrencePattern': recurrence_pattern if is_recurring else None,
            'reminderTime': reminder_time,
            'notes': notes,
        })
        self.notifier.success('Fasting session scheduled successfully')
        return fast

    def update_scheduled_fast(self, fast_id: str, **changes) -> Dict:
        """
        Update a schedule. Changes use camelCase keys (scheduledStart,
        scheduledEnd, notes...); a time change is checked for conflicts
        against everything except the schedule itself.
        """
        current = self.schedules.get(fast_id) or {}
        start = changes.get('scheduledStart') or current.get('scheduledStart')
        end = changes.get('scheduledEnd') or current.get('scheduledEnd')

        if ('scheduledStart' in changes or 'scheduledEnd' in changes) and start and end:
            start = start if isinstance(start, datetime) else from_iso(start)
            end = end if isinstance(end, datetime) else from_iso(end)
            if end <= start:
                raise ValueError('Scheduled end must be after scheduled start')
            conflict = self.schedules.check_conflict(start, end, exclude_id=fast_id)
            if conflict.has_conflict:
                raise ScheduleConflictError(conflict)

        return self.schedules.update_scheduled_fast(fast_id, changes)

    def delete_scheduled_fast(self, fast_id: str) -> None:
        self.schedules.delete_scheduled_fast(fast_id)

    # ---- Other queue resources ----

    def log_weight(self, weight: float, recorded_at: Optional[datetime] = None, notes: str = '') -> Dict:
        data = {'weight': weight, 'recordedAt': to_iso(recorded_at or timezone.now()), 'notes': notes}
        return self._mutate('weight', data, self.api.create_weigh_in)

    def log_metric(self, metric_type: str, value: float, unit: str = '',
                   recorded_at: Optional[datetime] = None, notes: str = '') -> Dict:
        data = {
            'metricType': metric_type,
            'value': value,
            'unit': unit,
            'recordedAt': to_iso(recorded_at or timezone.now()),
            'notes': notes,
        }
        return self._mutate('metric', data, self.api.create_metric)

    def update_profile(self, **changes) -> Dict:
        return self._mutate('profile', changes, self.api.update_profile, action_type='UPDATE')

    def _mutate(self, resource: str, data: Dict, send, action_type: str = 'CREATE') -> Dict:
        """Send online (after draining the queue), or queue offline and return the optimistic record."""
        if not self.queue.is_online:
            self.queue.add_to_queue(action_type, resource, data)
            return dict(data)
        self.queue.sync_if_pending()
        return send(data)

    # ---- Sync ----

    def sync(self):
        result = self.queue.sync_queue()
        if result.synced:
            self.refresh()
        return result

