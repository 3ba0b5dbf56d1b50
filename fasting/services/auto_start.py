"""
Auto-start monitor: starts a scheduled fast when the clock reaches it.

Every check looks at the scheduled fasts and the upcoming occurrences of
recurring fasts. A candidate is started when `now` lies within
AUTO_START_WINDOW of its scheduled start and its marker key
`<scheduleId>-<scheduledStart epoch ms>` has not been handled yet. Markers
live in the local store, so a restart inside the window does not start the
same occurrence twice.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from django.utils import timezone

from .api_client import from_iso
from .notifications import NotificationAction
from .schedule_store import ScheduleError
from .session_store import FastingSessionError

logger = logging.getLogger(__name__)

AUTO_START_WINDOW = timedelta(minutes=5)
MARKER_NAMESPACE = 'autostart'
MARKER_STARTED = 'started'
MARKER_CANCELLED = 'cancelled'
DEFAULT_NOTES = 'Auto-started from scheduled fast'


def marker_key(fast: Dict) -> str:
    scheduled_start = from_iso(fast['scheduledStart'])
    return f"{fast['id']}-{int(scheduled_start.timestamp() * 1000)}"


def target_hours_for(fast: Dict) -> int:
    """Whole hours, rounded half up, never below one."""
    duration = from_iso(fast['scheduledEnd']) - from_iso(fast['scheduledStart'])
    return max(1, math.floor(duration.total_seconds() / 3600 + 0.5))


class AutoStartMonitor:
    def __init__(self, session_store, schedule_store, local_store, notifier):
        self.session_store = session_store
        self.schedule_store = schedule_store
        self.local_store = local_store
        self.notifier = notifier

    def candidates(self) -> List[Dict]:
        """Scheduled fasts followed by upcoming occurrences, one entry per marker key."""
        seen = set()
        result = []
        for fast in list(self.schedule_store.scheduled_fasts) + list(self.schedule_store.upcoming_fasts):
            if not fast.get('isActive', True):
                continue
            key = marker_key(fast)
            if key in seen:
                continue
            seen.add(key)
            result.append(fast)
        return result

    def is_handled(self, key: str) -> bool:
        return self.local_store.get(MARKER_NAMESPACE, key) is not None

    def mark(self, key: str, value: str) -> None:
        self.local_store.set(MARKER_NAMESPACE, key, value)

    def check_and_start(self, now: Optional[datetime] = None) -> Optional[Dict]:
        """
        Start at most one due scheduled fast. Returns the started session,
        or None when nothing was started.
        """
        if self.session_store.has_active_session:
            return None

        now = now or timezone.now()
        for fast in self.candidates():
            scheduled_start = from_iso(fast['scheduledStart'])
            if not (scheduled_start - AUTO_START_WINDOW <= now <= scheduled_start + AUTO_START_WINDOW):
                continue

            key = marker_key(fast)
            if self.is_handled(key):
                continue

            self.notifier.info(
                f"Auto-starting your {fast['type']} fast",
                description='Your scheduled fast is starting now',
                action=NotificationAction('Cancel', lambda key=key: self.mark(key, MARKER_CANCELLED)),
            )
            if self.is_handled(key):
                logger.info(f"Auto-start of {key} cancelled")
                return None

            try:
                session = self.session_store.start_session(
                    fast['type'],
                    target_hours_for(fast),
                    notes=fast.get('notes') or DEFAULT_NOTES,
                )
            except (FastingSessionError, ValueError) as e:
                logger.error(f"Failed to auto-start scheduled fast {key}: {e}")
                self.notifier.error('Failed to auto-start your scheduled fast')
                return None

            self.mark(key, MARKER_STARTED)
            logger.info(f"Auto-started scheduled fast {key} as session {session['id']}")

            if not fast.get('isRecurring'):
                self._consume(fast)
            return session
        return None

    def _consume(self, fast: Dict) -> None:
        """A one-off schedule is used up once it has started."""
        try:
            self.schedule_store.delete_scheduled_fast(fast['id'])
        except ScheduleError as e:
            logger.warning(f"Could not remove consumed scheduled fast {fast['id']}: {e}")

    def refresh_schedules(self) -> None:
        self.schedule_store.fetch_scheduled_fasts()
        self.schedule_store.fetch_upcoming_fasts()
