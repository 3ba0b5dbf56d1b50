"""
Scheduled fasts on the client, plus overlap detection for new schedules.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from django.utils import timezone

from .api_client import FastingAPIError, from_iso, to_iso
from .offline_queue import TEMP_ID_PREFIX

logger = logging.getLogger(__name__)


class ScheduleError(Exception):
    pass


@dataclass
class ConflictResult:
    has_conflict: bool = False
    conflict_type: Optional[str] = None  # 'active' or 'scheduled'
    conflict_with: Optional[Dict] = None

    @property
    def message(self) -> str:
        if not self.has_conflict:
            return ''
        if self.conflict_type == 'active':
            return 'This time conflicts with your active fasting session'
        fasting_type = (self.conflict_with or {}).get('type')
        suffix = f" ({fasting_type})" if fasting_type else ''
        return f"This time conflicts with another scheduled fast{suffix}"


class ScheduleConflictError(ScheduleError):
    def __init__(self, result: ConflictResult):
        super().__init__(result.message)
        self.result = result


def _overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """Inclusive: start falls inside the other range, or the other start falls inside this one."""
    return other_start <= start <= other_end or start <= other_start <= end


def check_conflict(start: datetime, end: datetime, active_session: Optional[Dict],
                   scheduled_fasts: List[Dict], exclude_id: Optional[str] = None) -> ConflictResult:
    """Check a proposed [start, end] against the active session, then each scheduled fast."""
    if active_session:
        session_start = from_iso(active_session['startTime'])
        if active_session.get('endTime'):
            session_end = from_iso(active_session['endTime'])
        else:
            session_end = session_start + timedelta(hours=float(active_session['targetHours']))
        if _overlaps(start, end, session_start, session_end):
            return ConflictResult(True, 'active', active_session)

    for fast in scheduled_fasts:
        if exclude_id and fast.get('id') == exclude_id:
            continue
        if _overlaps(start, end, from_iso(fast['scheduledStart']), from_iso(fast['scheduledEnd'])):
            return ConflictResult(True, 'scheduled', fast)

    return ConflictResult()


class ScheduledFastsStore:
    def __init__(self, api_client, offline_queue, session_store):
        self.api = api_client
        self.queue = offline_queue
        self.session_store = session_store

        self.scheduled_fasts: List[Dict] = []
        self.upcoming_fasts: List[Dict] = []
        self.error: Optional[str] = None
        self._lock = threading.RLock()

    def check_conflict(self, start: datetime, end: datetime, exclude_id: Optional[str] = None) -> ConflictResult:
        with self._lock:
            fasts = list(self.scheduled_fasts)
        return check_conflict(start, end, self.session_store.active_session, fasts, exclude_id)

    # ---- Fetch ----

    def fetch_scheduled_fasts(self) -> List[Dict]:
        try:
            fasts = self.api.get_scheduled_fasts()
        except FastingAPIError as e:
            self.error = e.message
            logger.warning(f"Could not fetch scheduled fasts: {e.message}")
            return self.scheduled_fasts
        with self._lock:
            self.scheduled_fasts = fasts
        return fasts

    def fetch_upcoming_fasts(self) -> List[Dict]:
        try:
            upcoming = self.api.get_upcoming_fasts()
        except FastingAPIError as e:
            self.error = e.message
            logger.warning(f"Could not fetch upcoming fasts: {e.message}")
            return self.upcoming_fasts
        with self._lock:
            self.upcoming_fasts = upcoming
        return upcoming

    # ---- Mutations ----

    def create_scheduled_fast(self, data: Dict) -> Dict:
        payload = {key: to_iso(value) for key, value in data.items()}

        if not self.queue.is_online:
            fast = {
                'id': f"{TEMP_ID_PREFIX}{int(timezone.now().timestamp() * 1000)}",
                'isRecurring': False,
                'recurrencePattern': None,
                'reminderTime': None,
                'notes': '',
                'isActive': True,
                **payload,
            }
            self.queue.add_to_queue('CREATE', 'scheduled', fast)
        else:
            self.queue.sync_if_pending()
            try:
                fast = self.api.create_scheduled_fast(payload)
            except FastingAPIError as e:
                self.error = e.message
                logger.error(f"Failed to create scheduled fast: {e.message}")
                raise ScheduleError('Failed to schedule fasting session') from e

        with self._lock:
            self.scheduled_fasts = sorted(self.scheduled_fasts + [fast], key=lambda f: from_iso(f['scheduledStart']))
        self.error = None
        return fast

    def update_scheduled_fast(self, fast_id: str, data: Dict) -> Dict:
        payload = {key: to_iso(value) for key, value in data.items()}
        current = self.get(fast_id)

        if not self.queue.is_online:
            self.queue.add_to_queue('UPDATE', 'scheduled', {'id': fast_id, **payload})
            fast = {**(current or {'id': fast_id}), **payload}
        else:
            self.queue.sync_if_pending()
            try:
                fast = self.api.update_scheduled_fast(fast_id, payload)
            except FastingAPIError as e:
                self.error = e.message
                logger.error(f"Failed to update scheduled fast {fast_id}: {e.message}")
                raise ScheduleError('Failed to update scheduled fast') from e

        with self._lock:
            self.scheduled_fasts = [fast if f.get('id') == fast_id else f for f in self.scheduled_fasts]
            # Occurrences are re-expanded on the next refresh
            self.upcoming_fasts = [f for f in self.upcoming_fasts if f.get('id') != fast_id]
        self.error = None
        return fast

    def delete_scheduled_fast(self, fast_id: str) -> None:
        if not self.queue.is_online:
            self.queue.add_to_queue('DELETE', 'scheduled', {'id': fast_id})
        else:
            self.queue.sync_if_pending()
            try:
                self.api.delete_scheduled_fast(fast_id)
            except FastingAPIError as e:
                self.error = e.message
                logger.error(f"Failed to delete scheduled fast {fast_id}: {e.message}")
                raise ScheduleError('Failed to delete scheduled fast') from e

        with self._lock:
            self.scheduled_fasts = [f for f in self.scheduled_fasts if f.get('id') != fast_id]
            self.upcoming_fasts = [f for f in self.upcoming_fasts if f.get('id') != fast_id]
        self.error = None

    def get(self, fast_id: str) -> Optional[Dict]:
        with self._lock:
            for fast in self.scheduled_fasts:
                if fast.get('id') == fast_id:
                    return fast
        return None
