"""
Fasting session lifecycle on the client.

FastingSessionStore owns the cached active session, its FastingTimer, the
recent-session history and stats. Online mutations go straight to the API;
offline mutations are applied optimistically and queued on the OfflineQueue.
"""
import logging
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional

from django.utils import timezone

from .api_client import FastingAPIError, from_iso, to_iso
from .offline_queue import TEMP_ID_PREFIX, is_temp_id
from .timer import FastingTimer

logger = logging.getLogger(__name__)

RECENT_SESSIONS_LIMIT = 10
STORE_NAMESPACE = 'session'


class FastingSessionError(Exception):
    """A session action failed; the store keeps its previous state."""


class SessionAlreadyActiveError(FastingSessionError):
    pass


class FastingSessionStore:
    def __init__(self, api_client, offline_queue, scheduler=None, notifier=None, local_store=None,
                 now: Optional[Callable[[], datetime]] = None):
        self.api = api_client
        self.queue = offline_queue
        self.notifier = notifier
        self.local_store = local_store
        self.now = now or timezone.now
        self.timer = FastingTimer(scheduler=scheduler, on_complete=self._on_timer_complete)

        self.active_session: Optional[Dict] = None
        self.recent_sessions: List[Dict] = []
        self.stats: Optional[Dict] = None
        self.error: Optional[str] = None
        self._request_in_flight = False
        self._lock = threading.RLock()

        cached = self.local_store.get(STORE_NAMESPACE, 'active') if self.local_store else None
        if cached:
            self._activate(cached)

    @property
    def has_active_session(self) -> bool:
        return self.active_session is not None

    # ---- Start ----

    def start_session(self, fasting_type: str, target_hours: float, notes: Optional[str] = None,
                      start_time: Optional[datetime] = None) -> Dict:
        """
        Start a fast. Raises SessionAlreadyActiveError without contacting the
        API when a session is already active (or being started/ended).
        """
        if target_hours is None or target_hours <= 0:
            raise ValueError('Target hours must be positive')

        with self._lock:
            if self.active_session is not None or self._request_in_flight:
                raise SessionAlreadyActiveError('A fasting session is already active')
            self._request_in_flight = True

        try:
            self.queue.sync_if_pending()
            start = start_time or self.now()

            if not self.queue.is_online:
                session = {
                    'id': f"{TEMP_ID_PREFIX}{int(start.timestamp() * 1000)}",
                    'type': fasting_type,
                    'startTime': to_iso(start),
                    'endTime': None,
                    'targetHours': target_hours,
                    'status': 'active',
                    'notes': notes or '',
                }
                self.queue.add_to_queue('CREATE', 'session', session)
                logger.info(f"Started {fasting_type} fast offline ({session['id']})")
            else:
                try:
                    session = self.api.create_session(fasting_type, target_hours, notes=notes, start_time=start)
                except FastingAPIError as e:
                    self.error = e.message
                    logger.error(f"Failed to start fasting session: {e.message}")
                    if e.status_code == 409:
                        raise SessionAlreadyActiveError(e.message) from e
                    raise FastingSessionError('Failed to start fasting session') from e
                logger.info(f"Started {fasting_type} fast {session['id']}")

            self._activate(session)
            self.error = None
            return session
        finally:
            self._request_in_flight = False

    def _cache(self, session: Optional[Dict]) -> None:
        """Keep the active session on disk so an offline-started fast survives a restart."""
        with self._lock:
            self.active_session = session
        if self.local_store is None:
            return
        if session is None:
            self.local_store.delete(STORE_NAMESPACE, 'active')
        else:
            self.local_store.set(STORE_NAMESPACE, 'active', session)

    def _activate(self, session: Dict) -> None:
        self._cache(session)
        self.timer.start(from_iso(session['startTime']), float(session['targetHours']), now=self.now())

    def _adopt(self, session: Dict) -> None:
        """Take a fetched record; the same session keeps its timer loop (and pause)."""
        current = self.active_session
        if current is not None and current.get('id') == session.get('id') and self.timer.state is not None:
            self._cache(session)
            self.timer.retarget(from_iso(session['startTime']), float(session['targetHours']), now=self.now())
        else:
            self._activate(session)

    def _clear_active(self) -> None:
        self._cache(None)
        self.timer.stop()

    def sync_from_store(self) -> Optional[Dict]:
        """Pick up an active session started or ended by another process sharing the local store."""
        if self.local_store is None:
            return self.active_session
        stored = self.local_store.get(STORE_NAMESPACE, 'active')
        current = self.active_session
        if stored is None:
            if current is not None:
                logger.info(f"Fasting session {current.get('id')} ended by another process")
                with self._lock:
                    self.active_session = None
                self.timer.stop()
        elif current is None or stored != current:
            self._adopt(stored)
        return self.active_session

    # ---- End / cancel ----

    def end_session(self) -> Optional[Dict]:
        """Complete the active fast. No-op without an active session or while a request is in flight."""
        return self._finish('completed')

    def cancel_session(self) -> Optional[Dict]:
        return self._finish('cancelled')

    def _finish(self, status: str) -> Optional[Dict]:
        if self.queue.is_online:
            self._resolve_temp_session()

        with self._lock:
            session = self.active_session
            if session is None or self._request_in_flight:
                return None
            self._request_in_flight = True

        verb = 'end' if status == 'completed' else 'cancel'
        try:
            if not self.queue.is_online:
                end_time = to_iso(self.now())
                self.queue.add_to_queue('UPDATE', 'session', {
                    'id': session['id'],
                    'endTime': end_time,
                    'status': status,
                })
                finished = {**session, 'endTime': end_time, 'status': status}
            else:
                try:
                    if status == 'completed':
                        finished = self.api.end_session(session['id'])
                    else:
                        finished = self.api.cancel_session(session['id'])
                except FastingAPIError as e:
                    self.error = e.message
                    logger.error(f"Failed to {verb} fasting session {session['id']}: {e.message}")
                    raise FastingSessionError(f'Failed to {verb} fasting session') from e

            self._clear_active()
            if status == 'completed':
                with self._lock:
                    self.recent_sessions = [finished] + self.recent_sessions[:RECENT_SESSIONS_LIMIT - 1]
            self.error = None
            logger.info(f"Fasting session {session['id']} {status}")
        finally:
            self._request_in_flight = False

        if status == 'completed' and self.queue.is_online:
            self.fetch_stats()
        return finished

    def _on_timer_complete(self) -> None:
        """Target reached: end the session once; re-arm when the request fails."""
        try:
            finished = self.end_session()
        except FastingSessionError:
            self.timer.rearm_completion()
            return
        if finished is None and self.active_session is not None:
            # Another request held the session; try again on the next tick
            self.timer.rearm_completion()
            return
        if finished and self.notifier:
            self.notifier.success(
                'Fast completed',
                description=f"Your {finished.get('type')} fast reached its {finished.get('targetHours')} hour target",
            )

    # ---- Corrective edit ----

    def update_start_time(self, new_start: datetime) -> Dict:
        """Move the active session's start; the session keeps its id."""
        session = self.active_session
        if session is None:
            raise ValueError('No active fasting session')
        if new_start > self.now():
            raise ValueError('Start time cannot be in the future')

        if not self.queue.is_online:
            self.queue.add_to_queue('UPDATE', 'session', {'id': session['id'], 'startTime': to_iso(new_start)})
            updated = {**session, 'startTime': to_iso(new_start)}
        else:
            self._resolve_temp_session()
            session = self.active_session
            try:
                updated = self.api.update_session(session['id'], {'startTime': new_start})
            except FastingAPIError as e:
                self.error = e.message
                logger.error(f"Failed to update start time of {session['id']}: {e.message}")
                raise FastingSessionError('Failed to update start time') from e

        self._cache(updated)
        self.timer.retarget(from_iso(updated['startTime']), float(updated['targetHours']), now=self.now())
        return updated

    def _resolve_temp_session(self) -> None:
        """Replay the queued CREATE of an offline-started session and adopt the server record."""
        if self.active_session is None or not is_temp_id(self.active_session.get('id')):
            return
        self.queue.sync_if_pending()
        self.fetch_active_session()

    # ---- Fetch (read repair) ----

    def fetch_active_session(self) -> Optional[Dict]:
        try:
            session = self.api.get_active_session()
        except FastingAPIError as e:
            self.error = e.message
            logger.warning(f"Could not fetch active fasting session: {e.message}")
            return self.active_session

        if session:
            self._adopt(session)
        elif self.active_session is not None and not is_temp_id(self.active_session.get('id')):
            # Ended elsewhere
            self._clear_active()
        return self.active_session

    def fetch_recent_sessions(self, limit: int = RECENT_SESSIONS_LIMIT) -> List[Dict]:
        try:
            sessions = self.api.get_sessions(limit=limit)
        except FastingAPIError as e:
            self.error = e.message
            logger.warning(f"Could not fetch fasting history: {e.message}")
            return self.recent_sessions
        with self._lock:
            self.recent_sessions = sessions[:limit]
        return self.recent_sessions

    def fetch_stats(self) -> Optional[Dict]:
        try:
            stats = self.api.get_stats()
        except FastingAPIError as e:
            self.error = e.message
            logger.warning(f"Could not fetch fasting stats: {e.message}")
            return self.stats
        self.stats = stats
        return stats

    # ---- Timer ----

    def pause_timer(self) -> None:
        self.timer.pause()

    def resume_timer(self) -> None:
        self.timer.resume(now=self.now())

    def timer_snapshot(self) -> Dict:
        return self.timer.snapshot()
