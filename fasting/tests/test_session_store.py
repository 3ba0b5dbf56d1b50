import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone as dt_timezone
from unittest import mock

from django.test import SimpleTestCase

from fasting.services.api_client import FastingAPIError, HealthTrackerAPIClient
from fasting.services.local_store import LocalStore
from fasting.services.offline_queue import OfflineQueue
from fasting.services.session_store import (
    FastingSessionError,
    FastingSessionStore,
    SessionAlreadyActiveError,
)
from fasting.services.timer import TimerLoopState

NOW = datetime(2024, 1, 2, 4, 0, tzinfo=dt_timezone.utc)


def session_record(session_id='a1b2', start=None, hours=16, status='active', end=None):
    start = start or NOW - timedelta(hours=8)
    return {
        'id': session_id,
        'type': '16:8',
        'startTime': start.isoformat(),
        'endTime': end.isoformat() if end else None,
        'targetHours': hours,
        'status': status,
        'notes': '',
    }


class SessionStoreTestCase(SimpleTestCase):
    def setUp(self):
        self.api = mock.Mock(spec=HealthTrackerAPIClient)
        self.api.get_stats.return_value = {'totalSessions': 1}
        self.local_store = LocalStore(persist=False)
        self.queue = OfflineQueue(self.api, self.local_store)
        self.notifier = mock.Mock()
        self.store = FastingSessionStore(
            self.api, self.queue, notifier=self.notifier, local_store=self.local_store, now=lambda: NOW
        )

    def _activate(self, record=None):
        record = record or session_record()
        self.api.create_session.return_value = record
        return self.store.start_session('16:8', record['targetHours'])


class StartSessionTests(SessionStoreTestCase):
    """Tests for starting a fast"""

    def test_start_online(self):
        session = self._activate()

        self.assertEqual(self.store.active_session, session)
        self.assertEqual(self.store.timer.loop_state, TimerLoopState.RUNNING)
        self.assertEqual(self.store.timer.state.elapsed_seconds, 8 * 3600)
        self.assertEqual(self.store.timer.state.remaining_seconds, 8 * 3600)
        self.api.create_session.assert_called_once_with('16:8', 16, notes=None, start_time=NOW)

    def test_start_while_active_sends_nothing(self):
        """A second start is refused without contacting the API"""
        self._activate()

        with self.assertRaises(SessionAlreadyActiveError):
            self.store.start_session('18:6', 18)

        self.api.create_session.assert_called_once()

    def test_start_failure_leaves_no_session(self):
        self.api.create_session.side_effect = FastingAPIError('boom', 500)

        with self.assertRaisesMessage(FastingSessionError, 'Failed to start fasting session'):
            self.store.start_session('16:8', 16)

        self.assertIsNone(self.store.active_session)
        self.assertEqual(self.store.error, 'boom')
        self.assertEqual(self.store.timer.loop_state, TimerLoopState.STOPPED)

    def test_server_conflict_maps_to_already_active(self):
        self.api.create_session.side_effect = FastingAPIError('An active fasting session already exists', 409)

        with self.assertRaises(SessionAlreadyActiveError):
            self.store.start_session('16:8', 16)

    def test_start_rejects_non_positive_target(self):
        with self.assertRaises(ValueError):
            self.store.start_session('custom', 0)

    def test_start_offline_queues_create(self):
        """Offline starts are optimistic: temp id, running timer, queued CREATE"""
        self.queue.is_online = False

        session = self.store.start_session('16:8', 16, notes='Offline fast')

        self.assertTrue(session['id'].startswith('temp-'))
        self.assertEqual(self.store.active_session['id'], session['id'])
        self.assertEqual(self.store.timer.loop_state, TimerLoopState.RUNNING)
        self.api.create_session.assert_not_called()

        queued = self.queue.queue
        self.assertEqual(len(queued), 1)
        self.assertEqual((queued[0].type, queued[0].resource), ('CREATE', 'session'))
        self.assertEqual(queued[0].data['notes'], 'Offline fast')

    def test_active_session_survives_restart(self):
        """The cached active session is restored by a new store on the same local store"""
        session = self._activate()

        restored = FastingSessionStore(self.api, self.queue, local_store=self.local_store, now=lambda: NOW)

        self.assertEqual(restored.active_session, session)
        self.assertEqual(restored.timer.loop_state, TimerLoopState.RUNNING)


class EndSessionTests(SessionStoreTestCase):
    """Tests for ending and cancelling a fast"""

    def test_end_online(self):
        session = self._activate()
        completed = {**session, 'status': 'completed', 'endTime': NOW.isoformat()}
        self.api.end_session.return_value = completed

        result = self.store.end_session()

        self.assertEqual(result, completed)
        self.assertIsNone(self.store.active_session)
        self.assertEqual(self.store.timer.loop_state, TimerLoopState.STOPPED)
        self.assertEqual(self.store.recent_sessions[0], completed)
        self.api.end_session.assert_called_once_with(session['id'])
        self.api.get_stats.assert_called_once()

    def test_end_without_session_is_noop(self):
        self.assertIsNone(self.store.end_session())
        self.api.end_session.assert_not_called()

    def test_end_failure_keeps_session(self):
        session = self._activate()
        self.api.end_session.side_effect = FastingAPIError('unreachable')

        with self.assertRaisesMessage(FastingSessionError, 'Failed to end fasting session'):
            self.store.end_session()

        self.assertEqual(self.store.active_session, session)
        self.assertEqual(self.store.error, 'unreachable')

    def test_second_end_while_in_flight_is_noop(self):
        """Only one end/cancel request is sent while one is outstanding"""
        session = self._activate()
        nested_results = []

        def end_request(session_id):
            nested_results.append(self.store.end_session())
            nested_results.append(self.store.cancel_session())
            return {**session, 'status': 'completed', 'endTime': NOW.isoformat()}

        self.api.end_session.side_effect = end_request

        self.store.end_session()

        self.assertEqual(nested_results, [None, None])
        self.api.end_session.assert_called_once()
        self.api.cancel_session.assert_not_called()

    def test_cancel_not_added_to_history(self):
        session = self._activate()
        self.api.cancel_session.return_value = {**session, 'status': 'cancelled', 'endTime': NOW.isoformat()}

        self.store.cancel_session()

        self.assertIsNone(self.store.active_session)
        self.assertEqual(self.store.recent_sessions, [])
        self.api.get_stats.assert_not_called()

    def test_end_offline_queues_update(self):
        session = self._activate()
        self.queue.is_online = False

        result = self.store.end_session()

        self.assertEqual(result['status'], 'completed')
        self.assertIsNone(self.store.active_session)
        queued = self.queue.queue[-1]
        self.assertEqual((queued.type, queued.resource), ('UPDATE', 'session'))
        self.assertEqual(queued.data, {'id': session['id'], 'endTime': NOW.isoformat(), 'status': 'completed'})
        self.api.end_session.assert_not_called()

    def test_history_bounded(self):
        self.store.recent_sessions = [session_record(f's{i}', status='completed') for i in range(10)]
        session = self._activate()
        self.api.end_session.return_value = {**session, 'status': 'completed'}

        self.store.end_session()

        self.assertEqual(len(self.store.recent_sessions), 10)
        self.assertEqual(self.store.recent_sessions[0]['id'], session['id'])

    def test_end_of_offline_started_session_after_reconnect(self):
        """The queued CREATE is replayed and the server id is used for the end request"""
        self.queue.is_online = False
        self.store.start_session('16:8', 16)
        server_record = session_record('server-1', start=NOW)
        self.api.create.return_value = server_record
        self.api.get_active_session.return_value = server_record
        self.api.end_session.return_value = {**server_record, 'status': 'completed'}
        self.queue.is_online = True

        self.store.end_session()

        self.api.create.assert_called_once()
        self.api.end_session.assert_called_once_with('server-1')
        self.assertEqual(len(self.queue), 0)


class AutoEndTests(SessionStoreTestCase):
    """Tests for automatic completion when the target is reached"""

    def test_auto_end_sends_single_request(self):
        session = self._activate()
        self.api.end_session.return_value = {**session, 'status': 'completed'}
        target_end = NOW + timedelta(hours=8)

        for seconds in range(0, 5):
            self.store.timer.tick(now=target_end + timedelta(seconds=seconds))

        self.api.end_session.assert_called_once_with(session['id'])
        self.assertIsNone(self.store.active_session)
        self.notifier.success.assert_called_once()

    def test_auto_end_retries_after_failure(self):
        session = self._activate()
        self.api.end_session.side_effect = [
            FastingAPIError('timeout'),
            {**session, 'status': 'completed'},
        ]
        target_end = NOW + timedelta(hours=8)

        self.store.timer.tick(now=target_end)
        self.assertIsNotNone(self.store.active_session)

        self.store.timer.tick(now=target_end + timedelta(seconds=1))

        self.assertEqual(self.api.end_session.call_count, 2)
        self.assertIsNone(self.store.active_session)

    def test_auto_end_retries_when_target_reached_during_request(self):
        """A request still in flight at the target does not use up the auto-end"""
        session = self._activate()
        self.api.end_session.return_value = {**session, 'status': 'completed'}
        target_end = NOW + timedelta(hours=8)

        self.store._request_in_flight = True
        self.store.timer.tick(now=target_end)
        self.api.end_session.assert_not_called()
        self.store._request_in_flight = False

        self.store.timer.tick(now=target_end + timedelta(seconds=1))

        self.api.end_session.assert_called_once_with(session['id'])
        self.assertIsNone(self.store.active_session)


class UpdateStartTimeTests(SessionStoreTestCase):
    """Tests for correcting the start of the active fast"""

    def test_future_start_rejected(self):
        self._activate()

        with self.assertRaises(ValueError):
            self.store.update_start_time(NOW + timedelta(minutes=1))

        self.api.update_session.assert_not_called()

    def test_requires_active_session(self):
        with self.assertRaises(ValueError):
            self.store.update_start_time(NOW - timedelta(hours=1))

    def test_update_online_keeps_id_and_retargets(self):
        session = self._activate()
        new_start = NOW - timedelta(hours=10)
        self.api.update_session.return_value = {**session, 'startTime': new_start.isoformat()}

        updated = self.store.update_start_time(new_start)

        self.assertEqual(updated['id'], session['id'])
        self.api.update_session.assert_called_once_with(session['id'], {'startTime': new_start})
        self.assertEqual(self.store.timer.state.elapsed_seconds, 10 * 3600)
        self.assertEqual(self.store.timer.state.target_end_time, new_start + timedelta(hours=16))

    def test_update_offline_queues(self):
        session = self._activate()
        self.queue.is_online = False
        new_start = NOW - timedelta(hours=9)

        self.store.update_start_time(new_start)

        queued = self.queue.queue[-1]
        self.assertEqual(queued.data, {'id': session['id'], 'startTime': new_start.isoformat()})
        self.assertEqual(self.store.timer.state.elapsed_seconds, 9 * 3600)


class FetchTests(SessionStoreTestCase):
    """Tests for read repair from the API"""

    def test_fetch_active_restores_timer(self):
        record = session_record()
        self.api.get_active_session.return_value = record

        self.store.fetch_active_session()

        self.assertEqual(self.store.active_session, record)
        self.assertEqual(self.store.timer.state.elapsed_seconds, 8 * 3600)

    def test_fetch_same_session_keeps_pause(self):
        """Refreshing the active session from the API does not resume a paused display"""
        session = self._activate()
        self.store.pause_timer()
        self.api.get_active_session.return_value = dict(session)

        self.store.fetch_active_session()

        self.assertEqual(self.store.timer.loop_state, TimerLoopState.PAUSED)
        self.assertTrue(self.store.timer.state.is_paused)

    def test_fetch_null_clears_stale_session(self):
        self._activate()
        self.api.get_active_session.return_value = None

        self.store.fetch_active_session()

        self.assertIsNone(self.store.active_session)
        self.assertEqual(self.store.timer.loop_state, TimerLoopState.STOPPED)

    def test_fetch_error_sets_error_only(self):
        session = self._activate()
        self.api.get_active_session.side_effect = FastingAPIError('down')

        self.store.fetch_active_session()

        self.assertEqual(self.store.error, 'down')
        self.assertEqual(self.store.active_session, session)

    def test_fetch_recent_sessions(self):
        self.api.get_sessions.return_value = [session_record('x', status='completed')]

        self.store.fetch_recent_sessions()

        self.assertEqual(len(self.store.recent_sessions), 1)
        self.api.get_sessions.assert_called_once_with(limit=10)

    def test_pause_and_resume_delegate_to_timer(self):
        self._activate()

        self.store.pause_timer()
        self.assertEqual(self.store.timer.loop_state, TimerLoopState.PAUSED)

        self.store.resume_timer()
        self.assertEqual(self.store.timer.loop_state, TimerLoopState.RUNNING)


class SharedStoreTests(SimpleTestCase):
    """Two processes sharing one client state file"""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.path = os.path.join(self.tmpdir, 'client_state.json')
        self.api = mock.Mock(spec=HealthTrackerAPIClient)
        self.api.get_stats.return_value = {'totalSessions': 1}

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def _store(self):
        local_store = LocalStore(self.path)
        return FastingSessionStore(self.api, OfflineQueue(self.api, local_store), local_store=local_store, now=lambda: NOW)

    def test_session_started_elsewhere_is_adopted(self):
        monitor = self._store()
        cli = self._store()
        self.api.create_session.return_value = session_record()
        session = cli.start_session('16:8', 16)

        monitor.local_store.reload()
        monitor.sync_from_store()

        self.assertEqual(monitor.active_session, session)
        self.assertEqual(monitor.timer.loop_state, TimerLoopState.RUNNING)

    def test_session_ended_elsewhere_is_cleared(self):
        monitor = self._store()
        self.api.create_session.return_value = session_record()
        session = monitor.start_session('16:8', 16)
        cli = self._store()
        self.api.end_session.return_value = {**session, 'status': 'completed'}
        cli.end_session()

        monitor.local_store.reload()
        monitor.sync_from_store()

        self.assertIsNone(monitor.active_session)
        self.assertEqual(monitor.timer.loop_state, TimerLoopState.STOPPED)
