from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.test import SimpleTestCase

from fasting.services.api_client import FastingAPIError, HealthTrackerAPIClient
from fasting.services.local_store import LocalStore
from fasting.services.offline_queue import OfflineQueue

COMMAND_MODULE = 'fasting.management.commands.sync_offline_queue'


class SyncOfflineQueueCommandTests(SimpleTestCase):
    """Tests for the sync_offline_queue management command"""

    def setUp(self):
        self.api = mock.Mock(spec=HealthTrackerAPIClient)
        self.api.base_url = 'http://api.test'
        self.local_store = LocalStore(persist=False)

        patcher_api = mock.patch(f'{COMMAND_MODULE}.HealthTrackerAPIClient', return_value=self.api)
        patcher_store = mock.patch(f'{COMMAND_MODULE}.LocalStore', return_value=self.local_store)
        patcher_api.start()
        patcher_store.start()
        self.addCleanup(patcher_api.stop)
        self.addCleanup(patcher_store.stop)

    def _queue(self, *payloads):
        queue = OfflineQueue(self.api, self.local_store, is_online=False)
        for payload in payloads:
            queue.add_to_queue('CREATE', 'weight', payload)

    def _run(self, *args):
        out = StringIO()
        call_command('sync_offline_queue', *args, stdout=out)
        return out.getvalue()

    def test_unreachable_api(self):
        """Test that nothing is replayed while the API is down"""
        self._queue({'weight': 180})
        self.api.ping.return_value = False

        output = self._run()

        self.assertIn('API unreachable', output)
        self.api.create.assert_not_called()

    def test_replays_queue(self):
        """Test a successful replay"""
        self._queue({'weight': 180}, {'weight': 181})
        self.api.ping.return_value = True

        output = self._run()

        self.assertIn('2 queued action(s)', output)
        self.assertIn('2 synced', output)
        self.assertEqual(self.api.create.call_count, 2)
        self.assertEqual(self.local_store.get('offline_queue', 'queue'), [])

    def test_show_dropped(self):
        """Test listing actions dropped after repeated failures"""
        self._queue({'weight': 180})
        self.api.ping.return_value = True
        self.api.create.side_effect = FastingAPIError('rejected', 400)

        for _ in range(2):
            self._run()
        output = self._run('--show-dropped')

        self.assertIn('1 dropped', output)
        self.assertIn('CREATE weight', output)
        self.assertIn('rejected', output)
