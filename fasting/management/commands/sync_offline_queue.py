"""
Django management command to replay the fasting client's offline queue.

Changes made while the API was unreachable are replayed in the order they
were made. Actions that keep failing are dropped after 3 attempts and listed
with --show-dropped.

Usage:
    python manage.py sync_offline_queue
    python manage.py sync_offline_queue --show-dropped

Suitable for a cron job on the device running the client.
"""
from django.core.management.base import BaseCommand

from fasting.services.api_client import HealthTrackerAPIClient
from fasting.services.local_store import LocalStore
from fasting.services.notifications import Notifier
from fasting.services.offline_queue import OfflineQueue


class Command(BaseCommand):
    help = 'Replay fasting, weight, metric, profile and schedule changes queued while offline'

    def add_arguments(self, parser):
        parser.add_argument(
            '--show-dropped',
            action='store_true',
            help='List actions that were dropped after repeated failures'
        )

    def handle(self, *args, **options):
        api = HealthTrackerAPIClient()
        queue = OfflineQueue(api, LocalStore(), notifier=Notifier())

        self.stdout.write(self.style.SUCCESS('=' * 60))
        self.stdout.write(self.style.SUCCESS('  OFFLINE QUEUE SYNC'))
        self.stdout.write(self.style.SUCCESS('=' * 60))
        self.stdout.write(f'{len(queue)} queued action(s)')

        if not api.ping():
            self.stdout.write(self.style.ERROR(f'✗ API unreachable at {api.base_url}'))
            return

        result = queue.sync_queue()
        if result.dropped:
            self.stdout.write(self.style.ERROR(f'✗ {result.summary}'))
        else:
            self.stdout.write(self.style.SUCCESS(f'✓ {result.summary}'))

        if queue.last_sync_time:
            self.stdout.write(f'Last sync: {queue.last_sync_time.strftime("%Y-%m-%d %H:%M:%S")} UTC')

        if options['show_dropped']:
            dropped = queue.dropped_actions()
            self.stdout.write(f'\n{len(dropped)} dropped action(s)')
            for action in dropped:
                self.stdout.write(
                    f"  {action['type']} {action['resource']} ({action['id']}): {action.get('error', '')}"
                )
