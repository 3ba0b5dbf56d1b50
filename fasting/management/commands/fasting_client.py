"""
Django management command driving the fasting client against the API.

Usage:
    python manage.py fasting_client status
    python manage.py fasting_client start --type 16:8 [--hours 16] [--notes "..."] [--start-time 2024-01-01T20:00]
    python manage.py fasting_client end
    python manage.py fasting_client cancel
    python manage.py fasting_client pause
    python manage.py fasting_client resume
    python manage.py fasting_client schedule --type 18:6 --start 2024-01-02T20:00 [--recurring --frequency weekly --days-of-week 1,3,5]
    python manage.py fasting_client sync
    python manage.py fasting_client monitor

Timestamps are ISO-8601; values without an offset are read as UTC.
`pause`/`resume` toggle the display loop of a running `monitor`; the fast
itself keeps running on the wall clock.
"""
import time
from datetime import timedelta

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from fasting.models import FASTING_TYPE_CHOICES, FASTING_TYPE_HOURS, RECURRENCE_FREQUENCIES
from fasting.services.api_client import from_iso
from fasting.services.client import FastingClient
from fasting.services.schedule_store import ScheduleConflictError, ScheduleError
from fasting.services.session_store import FastingSessionError
from fasting.services.timer import TimerLoopState

ACTIONS = ('status', 'start', 'end', 'cancel', 'pause', 'resume', 'schedule', 'sync', 'monitor')
DISPLAY_NAMESPACE = 'display'


class Command(BaseCommand):
    help = 'Start, end and schedule fasts through the Health Tracker API (works offline)'

    def add_arguments(self, parser):
        parser.add_argument('action', choices=ACTIONS, help='What to do')
        parser.add_argument(
            '--type',
            dest='fasting_type',
            choices=[choice for choice, _ in FASTING_TYPE_CHOICES],
            default='16:8',
            help='Fasting protocol (default: 16:8)'
        )
        parser.add_argument('--hours', type=float, help='Target hours (required for custom fasts)')
        parser.add_argument('--notes', default='', help='Notes for the session or schedule')
        parser.add_argument('--start-time', help='Backdated start of a new session')
        parser.add_argument('--start', help='Scheduled start (schedule only)')
        parser.add_argument('--recurring', action='store_true', help='Repeat the scheduled fast')
        parser.add_argument('--frequency', choices=RECURRENCE_FREQUENCIES, default='daily')
        parser.add_argument('--interval', type=int, default=1, help='Repeat every N periods (1-30)')
        parser.add_argument('--days-of-week', help='Comma separated weekdays, 0 = Sunday')
        parser.add_argument('--end-date', help='Last day of the recurrence')
        parser.add_argument('--reminder', type=int, help='Reminder, minutes before the start (5-1440)')

    def handle(self, *args, **options):
        client = FastingClient()
        client.notifier.subscribe(self._print_notification)
        action = options['action']
        if action != 'monitor':
            client.restore()

        try:
            getattr(self, f'_{action}')(client, options)
        except (FastingSessionError, ScheduleError, ValueError) as e:
            raise CommandError(str(e))
        finally:
            client.shutdown()

    def _print_notification(self, notification):
        style = self.style.ERROR if notification.level == 'error' else self.style.SUCCESS
        text = notification.message
        if notification.description:
            text = f'{text} - {notification.description}'
        self.stdout.write(style(text))

    def _target_hours(self, options):
        hours = options['hours'] or FASTING_TYPE_HOURS.get(options['fasting_type'])
        if not hours:
            raise CommandError('--hours is required for custom fasts')
        return hours

    # ---- Actions ----

    def _status(self, client, options):
        if not client.queue.is_online:
            self.stdout.write(self.style.WARNING('Offline: changes will be queued'))

        session = client.sessions.active_session
        if session is None:
            self.stdout.write('No active fast')
        else:
            snapshot = client.sessions.timer_snapshot()
            self.stdout.write(self.style.SUCCESS(f"Active {session['type']} fast ({session['id']})"))
            self.stdout.write(f"  Started:   {session['startTime']}")
            self.stdout.write(f"  Elapsed:   {snapshot['elapsed']} ({snapshot['elapsedHours']}h)")
            self.stdout.write(f"  Remaining: {snapshot['remaining']} ({snapshot['remainingHours']}h)")
            self.stdout.write(f"  Progress:  {snapshot['progress'] * 100:.0f}%")

        stats = client.sessions.stats
        if stats:
            self.stdout.write(
                f"Completed fasts: {stats['totalSessions']}, "
                f"current streak: {stats['currentStreak']} days, "
                f"longest: {stats['longestFast']}h"
            )

        pending = len(client.queue)
        if pending:
            self.stdout.write(self.style.WARNING(f'{pending} change(s) waiting to sync'))
        if client.queue.last_sync_time:
            self.stdout.write(f'Last sync: {client.queue.last_sync_time.isoformat()}')

    def _start(self, client, options):
        start_time = from_iso(options['start_time']) if options['start_time'] else None
        session = client.sessions.start_session(
            options['fasting_type'],
            self._target_hours(options),
            notes=options['notes'] or None,
            start_time=start_time,
        )
        self.stdout.write(self.style.SUCCESS(
            f"Started {session['type']} fast ({session['targetHours']}h) at {session['startTime']}"
        ))

    def _end(self, client, options):
        session = client.sessions.end_session()
        if session is None:
            self.stdout.write('No active fast')
            return
        self.stdout.write(self.style.SUCCESS(f"Fast completed at {session['endTime']}"))

    def _cancel(self, client, options):
        session = client.sessions.cancel_session()
        if session is None:
            self.stdout.write('No active fast')
            return
        self.stdout.write(self.style.SUCCESS('Fast cancelled'))

    def _pause(self, client, options):
        client.local_store.set(DISPLAY_NAMESPACE, 'paused', True)
        self.stdout.write(self.style.SUCCESS('Timer display paused (the fast keeps running)'))

    def _resume(self, client, options):
        client.local_store.set(DISPLAY_NAMESPACE, 'paused', False)
        self.stdout.write(self.style.SUCCESS('Timer display resumed'))

    def _schedule(self, client, options):
        if not options['start']:
            raise CommandError('--start is required')
        start = from_iso(options['start'])
        end = start + timedelta(hours=self._target_hours(options))

        pattern = None
        if options['recurring']:
            pattern = {'frequency': options['frequency'], 'interval': options['interval']}
            if options['days_of_week']:
                try:
                    pattern['daysOfWeek'] = [int(day) for day in options['days_of_week'].split(',')]
                except ValueError:
                    raise CommandError('--days-of-week must be comma separated numbers 0-6')
            if options['end_date']:
                pattern['endDate'] = options['end_date']

        try:
            fast = client.create_scheduled_fast(
                options['fasting_type'],
                start,
                end,
                is_recurring=options['recurring'],
                recurrence_pattern=pattern,
                reminder_time=options['reminder'],
                notes=options['notes'],
            )
        except ScheduleConflictError as e:
            raise CommandError(e.result.message)
        self.stdout.write(f"  {fast['type']} from {fast['scheduledStart']} to {fast['scheduledEnd']}")

    def _sync(self, client, options):
        if not client.queue.is_online:
            raise CommandError('API is unreachable; nothing synced')
        result = client.sync()
        self.stdout.write(self.style.SUCCESS(f'Offline queue: {result.summary}'))

    def _monitor(self, client, options):
        """Run the timer, auto-start and connectivity jobs until interrupted."""
        client.start()
        self.stdout.write(self.style.SUCCESS('Monitoring fasts (Ctrl+C to stop)...'))
        try:
            while True:
                client.local_store.reload()
                client.sessions.sync_from_store()
                paused = client.local_store.get(DISPLAY_NAMESPACE, 'paused', False)
                timer = client.sessions.timer
                if paused and timer.loop_state == TimerLoopState.RUNNING:
                    client.sessions.pause_timer()
                elif not paused and timer.loop_state == TimerLoopState.PAUSED:
                    client.sessions.resume_timer()

                if client.sessions.active_session:
                    snapshot = client.sessions.timer_snapshot()
                    state = '' if snapshot['isRunning'] else ' [paused]'
                    self.stdout.write(
                        f"\r{snapshot['elapsed']} elapsed, {snapshot['remaining']} remaining "
                        f"({snapshot['progress'] * 100:.0f}%){state}",
                        ending=''
                    )
                    self.stdout.flush()
                time.sleep(1)
        except KeyboardInterrupt:
            self.stdout.write(f'\nStopped at {timezone.now().isoformat()}')
