from django.test import TestCase, Client, override_settings
from django.urls import reverse
from django.utils import timezone
from datetime import timedelta
import json

from fasting.models import FastingSession, ScheduledFast


def _iso(value):
    return value.isoformat()


class FastingSessionAPITestCase(TestCase):
    """Tests for the fasting session endpoints"""

    def setUp(self):
        self.client = Client()

    def _post(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type='application/json')

    def _patch(self, url, data=None):
        return self.client.patch(url, data=json.dumps(data or {}), content_type='application/json')

    def _create_session(self, **kwargs):
        defaults = {
            'fasting_type': '16:8',
            'target_hours': 16,
            'start_time': timezone.now() - timedelta(hours=2),
        }
        defaults.update(kwargs)
        return FastingSession.objects.create(**defaults)

    def test_start_session(self):
        """Starting a fast returns the new active session"""
        response = self._post(reverse('fasting:sessions'), {'type': '16:8', 'targetHours': 16})

        self.assertEqual(response.status_code, 201)
        result = json.loads(response.content)
        self.assertEqual(result['type'], '16:8')
        self.assertEqual(result['targetHours'], 16.0)
        self.assertEqual(result['status'], 'active')
        self.assertIsNone(result['endTime'])
        self.assertTrue(FastingSession.objects.filter(id=result['id'], status='active').exists())

    def test_start_session_defaults_target_hours_from_type(self):
        """targetHours falls back to the protocol's hours"""
        response = self._post(reverse('fasting:sessions'), {'type': '18:6'})

        self.assertEqual(response.status_code, 201)
        self.assertEqual(json.loads(response.content)['targetHours'], 18.0)

    def test_start_session_with_backdated_start(self):
        """A past startTime is kept"""
        start = timezone.now() - timedelta(hours=3)
        response = self._post(reverse('fasting:sessions'), {
            'type': '16:8',
            'targetHours': 16,
            'startTime': _iso(start),
        })

        self.assertEqual(response.status_code, 201)
        session = FastingSession.objects.get()
        self.assertEqual(session.start_time.replace(microsecond=0), start.replace(microsecond=0))

    def test_start_session_rejects_future_start(self):
        """startTime in the future is a validation error"""
        response = self._post(reverse('fasting:sessions'), {
            'type': '16:8',
            'startTime': _iso(timezone.now() + timedelta(hours=1)),
        })

        self.assertEqual(response.status_code, 400)
        result = json.loads(response.content)
        self.assertFalse(result['success'])
        self.assertIn('future', result['error'])

    def test_start_session_when_active_conflicts(self):
        """Only one session may be active"""
        self._create_session()

        response = self._post(reverse('fasting:sessions'), {'type': '16:8', 'targetHours': 16})

        self.assertEqual(response.status_code, 409)
        self.assertFalse(json.loads(response.content)['success'])
        self.assertEqual(FastingSession.objects.filter(status='active').count(), 1)

    def test_start_session_invalid_type(self):
        response = self._post(reverse('fasting:sessions'), {'type': '12:12'})

        self.assertEqual(response.status_code, 400)
        self.assertIn('Unknown fasting type', json.loads(response.content)['error'])

    def test_start_custom_session_requires_target_hours(self):
        response = self._post(reverse('fasting:sessions'), {'type': 'custom'})

        self.assertEqual(response.status_code, 400)

    def test_start_session_rejects_non_positive_hours(self):
        response = self._post(reverse('fasting:sessions'), {'type': 'custom', 'targetHours': 0})

        self.assertEqual(response.status_code, 400)

    def test_start_session_invalid_json(self):
        response = self.client.post(reverse('fasting:sessions'), data='{not json', content_type='application/json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(json.loads(response.content)['error'], 'Invalid JSON')

    def test_list_sessions_newest_first(self):
        """GET returns sessions newest first with a total"""
        now = timezone.now()
        old = self._create_session(start_time=now - timedelta(days=2), status='completed',
                                   end_time=now - timedelta(days=1, hours=8))
        new = self._create_session(start_time=now - timedelta(hours=1))

        response = self.client.get(reverse('fasting:sessions'), {'limit': 10})

        self.assertEqual(response.status_code, 200)
        result = json.loads(response.content)
        self.assertEqual(result['total'], 2)
        self.assertEqual([s['id'] for s in result['sessions']], [str(new.id), str(old.id)])

    def test_list_sessions_pagination(self):
        now = timezone.now()
        for days in range(3):
            self._create_session(start_time=now - timedelta(days=days + 1), status='completed',
                                 end_time=now - timedelta(days=days + 1) + timedelta(hours=16))

        response = self.client.get(reverse('fasting:sessions'), {'limit': 1, 'offset': 1})

        result = json.loads(response.content)
        self.assertEqual(result['total'], 3)
        self.assertEqual(len(result['sessions']), 1)

    def test_active_session_none(self):
        """No running fast answers null"""
        response = self.client.get(reverse('fasting:active_session'))

        self.assertEqual(response.status_code, 200)
        self.assertIsNone(json.loads(response.content))

    def test_active_session(self):
        session = self._create_session()

        response = self.client.get(reverse('fasting:active_session'))

        self.assertEqual(json.loads(response.content)['id'], str(session.id))

    def test_end_session(self):
        """Ending a fast marks it completed with an end time"""
        session = self._create_session()

        response = self._patch(reverse('fasting:end_session', args=[session.id]))

        self.assertEqual(response.status_code, 200)
        result = json.loads(response.content)
        self.assertEqual(result['status'], 'completed')
        self.assertIsNotNone(result['endTime'])
        session.refresh_from_db()
        self.assertEqual(session.status, 'completed')

    def test_end_session_twice_is_idempotent(self):
        """A second end returns the stored record unchanged"""
        session = self._create_session()
        first = json.loads(self._patch(reverse('fasting:end_session', args=[session.id])).content)

        response = self._patch(reverse('fasting:end_session', args=[session.id]))

        self.assertEqual(response.status_code, 200)
        second = json.loads(response.content)
        self.assertEqual(second['endTime'], first['endTime'])
        self.assertEqual(second['status'], 'completed')

    def test_cancel_session(self):
        session = self._create_session()

        response = self._patch(reverse('fasting:cancel_session', args=[session.id]))

        self.assertEqual(json.loads(response.content)['status'], 'cancelled')

    def test_cancel_after_end_keeps_completed(self):
        session = self._create_session()
        self._patch(reverse('fasting:end_session', args=[session.id]))

        response = self._patch(reverse('fasting:cancel_session', args=[session.id]))

        self.assertEqual(json.loads(response.content)['status'], 'completed')

    def test_end_unknown_session(self):
        """Temporary client ids are not found"""
        response = self._patch(reverse('fasting:end_session', args=['temp-1700000000000']))

        self.assertEqual(response.status_code, 404)

    def test_end_requires_patch(self):
        session = self._create_session()

        response = self.client.post(reverse('fasting:end_session', args=[session.id]))

        self.assertEqual(response.status_code, 405)

    def test_update_start_time(self):
        """The start of an active fast can be corrected"""
        session = self._create_session()
        new_start = timezone.now() - timedelta(hours=5)

        response = self._patch(reverse('fasting:session_detail', args=[session.id]), {
            'startTime': _iso(new_start),
        })

        self.assertEqual(response.status_code, 200)
        session.refresh_from_db()
        self.assertEqual(session.start_time.replace(microsecond=0), new_start.replace(microsecond=0))
        self.assertEqual(session.status, 'active')

    def test_update_start_time_in_future_rejected(self):
        session = self._create_session()

        response = self._patch(reverse('fasting:session_detail', args=[session.id]), {
            'startTime': _iso(timezone.now() + timedelta(hours=2)),
        })

        self.assertEqual(response.status_code, 400)

    def test_patch_status_completes_session(self):
        """Replayed offline end: status + endTime through PATCH"""
        session = self._create_session()
        end_time = timezone.now() - timedelta(minutes=10)

        response = self._patch(reverse('fasting:session_detail', args=[session.id]), {
            'status': 'completed',
            'endTime': _iso(end_time),
        })

        self.assertEqual(response.status_code, 200)
        session.refresh_from_db()
        self.assertEqual(session.status, 'completed')
        self.assertEqual(session.end_time.replace(microsecond=0), end_time.replace(microsecond=0))

    def test_terminal_session_rejects_status_change(self):
        now = timezone.now()
        session = self._create_session(status='cancelled', end_time=now - timedelta(hours=1))

        response = self._patch(reverse('fasting:session_detail', args=[session.id]), {'status': 'completed'})

        self.assertEqual(response.status_code, 400)
        session.refresh_from_db()
        self.assertEqual(session.status, 'cancelled')

    def test_terminal_session_ignores_repeated_status(self):
        now = timezone.now()
        session = self._create_session(status='completed', end_time=now - timedelta(hours=1))

        response = self._patch(reverse('fasting:session_detail', args=[session.id]), {'status': 'completed'})

        self.assertEqual(response.status_code, 200)

    def test_delete_session(self):
        session = self._create_session()

        response = self.client.delete(reverse('fasting:session_detail', args=[session.id]))

        self.assertEqual(response.status_code, 200)
        self.assertFalse(FastingSession.objects.exists())

    @override_settings(HEALTHTRACKER_API_TOKEN='secret-token')
    def test_bearer_token_required_when_configured(self):
        """With a token configured, requests without it are rejected"""
        response = self.client.get(reverse('fasting:active_session'))
        self.assertEqual(response.status_code, 401)

        response = self.client.get(reverse('fasting:active_session'), HTTP_AUTHORIZATION='Bearer secret-token')
        self.assertEqual(response.status_code, 200)


class FastingStatsAPITestCase(TestCase):
    """Tests for the stats endpoint"""

    def test_stats_empty(self):
        response = self.client.get(reverse('fasting:stats'))

        self.assertEqual(response.status_code, 200)
        result = json.loads(response.content)
        self.assertEqual(result['totalSessions'], 0)
        self.assertEqual(result['currentStreak'], 0)

    def test_stats_with_completed_sessions(self):
        """Totals, longest fast and completion rate over completed fasts"""
        now = timezone.now()
        FastingSession.objects.create(
            fasting_type='16:8', target_hours=16, status='completed',
            start_time=now - timedelta(hours=40), end_time=now - timedelta(hours=24),
        )
        FastingSession.objects.create(
            fasting_type='18:6', target_hours=18, status='completed',
            start_time=now - timedelta(hours=20), end_time=now - timedelta(hours=2),
        )
        FastingSession.objects.create(
            fasting_type='16:8', target_hours=16, status='cancelled',
            start_time=now - timedelta(days=5), end_time=now - timedelta(days=5) + timedelta(hours=3),
        )

        result = json.loads(self.client.get(reverse('fasting:stats')).content)

        self.assertEqual(result['totalSessions'], 2)
        self.assertEqual(result['totalHours'], 34)
        self.assertEqual(result['averageHours'], 17)
        self.assertEqual(result['longestFast'], 18)
        self.assertEqual(result['completionRate'], 67)
        self.assertGreaterEqual(result['currentStreak'], 1)


class ScheduledFastAPITestCase(TestCase):
    """Tests for the scheduled fast endpoints"""

    def _post(self, data):
        return self.client.post(reverse('fasting:scheduled_fasts'), data=json.dumps(data),
                                content_type='application/json')

    def test_create_scheduled_fast_defaults_end(self):
        """scheduledEnd defaults to start + protocol hours"""
        start = timezone.now() + timedelta(days=1)

        response = self._post({'type': '16:8', 'scheduledStart': _iso(start), 'reminderTime': 30})

        self.assertEqual(response.status_code, 201)
        fast = ScheduledFast.objects.get()
        self.assertEqual(fast.scheduled_end - fast.scheduled_start, timedelta(hours=16))
        result = json.loads(response.content)
        self.assertEqual(result['reminderTime'], 30)
        self.assertIsNotNone(result['reminderAt'])

    def test_create_rejects_end_before_start(self):
        start = timezone.now() + timedelta(days=1)

        response = self._post({
            'type': '16:8',
            'scheduledStart': _iso(start),
            'scheduledEnd': _iso(start - timedelta(hours=1)),
        })

        self.assertEqual(response.status_code, 400)
        self.assertFalse(ScheduledFast.objects.exists())

    def test_create_rejects_reminder_out_of_range(self):
        response = self._post({
            'type': '16:8',
            'scheduledStart': _iso(timezone.now() + timedelta(days=1)),
            'reminderTime': 2,
        })

        self.assertEqual(response.status_code, 400)

    def test_create_recurring_requires_valid_pattern(self):
        response = self._post({
            'type': '16:8',
            'scheduledStart': _iso(timezone.now() + timedelta(days=1)),
            'isRecurring': True,
            'recurrencePattern': {'frequency': 'yearly', 'interval': 1},
        })

        self.assertEqual(response.status_code, 400)

    def test_list_scheduled_fasts(self):
        start = timezone.now() + timedelta(days=1)
        ScheduledFast.objects.create(fasting_type='16:8', scheduled_start=start,
                                     scheduled_end=start + timedelta(hours=16))

        response = self.client.get(reverse('fasting:scheduled_fasts'))

        self.assertEqual(len(json.loads(response.content)), 1)

    def test_upcoming_expands_recurring_fasts(self):
        """A daily fast yields one occurrence per day with its own start"""
        start = timezone.now() + timedelta(hours=1)
        fast = ScheduledFast.objects.create(
            fasting_type='16:8', scheduled_start=start, scheduled_end=start + timedelta(hours=16),
            is_recurring=True, recurrence_pattern={'frequency': 'daily', 'interval': 1},
        )

        response = self.client.get(reverse('fasting:upcoming_fasts'))

        occurrences = json.loads(response.content)
        self.assertEqual(len(occurrences), 7)
        self.assertTrue(all(o['id'] == str(fast.id) for o in occurrences))
        self.assertEqual(len({o['scheduledStart'] for o in occurrences}), 7)

    def test_upcoming_includes_fast_that_just_started(self):
        """Occurrences that started a few minutes ago stay visible for auto-start"""
        start = timezone.now() - timedelta(minutes=3)
        ScheduledFast.objects.create(fasting_type='16:8', scheduled_start=start,
                                     scheduled_end=start + timedelta(hours=16))

        response = self.client.get(reverse('fasting:upcoming_fasts'))

        self.assertEqual(len(json.loads(response.content)), 1)

    def test_upcoming_skips_inactive_and_distant(self):
        now = timezone.now()
        ScheduledFast.objects.create(fasting_type='16:8', scheduled_start=now + timedelta(days=10),
                                     scheduled_end=now + timedelta(days=10, hours=16))
        ScheduledFast.objects.create(fasting_type='16:8', scheduled_start=now + timedelta(days=1),
                                     scheduled_end=now + timedelta(days=1, hours=16), is_active=False)

        response = self.client.get(reverse('fasting:upcoming_fasts'))

        self.assertEqual(json.loads(response.content), [])

    def test_update_scheduled_fast(self):
        start = timezone.now() + timedelta(days=1)
        fast = ScheduledFast.objects.create(fasting_type='16:8', scheduled_start=start,
                                            scheduled_end=start + timedelta(hours=16))

        response = self.client.patch(
            reverse('fasting:scheduled_fast_detail', args=[fast.id]),
            data=json.dumps({'notes': 'Weekend fast'}),
            content_type='application/json',
        )

        self.assertEqual(response.status_code, 200)
        fast.refresh_from_db()
        self.assertEqual(fast.notes, 'Weekend fast')
        self.assertEqual(fast.scheduled_end - fast.scheduled_start, timedelta(hours=16))

    def test_delete_scheduled_fast(self):
        start = timezone.now() + timedelta(days=1)
        fast = ScheduledFast.objects.create(fasting_type='16:8', scheduled_start=start,
                                            scheduled_end=start + timedelta(hours=16))

        response = self.client.delete(reverse('fasting:scheduled_fast_detail', args=[fast.id]))

        self.assertEqual(response.status_code, 200)
        self.assertFalse(ScheduledFast.objects.exists())

    def test_delete_missing_scheduled_fast(self):
        response = self.client.delete(reverse('fasting:scheduled_fast_detail', args=['not-a-uuid']))

        self.assertEqual(response.status_code, 404)
