import json
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase, Client
from django.urls import reverse
from django.utils import timezone

from health.models import WeighIn, HealthMetric


class WeighInAPITestCase(TestCase):
    """Tests for the weight API endpoints"""

    def setUp(self):
        """Set up test data"""
        self.client = Client()

    def _post(self, data):
        return self.client.post(
            reverse('health:weigh_ins'),
            data=json.dumps(data),
            content_type='application/json'
        )

    def test_create_weigh_in(self):
        """Test recording a weigh-in with an explicit time"""
        response = self._post({'weight': 182.4, 'recordedAt': '2024-03-01T07:30:00Z', 'notes': 'Fasted'})

        self.assertEqual(response.status_code, 201)
        result = json.loads(response.content)
        self.assertEqual(result['weight'], 182.4)
        self.assertEqual(result['notes'], 'Fasted')
        self.assertTrue(result['recordedAt'].startswith('2024-03-01T07:30:00'))

        weigh_in = WeighIn.objects.get(id=result['id'])
        self.assertEqual(weigh_in.weight, Decimal('182.40'))

    def test_create_defaults_to_now(self):
        """Test that a missing recordedAt uses the current time"""
        before = timezone.now()
        response = self._post({'weight': 180})

        self.assertEqual(response.status_code, 201)
        weigh_in = WeighIn.objects.get()
        self.assertGreaterEqual(weigh_in.measurement_time, before)

    def test_weight_required(self):
        """Test that weight is required"""
        response = self._post({'notes': 'no weight'})

        self.assertEqual(response.status_code, 400)
        result = json.loads(response.content)
        self.assertFalse(result['success'])
        self.assertEqual(result['error'], 'Weight is required')

    def test_weight_out_of_range(self):
        """Test that implausible weights are rejected"""
        for weight in (0, -5, 1000, 'heavy'):
            response = self._post({'weight': weight})
            self.assertEqual(response.status_code, 400, weight)
        self.assertEqual(WeighIn.objects.count(), 0)

    def test_list_newest_first(self):
        """Test that weigh-ins are listed newest first and limited"""
        now = timezone.now()
        for days in range(5):
            WeighIn.objects.create(weight=180 + days, measurement_time=now - timedelta(days=days))

        response = self.client.get(reverse('health:weigh_ins'), {'limit': 3})

        self.assertEqual(response.status_code, 200)
        records = json.loads(response.content)['records']
        self.assertEqual([r['weight'] for r in records], [180.0, 181.0, 182.0])

    def test_update_weigh_in(self):
        """Test correcting a weigh-in"""
        weigh_in = WeighIn.objects.create(weight=180, measurement_time=timezone.now())

        response = self.client.patch(
            reverse('health:weigh_in_detail', args=[str(weigh_in.id)]),
            data=json.dumps({'weight': 179.5}),
            content_type='application/json'
        )

        self.assertEqual(response.status_code, 200)
        weigh_in.refresh_from_db()
        self.assertEqual(weigh_in.weight, Decimal('179.50'))

    def test_delete_weigh_in(self):
        """Test deleting a weigh-in"""
        weigh_in = WeighIn.objects.create(weight=180, measurement_time=timezone.now())

        response = self.client.delete(reverse('health:weigh_in_detail', args=[str(weigh_in.id)]))

        self.assertEqual(response.status_code, 200)
        self.assertFalse(WeighIn.objects.exists())

    def test_unknown_weigh_in(self):
        """Test that unknown or malformed ids return 404"""
        for weigh_in_id in ('temp-1700000000000', '00000000-0000-0000-0000-000000000000'):
            response = self.client.delete(reverse('health:weigh_in_detail', args=[weigh_in_id]))
            self.assertEqual(response.status_code, 404)


class HealthMetricAPITestCase(TestCase):
    """Tests for the health metric API endpoints"""

    def setUp(self):
        """Set up test data"""
        self.client = Client()

    def _post(self, data):
        return self.client.post(
            reverse('health:metrics'),
            data=json.dumps(data),
            content_type='application/json'
        )

    def test_create_metric(self):
        """Test recording a metric reading"""
        response = self._post({'metricType': 'ketones', 'value': 1.2, 'unit': 'mmol/L'})

        self.assertEqual(response.status_code, 201)
        result = json.loads(response.content)
        self.assertEqual(result['metricType'], 'ketones')
        self.assertEqual(result['unit'], 'mmol/L')
        self.assertEqual(HealthMetric.objects.count(), 1)

    def test_unknown_metric_type(self):
        """Test that unknown metric types are rejected"""
        response = self._post({'metricType': 'mood', 'value': 5})

        self.assertEqual(response.status_code, 400)
        self.assertIn('Unknown metric type', json.loads(response.content)['error'])

    def test_non_numeric_value(self):
        """Test that metric values must be numbers"""
        for value in ('high', True, None):
            response = self._post({'metricType': 'steps', 'value': value})
            self.assertEqual(response.status_code, 400, value)

    def test_filter_by_type(self):
        """Test listing metrics of one type"""
        now = timezone.now()
        HealthMetric.objects.create(metric_type='steps', value=8000, recorded_at=now)
        HealthMetric.objects.create(metric_type='heart_rate', value=62, unit='bpm', recorded_at=now)

        response = self.client.get(reverse('health:metrics'), {'type': 'steps'})

        metrics = json.loads(response.content)['metrics']
        self.assertEqual(len(metrics), 1)
        self.assertEqual(metrics[0]['value'], 8000)
