import json

from django.test import TestCase, Client
from django.urls import reverse

from profiles.models import UserProfile


class ProfileAPITestCase(TestCase):
    """Tests for the profile API endpoint"""

    def setUp(self):
        """Set up test data"""
        self.client = Client()

    def _patch(self, data):
        return self.client.patch(
            reverse('profiles:profile'),
            data=json.dumps(data),
            content_type='application/json'
        )

    def test_get_creates_default_profile(self):
        """Test that the profile exists on first read"""
        response = self.client.get(reverse('profiles:profile'))

        self.assertEqual(response.status_code, 200)
        result = json.loads(response.content)
        self.assertEqual(result['timezone'], 'UTC')
        self.assertIsNone(result['targetWeight'])
        self.assertEqual(UserProfile.objects.count(), 1)

    def test_update_profile(self):
        """Test a partial profile update"""
        response = self._patch({
            'name': '  Sam ',
            'targetWeight': 170,
            'activityLevel': 'moderate',
            'timezone': 'America/Chicago',
        })

        self.assertEqual(response.status_code, 200)
        result = json.loads(response.content)
        self.assertEqual(result['name'], 'Sam')
        self.assertEqual(result['targetWeight'], 170.0)
        self.assertEqual(result['timezone'], 'America/Chicago')

        self._patch({'name': 'Sam P'})
        profile = UserProfile.load()
        self.assertEqual(profile.activity_level, 'moderate')
        self.assertEqual(profile.name, 'Sam P')

    def test_invalid_timezone(self):
        """Test that unknown timezones are rejected"""
        response = self._patch({'timezone': 'Mars/Olympus_Mons'})

        self.assertEqual(response.status_code, 400)
        result = json.loads(response.content)
        self.assertFalse(result['success'])
        self.assertIn('Unknown timezone', result['error'])

    def test_invalid_activity_level(self):
        """Test that unknown activity levels are rejected"""
        response = self._patch({'activityLevel': 'couch'})

        self.assertEqual(response.status_code, 400)

    def test_single_profile(self):
        """Test that repeated updates keep a single profile row"""
        self._patch({'name': 'A'})
        self._patch({'name': 'B'})

        self.assertEqual(UserProfile.objects.count(), 1)
