"""
Health Tracker API client used by the fasting client core.

Talks to this project's JSON API (fasting sessions, scheduled fasts,
weight, health metrics, profile). Configured from environment variables:

- HEALTHTRACKER_API_URL (default http://localhost:8000)
- HEALTHTRACKER_API_TOKEN (optional bearer token)
- HEALTHTRACKER_REQUEST_TIMEOUT (seconds, default 10)
"""
import os
from datetime import datetime, timezone as dt_timezone
from typing import Optional, Dict, List

import requests
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from dotenv import load_dotenv

load_dotenv()

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 10

SESSIONS_ENDPOINT = "/api/fasting/sessions"
STATS_ENDPOINT = "/api/fasting/stats"
SCHEDULED_ENDPOINT = "/api/scheduled/fasts"
WEIGHT_ENDPOINT = "/api/health/weight"
METRICS_ENDPOINT = "/api/health/metrics"
PROFILE_ENDPOINT = "/api/user/profile"


class FastingAPIError(Exception):
    """A request failed at the transport level or returned a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_network_error(self) -> bool:
        return self.status_code is None


def to_iso(value) -> Optional[str]:
    """Serialize datetimes for JSON bodies; other values pass through."""
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from an API record into an aware datetime."""
    if not value:
        return None
    parsed = parse_datetime(value.replace("Z", "+00:00"))
    if parsed is None:
        raise ValueError(f"Invalid timestamp: {value}")
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


class HealthTrackerAPIClient:
    """Client for the Health Tracker JSON API."""

    def __init__(self, base_url: Optional[str] = None, api_token: Optional[str] = None,
                 timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.base_url = (base_url or os.getenv('HEALTHTRACKER_API_URL') or DEFAULT_BASE_URL).rstrip('/')
        self.api_token = api_token if api_token is not None else os.getenv('HEALTHTRACKER_API_TOKEN', '')
        self.timeout = timeout or float(os.getenv('HEALTHTRACKER_REQUEST_TIMEOUT', DEFAULT_TIMEOUT))
        self.http = session or requests.Session()

    def _headers(self) -> Dict:
        headers = {'Accept': 'application/json'}
        if self.api_token:
            headers['Authorization'] = f'Bearer {self.api_token}'
        return headers

    def _make_request(
        self,
        endpoint: str,
        method: str = 'GET',
        params: Optional[Dict] = None,
        json: Optional[Dict] = None,
    ):
        """
        Make a request to the API.

        Args:
            endpoint: API path (e.g., '/api/fasting/sessions')
            method: HTTP method (default: GET)
            params: Query parameters
            json: JSON body

        Returns:
            Decoded JSON response (None for an empty body)

        Raises:
            FastingAPIError on connection errors, timeouts and non-2xx responses
        """
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.http.request(
                method, url, headers=self._headers(), params=params, json=json, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise FastingAPIError(f"{method} {endpoint} failed: {e}") from e

        if not response.ok:
            raise FastingAPIError(self._error_message(response, method, endpoint), response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise FastingAPIError(f"{method} {endpoint} returned invalid JSON", response.status_code) from e

    @staticmethod
    def _error_message(response, method, endpoint) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get('error'):
            return body['error']
        return f"{method} {endpoint} returned HTTP {response.status_code}"

    def ping(self) -> bool:
        """
        True when the API host answers at all (any HTTP status),
        False on connection errors and timeouts.
        """
        try:
            self.http.head(self.base_url + '/', headers=self._headers(), timeout=self.timeout)
        except requests.exceptions.RequestException:
            return False
        return True

    # ---- Fasting sessions ----

    def create_session(self, fasting_type: str, target_hours: float, notes: Optional[str] = None,
                       start_time: Optional[datetime] = None) -> Dict:
        body = {'type': fasting_type, 'targetHours': target_hours, 'startTime': to_iso(start_time)}
        if notes:
            body['notes'] = notes
        return self._make_request(SESSIONS_ENDPOINT, 'POST', json=body)

    def end_session(self, session_id: str) -> Dict:
        return self._make_request(f'{SESSIONS_ENDPOINT}/{session_id}/end', 'PATCH')

    def cancel_session(self, session_id: str) -> Dict:
        return self._make_request(f'{SESSIONS_ENDPOINT}/{session_id}/cancel', 'PATCH')

    def update_session(self, session_id: str, data: Dict) -> Dict:
        body = {key: to_iso(value) for key, value in data.items()}
        return self._make_request(f'{SESSIONS_ENDPOINT}/{session_id}', 'PATCH', json=body)

    def get_active_session(self) -> Optional[Dict]:
        """The active session, or None (server answered null or 404)."""
        try:
            return self._make_request(f'{SESSIONS_ENDPOINT}/active')
        except FastingAPIError as e:
            if e.status_code == 404:
                return None
            raise

    def get_sessions(self, limit: int = 10, offset: int = 0) -> List[Dict]:
        result = self._make_request(SESSIONS_ENDPOINT, params={'limit': limit, 'offset': offset})
        return result.get('sessions', []) if result else []

    def get_stats(self) -> Dict:
        return self._make_request(STATS_ENDPOINT)

    # ---- Scheduled fasts ----

    def get_scheduled_fasts(self) -> List[Dict]:
        return self._make_request(SCHEDULED_ENDPOINT) or []

    def get_upcoming_fasts(self) -> List[Dict]:
        return self._make_request(f'{SCHEDULED_ENDPOINT}/upcoming') or []

    def create_scheduled_fast(self, data: Dict) -> Dict:
        body = {key: to_iso(value) for key, value in data.items()}
        return self._make_request(SCHEDULED_ENDPOINT, 'POST', json=body)

    def update_scheduled_fast(self, fast_id: str, data: Dict) -> Dict:
        body = {key: to_iso(value) for key, value in data.items()}
        return self._make_request(f'{SCHEDULED_ENDPOINT}/{fast_id}', 'PATCH', json=body)

    def delete_scheduled_fast(self, fast_id: str) -> None:
        self._make_request(f'{SCHEDULED_ENDPOINT}/{fast_id}', 'DELETE')

    # ---- Health records and profile ----

    def create_weigh_in(self, data: Dict) -> Dict:
        return self._make_request(WEIGHT_ENDPOINT, 'POST', json=data)

    def create_metric(self, data: Dict) -> Dict:
        return self._make_request(METRICS_ENDPOINT, 'POST', json=data)

    def get_profile(self) -> Dict:
        return self._make_request(PROFILE_ENDPOINT)

    def update_profile(self, data: Dict) -> Dict:
        return self._make_request(PROFILE_ENDPOINT, 'PATCH', json=data)

    # ---- Generic resource calls (offline queue replay) ----

    def create(self, endpoint: str, data: Dict):
        return self._make_request(endpoint, 'POST', json=data)

    def update(self, endpoint: str, data: Dict):
        return self._make_request(endpoint, 'PATCH', json=data)

    def delete(self, endpoint: str):
        return self._make_request(endpoint, 'DELETE')
