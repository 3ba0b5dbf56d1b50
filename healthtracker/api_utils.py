"""
Helpers shared by the JSON API views.

Every endpoint answers errors as ``{"success": false, "error": "..."}`` with
an HTTP status, and reads/writes camelCase JSON bodies.
"""
import json
import logging
from datetime import timezone as dt_timezone
from functools import wraps

from django.conf import settings
from django.http import JsonResponse
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from django.views.decorators.csrf import csrf_exempt

logger = logging.getLogger(__name__)


class APIValidationError(ValueError):
    """Raised by request parsing helpers; views turn it into a 400."""


def error_response(message, status=400):
    return JsonResponse({'success': False, 'error': message}, status=status)


def parse_json_body(request):
    """Decode a JSON object body, treating an empty body as {}."""
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except json.JSONDecodeError:
        raise APIValidationError('Invalid JSON')
    if not isinstance(data, dict):
        raise APIValidationError('Request body must be a JSON object')
    return data


def parse_iso_datetime(value, field_name):
    """
    Parse an ISO-8601 string into an aware datetime.

    Naive values are interpreted as UTC.
    """
    if not isinstance(value, str):
        raise APIValidationError(f'{field_name} must be an ISO-8601 string')
    parsed = parse_datetime(value.replace('Z', '+00:00'))
    if parsed is None:
        raise APIValidationError(f'{field_name} is not a valid datetime')
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


def isoformat(value):
    return value.isoformat() if value else None


def api_view(view_func):
    """
    Wrap a JSON API view.

    - Enforces the optional bearer token (settings.HEALTHTRACKER_API_TOKEN)
    - Converts APIValidationError into 400 responses
    - Converts unexpected exceptions into 500 responses
    """
    @csrf_exempt
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        expected = getattr(settings, 'HEALTHTRACKER_API_TOKEN', '')
        if expected:
            header = request.headers.get('Authorization', '')
            if header != f'Bearer {expected}':
                return error_response('Unauthorized', status=401)
        try:
            return view_func(request, *args, **kwargs)
        except APIValidationError as e:
            return error_response(str(e), status=400)
        except Exception as e:
            logger.exception(f"Unhandled error in {view_func.__name__}")
            return error_response(f'Server error: {str(e)}', status=500)
    return wrapper
