from decimal import Decimal, InvalidOperation

import pytz
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from .models import UserProfile
from healthtracker.api_utils import APIValidationError, api_view, isoformat, parse_json_body

VALID_ACTIVITY_LEVELS = {choice for choice, _ in UserProfile.ACTIVITY_LEVEL_CHOICES}


def serialize_profile(profile):
    return {
        'name': profile.name,
        'heightCm': float(profile.height_cm) if profile.height_cm is not None else None,
        'targetWeight': float(profile.target_weight) if profile.target_weight is not None else None,
        'activityLevel': profile.activity_level,
        'timezone': profile.timezone,
        'updatedAt': isoformat(profile.updated_at),
    }


def _optional_decimal(value, field_name):
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise APIValidationError(f'{field_name} must be a number')


@require_http_methods(["GET", "PATCH"])
@api_view
def profile(request):
    """
    GET: the profile.

    PATCH: update any of {name, heightCm, targetWeight, activityLevel, timezone}.
    """
    user_profile = UserProfile.load()

    if request.method == 'GET':
        return JsonResponse(serialize_profile(user_profile))

    data = parse_json_body(request)
    if 'name' in data:
        user_profile.name = (data.get('name') or '').strip()
    if 'heightCm' in data:
        user_profile.height_cm = _optional_decimal(data['heightCm'], 'heightCm')
    if 'targetWeight' in data:
        user_profile.target_weight = _optional_decimal(data['targetWeight'], 'targetWeight')
    if 'activityLevel' in data:
        if data['activityLevel'] not in VALID_ACTIVITY_LEVELS:
            raise APIValidationError(f"Unknown activity level: {data['activityLevel']}")
        user_profile.activity_level = data['activityLevel']
    if 'timezone' in data:
        if data['timezone'] not in pytz.all_timezones_set:
            raise APIValidationError(f"Unknown timezone: {data['timezone']}")
        user_profile.timezone = data['timezone']

    user_profile.save()
    return JsonResponse(serialize_profile(user_profile))
