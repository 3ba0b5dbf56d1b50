import logging
import uuid
from datetime import timedelta

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET, require_http_methods

from .models import FastingSession, ScheduledFast, FASTING_TYPE_CHOICES, FASTING_TYPE_HOURS
from .recurrence import expand_occurrences
from .stats import fasting_stats
from healthtracker.api_utils import (
    APIValidationError,
    api_view,
    error_response,
    isoformat,
    parse_iso_datetime,
    parse_json_body,
)
from healthtracker.timezone_utils import get_user_timezone, get_user_today

logger = logging.getLogger(__name__)

VALID_TYPES = {choice for choice, _ in FASTING_TYPE_CHOICES}
MAX_TARGET_HOURS = 168
# Tolerated client clock skew when checking "not in the future"
CLOCK_SKEW = timedelta(minutes=1)
UPCOMING_DAYS = 7
# Occurrences that started up to this long ago are still "upcoming" so the
# auto-start window (scheduled start +/- 5 minutes) can see them
UPCOMING_GRACE = timedelta(minutes=5)


def serialize_session(session):
    """Serialize a fasting session to a dictionary for JSON responses."""
    return {
        'id': str(session.id),
        'type': session.fasting_type,
        'startTime': isoformat(session.start_time),
        'endTime': isoformat(session.end_time),
        'targetHours': session.target_hours,
        'status': session.status,
        'notes': session.notes,
        'createdAt': isoformat(session.created_at),
        'updatedAt': isoformat(session.updated_at),
    }


def serialize_scheduled_fast(fast, start=None, end=None):
    """
    Serialize a scheduled fast. When `start`/`end` are given, the record
    describes that single occurrence of a recurring fast.
    """
    start = start or fast.scheduled_start
    end = end or fast.scheduled_end
    return {
        'id': str(fast.id),
        'type': fast.fasting_type,
        'scheduledStart': isoformat(start),
        'scheduledEnd': isoformat(end),
        'isRecurring': fast.is_recurring,
        'recurrencePattern': fast.recurrence_pattern,
        'reminderTime': fast.reminder_time,
        'reminderAt': isoformat(start - timedelta(minutes=fast.reminder_time)) if fast.reminder_time else None,
        'notes': fast.notes,
        'isActive': fast.is_active,
        'createdAt': isoformat(fast.created_at),
        'updatedAt': isoformat(fast.updated_at),
    }


def _get_object(model, object_id):
    """Fetch by UUID primary key, returning None for unknown or malformed ids (e.g. 'temp-...')."""
    try:
        return model.objects.get(id=uuid.UUID(str(object_id)))
    except (ValueError, model.DoesNotExist):
        return None


def _parse_fasting_type(data):
    fasting_type = data.get('type')
    if not fasting_type:
        raise APIValidationError('Fasting type is required')
    if fasting_type not in VALID_TYPES:
        raise APIValidationError(f'Unknown fasting type: {fasting_type}')
    return fasting_type


def _parse_target_hours(data, fasting_type):
    target_hours = data.get('targetHours')
    if target_hours is None:
        target_hours = FASTING_TYPE_HOURS.get(fasting_type)
    if target_hours is None:
        raise APIValidationError('targetHours is required for custom fasts')
    if isinstance(target_hours, bool) or not isinstance(target_hours, (int, float)):
        raise APIValidationError('targetHours must be a number')
    if not 0 < target_hours <= MAX_TARGET_HOURS:
        raise APIValidationError(f'targetHours must be between 0 and {MAX_TARGET_HOURS}')
    return float(target_hours)


def _parse_past_datetime(value, field_name):
    parsed = parse_iso_datetime(value, field_name)
    if parsed > timezone.now() + CLOCK_SKEW:
        raise APIValidationError(f'{field_name} cannot be in the future')
    return parsed


# ---------------------------------------------------------------------------
# Fasting sessions
# ---------------------------------------------------------------------------

@require_http_methods(["GET", "POST"])
@api_view
def sessions(request):
    """
    GET: list sessions, newest first.
        Query params: limit (default 20), offset (default 0)
        Returns JSON: {sessions: [...], total: int}

    POST: start a session.
        Body: {type, targetHours, notes?, startTime?}
        Returns JSON: the created session (201), or 409 if one is active
    """
    if request.method == 'GET':
        try:
            limit = int(request.GET.get('limit', 20))
            offset = int(request.GET.get('offset', 0))
        except ValueError:
            raise APIValidationError('limit and offset must be integers')
        limit = max(1, min(limit, 100))
        offset = max(0, offset)

        queryset = FastingSession.objects.order_by('-start_time')
        return JsonResponse({
            'sessions': [serialize_session(s) for s in queryset[offset:offset + limit]],
            'total': queryset.count(),
        })

    data = parse_json_body(request)
    fasting_type = _parse_fasting_type(data)
    target_hours = _parse_target_hours(data, fasting_type)
    start_time = timezone.now()
    if data.get('startTime'):
        start_time = _parse_past_datetime(data['startTime'], 'startTime')

    if FastingSession.objects.filter(status=FastingSession.STATUS_ACTIVE).exists():
        return error_response('An active fasting session already exists', status=409)

    try:
        with transaction.atomic():
            session = FastingSession.objects.create(
                fasting_type=fasting_type,
                target_hours=target_hours,
                start_time=start_time,
                notes=data.get('notes') or '',
            )
    except IntegrityError:
        return error_response('An active fasting session already exists', status=409)

    logger.info(f"Started {fasting_type} fast {session.id} ({target_hours}h)")
    return JsonResponse(serialize_session(session), status=201)


@require_GET
@api_view
def active_session(request):
    """Return the active session, or null when no fast is running."""
    session = FastingSession.objects.filter(status=FastingSession.STATUS_ACTIVE).first()
    return JsonResponse(serialize_session(session) if session else None, safe=False)


@require_http_methods(["GET", "PATCH", "DELETE"])
@api_view
def session_detail(request, session_id):
    """
    GET: a single session.

    PATCH: edit a session.
        Body: {startTime?, endTime?, status?, notes?}
        Completed/cancelled sessions only accept a corrected startTime; a
        repeated status change to the status they already have is ignored.

    DELETE: remove a session.
    """
    session = _get_object(FastingSession, session_id)
    if session is None:
        return error_response('Fasting session not found', status=404)

    if request.method == 'GET':
        return JsonResponse(serialize_session(session))

    if request.method == 'DELETE':
        session.delete()
        return JsonResponse({'success': True})

    data = parse_json_body(request)
    is_terminal = session.status != FastingSession.STATUS_ACTIVE
    new_status = data.get('status')

    if new_status is not None and new_status not in dict(FastingSession.STATUS_CHOICES):
        raise APIValidationError(f'Unknown status: {new_status}')

    if is_terminal:
        if new_status not in (None, session.status):
            raise APIValidationError(f'Session is already {session.status}')
        if 'notes' in data:
            raise APIValidationError(f'Session is already {session.status}')
        if 'startTime' in data:
            start_time = _parse_past_datetime(data['startTime'], 'startTime')
            if session.end_time and start_time >= session.end_time:
                raise APIValidationError('startTime must be before endTime')
            session.start_time = start_time
            session.save()
        return JsonResponse(serialize_session(session))

    if 'startTime' in data:
        session.start_time = _parse_past_datetime(data['startTime'], 'startTime')
    if 'notes' in data:
        session.notes = data.get('notes') or ''
    if new_status in (FastingSession.STATUS_COMPLETED, FastingSession.STATUS_CANCELLED):
        session.status = new_status
        end_time = timezone.now()
        if data.get('endTime'):
            end_time = parse_iso_datetime(data['endTime'], 'endTime')
        if end_time < session.start_time:
            raise APIValidationError('endTime must be after startTime')
        session.end_time = end_time

    session.save()
    return JsonResponse(serialize_session(session))


def _finish_session(session_id, status):
    session = _get_object(FastingSession, session_id)
    if session is None:
        return error_response('Fasting session not found', status=404)

    # Ending/cancelling twice returns the stored record unchanged
    if session.status == FastingSession.STATUS_ACTIVE:
        session.status = status
        session.end_time = timezone.now()
        session.save()
        logger.info(f"Fast {session.id} {status}")

    return JsonResponse(serialize_session(session))


@require_http_methods(["PATCH"])
@api_view
def end_session(request, session_id):
    """Mark the session completed (idempotent)."""
    return _finish_session(session_id, FastingSession.STATUS_COMPLETED)


@require_http_methods(["PATCH"])
@api_view
def cancel_session(request, session_id):
    """Mark the session cancelled (idempotent)."""
    return _finish_session(session_id, FastingSession.STATUS_CANCELLED)


@require_GET
@api_view
def stats(request):
    """Aggregate statistics over completed fasts."""
    today, _, _ = get_user_today(request)
    return JsonResponse(fasting_stats(get_user_timezone(request), today))


# ---------------------------------------------------------------------------
# Scheduled fasts
# ---------------------------------------------------------------------------

def _apply_schedule_fields(fast, data, partial=False):
    """Copy camelCase request fields onto a ScheduledFast and validate it."""
    if not partial or 'type' in data:
        fast.fasting_type = _parse_fasting_type(data)
    if not partial or 'scheduledStart' in data:
        fast.scheduled_start = parse_iso_datetime(data.get('scheduledStart'), 'scheduledStart')

    if data.get('scheduledEnd'):
        fast.scheduled_end = parse_iso_datetime(data['scheduledEnd'], 'scheduledEnd')
    elif not partial or 'scheduledStart' in data or 'type' in data:
        hours = data.get('targetHours') or FASTING_TYPE_HOURS.get(fast.fasting_type)
        if not hours:
            raise APIValidationError('scheduledEnd is required for custom fasts')
        fast.scheduled_end = fast.scheduled_start + timedelta(hours=hours)

    if 'isRecurring' in data:
        fast.is_recurring = bool(data['isRecurring'])
    if 'recurrencePattern' in data:
        fast.recurrence_pattern = data['recurrencePattern']
    if 'reminderTime' in data:
        fast.reminder_time = data['reminderTime']
    if 'notes' in data:
        fast.notes = data.get('notes') or ''
    if 'isActive' in data:
        fast.is_active = bool(data['isActive'])

    try:
        fast.full_clean()
    except ValidationError as e:
        messages = [msg for field_messages in e.message_dict.values() for msg in field_messages]
        raise APIValidationError('; '.join(messages))


@require_http_methods(["GET", "POST"])
@api_view
def scheduled_fasts(request):
    """
    GET: all scheduled fasts, soonest first.

    POST: create a scheduled fast.
        Body: {type, scheduledStart, scheduledEnd?, isRecurring?,
               recurrencePattern?, reminderTime?, notes?}
        scheduledEnd defaults to scheduledStart + the protocol's hours.
    """
    if request.method == 'GET':
        return JsonResponse(
            [serialize_scheduled_fast(f) for f in ScheduledFast.objects.order_by('scheduled_start')],
            safe=False,
        )

    data = parse_json_body(request)
    fast = ScheduledFast()
    _apply_schedule_fields(fast, data)
    fast.save()

    logger.info(f"Scheduled {fast.fasting_type} fast {fast.id} at {fast.scheduled_start.isoformat()}")
    return JsonResponse(serialize_scheduled_fast(fast), status=201)


@require_GET
@api_view
def upcoming_fasts(request):
    """
    Occurrences of active scheduled fasts starting within the next 7 days.

    Recurring fasts are expanded so every occurrence carries its own
    scheduledStart/scheduledEnd.
    """
    now = timezone.now()
    window_start = now - UPCOMING_GRACE
    window_end = now + timedelta(days=UPCOMING_DAYS)

    occurrences = []
    for fast in ScheduledFast.objects.filter(is_active=True):
        for start, end in expand_occurrences(fast, window_start, window_end):
            occurrences.append(serialize_scheduled_fast(fast, start, end))

    occurrences.sort(key=lambda item: item['scheduledStart'])
    return JsonResponse(occurrences, safe=False)


@require_http_methods(["GET", "PATCH", "DELETE"])
@api_view
def scheduled_fast_detail(request, fast_id):
    fast = _get_object(ScheduledFast, fast_id)
    if fast is None:
        return error_response('Scheduled fast not found', status=404)

    if request.method == 'GET':
        return JsonResponse(serialize_scheduled_fast(fast))

    if request.method == 'DELETE':
        fast.delete()
        return JsonResponse({'success': True})

    data = parse_json_body(request)
    _apply_schedule_fields(fast, data, partial=True)
    fast.save()
    return JsonResponse(serialize_scheduled_fast(fast))
