from datetime import datetime

import pytz
from django.utils import timezone


def get_user_timezone(request):
    """
    Get the user's timezone from the `user_timezone` cookie (or the
    `X-Timezone` header sent by the fasting client).
    Falls back to UTC if neither is set or the name is unknown.
    """
    tz_name = request.COOKIES.get('user_timezone') or request.headers.get('X-Timezone') or 'UTC'
    try:
        return pytz.timezone(tz_name)
    except pytz.exceptions.UnknownTimeZoneError:
        return pytz.UTC


def local_date(value, user_tz):
    """Calendar date of an aware datetime as seen in `user_tz`."""
    return value.astimezone(user_tz).date()


def get_user_today(request):
    """
    Get today's date in the user's timezone.
    Returns the date plus timezone-aware start/end datetimes of that day.
    """
    user_tz = get_user_timezone(request)
    today = local_date(timezone.now(), user_tz)

    today_start = user_tz.localize(datetime.combine(today, datetime.min.time()))
    today_end = user_tz.localize(datetime.combine(today, datetime.max.time()))

    return today, today_start, today_end
