"""
Expansion of scheduled fasts into concrete occurrences.

A one-off scheduled fast has exactly one occurrence. A recurring one repeats
every `interval` days/weeks/months from its first scheduled start, until the
pattern's optional endDate. Weekly patterns with `daysOfWeek` fire on each
listed weekday (0 = Sunday) of every `interval`-th week.
"""
import calendar
from datetime import timedelta, timezone as dt_timezone

from django.utils import timezone
from django.utils.dateparse import parse_datetime


def js_weekday(value):
    """Weekday number with Sunday = 0, as stored in daysOfWeek."""
    return (value.weekday() + 1) % 7


def add_months(value, months):
    """Shift a datetime by whole months, clamping the day to the month length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _pattern_end(pattern):
    raw = pattern.get('endDate')
    if not raw or not isinstance(raw, str):
        return None
    end = parse_datetime(raw.replace('Z', '+00:00'))
    if end is not None and timezone.is_naive(end):
        end = timezone.make_aware(end, dt_timezone.utc)
    return end


def _recurring_starts(first_start, pattern, window_start, window_end):
    frequency = pattern.get('frequency')
    interval = max(1, int(pattern.get('interval', 1)))
    days_of_week = pattern.get('daysOfWeek') or []

    if frequency == 'daily':
        step = timedelta(days=interval)
        skip = max(0, (window_start - first_start) // step)
        current = first_start + step * skip
        while current <= window_end:
            yield current
            current += step

    elif frequency == 'weekly' and days_of_week:
        # Weeks start on Sunday, counted from the week of the first start
        week_zero = (first_start - timedelta(days=js_weekday(first_start))).date()
        current = first_start + timedelta(days=max(0, (window_start - first_start).days - 1))
        while current <= window_end:
            week_index = (current.date() - week_zero).days // 7
            if week_index % interval == 0 and js_weekday(current) in days_of_week:
                yield current
            current += timedelta(days=1)

    elif frequency == 'weekly':
        step = timedelta(weeks=interval)
        skip = max(0, (window_start - first_start) // step)
        current = first_start + step * skip
        while current <= window_end:
            yield current
            current += step

    elif frequency == 'monthly':
        count = 0
        current = first_start
        while current <= window_end:
            yield current
            count += interval
            current = add_months(first_start, count)


def expand_occurrences(scheduled_fast, window_start, window_end):
    """
    Return (start, end) pairs of `scheduled_fast` whose start lies within
    [window_start, window_end], in chronological order.
    """
    first_start = scheduled_fast.scheduled_start
    duration = scheduled_fast.scheduled_end - first_start

    if not scheduled_fast.is_recurring or not scheduled_fast.recurrence_pattern:
        if window_start <= first_start <= window_end:
            return [(first_start, first_start + duration)]
        return []

    pattern = scheduled_fast.recurrence_pattern
    pattern_end = _pattern_end(pattern)

    occurrences = []
    for start in _recurring_starts(first_start, pattern, window_start, window_end):
        if pattern_end and start > pattern_end:
            break
        if start < window_start:
            continue
        occurrences.append((start, start + duration))
    return occurrences
