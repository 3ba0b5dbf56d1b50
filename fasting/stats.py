"""
Aggregate fasting statistics.

Durations are measured from start_time to end_time of completed sessions.
Streaks count consecutive calendar days (in the user's timezone) with at
least one completed fast; the current streak is alive if the latest such
day is today or yesterday.
"""
from datetime import timedelta

from .models import FastingSession
from healthtracker.timezone_utils import local_date


def calculate_streaks(days, today):
    """
    Return (current_streak, longest_streak) for an iterable of dates.
    """
    unique_days = sorted(set(days), reverse=True)
    if not unique_days:
        return 0, 0

    longest = 1
    run = 1
    for previous, day in zip(unique_days, unique_days[1:]):
        if previous - day == timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)

    current = 0
    if unique_days[0] in (today, today - timedelta(days=1)):
        current = 1
        for previous, day in zip(unique_days, unique_days[1:]):
            if previous - day != timedelta(days=1):
                break
            current += 1

    return current, longest


def fasting_stats(user_tz, today):
    completed = list(
        FastingSession.objects.filter(
            status=FastingSession.STATUS_COMPLETED,
            end_time__isnull=False,
        ).order_by('-start_time')
    )
    total_count = FastingSession.objects.count()

    if not completed:
        return {
            'totalSessions': 0,
            'totalHours': 0,
            'averageHours': 0,
            'longestFast': 0,
            'currentStreak': 0,
            'longestStreak': 0,
            'completionRate': 0,
        }

    hours = [session.duration_hours for session in completed]
    total_hours = sum(hours)
    current_streak, longest_streak = calculate_streaks(
        (local_date(session.start_time, user_tz) for session in completed),
        today,
    )

    return {
        'totalSessions': len(completed),
        'totalHours': round(total_hours),
        'averageHours': round(total_hours / len(completed)),
        'longestFast': round(max(hours)),
        'currentStreak': current_streak,
        'longestStreak': longest_streak,
        'completionRate': round(len(completed) / total_count * 100) if total_count else 0,
    }
