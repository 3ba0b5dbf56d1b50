"""
Formatting helpers for the fasting timer.

All inputs are whole seconds. Hours are never wrapped into days, so a 48 hour
fast reads "48:00:00".
"""


def format_duration(seconds: int) -> str:
    """Format seconds as 'HH:MM:SS' (negative values clamp to zero)."""
    seconds = max(0, int(seconds))
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_hours(seconds: int) -> str:
    """Format seconds as fractional hours with one decimal, e.g. '16.0'."""
    return f"{max(0, seconds) / 3600:.1f}"


def progress(elapsed_seconds: int, total_seconds: int) -> float:
    """Fraction of the planned fast completed, clamped to [0, 1]."""
    if total_seconds <= 0:
        return 0.0
    return min(max(elapsed_seconds / total_seconds, 0.0), 1.0)
