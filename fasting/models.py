import uuid
from datetime import timedelta

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q
from django.utils.dateparse import parse_datetime


FASTING_TYPE_CHOICES = [
    ('16:8', '16:8'),
    ('18:6', '18:6'),
    ('20:4', '20:4'),
    ('24h', '24 hours'),
    ('36h', '36 hours'),
    ('48h', '48 hours'),
    ('custom', 'Custom'),
]

# Default planned duration per protocol; 'custom' requires explicit hours
FASTING_TYPE_HOURS = {
    '16:8': 16,
    '18:6': 18,
    '20:4': 20,
    '24h': 24,
    '36h': 36,
    '48h': 48,
}

RECURRENCE_FREQUENCIES = ('daily', 'weekly', 'monthly')


class FastingSession(models.Model):
    """
    A single fast: started, then completed or cancelled.

    At most one session may be 'active' at any time.
    """
    STATUS_ACTIVE = 'active'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    fasting_type = models.CharField(
        max_length=20,
        choices=FASTING_TYPE_CHOICES,
        help_text="Fasting protocol (e.g., '16:8', '24h', 'custom')"
    )
    start_time = models.DateTimeField(
        help_text="Fasting start time"
    )
    end_time = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the fast was ended or cancelled"
    )
    target_hours = models.FloatField(
        help_text="Planned fast length in hours"
    )
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_ACTIVE,
        db_index=True
    )
    notes = models.TextField(blank=True, default='')

    # Audit fields
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-start_time']
        indexes = [
            models.Index(fields=['-start_time'], name='fasting_session_start_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['status'],
                condition=Q(status='active'),
                name='single_active_fasting_session',
            ),
            models.CheckConstraint(
                condition=Q(target_hours__gt=0),
                name='fasting_target_hours_positive',
            ),
        ]
        verbose_name = 'Fasting Session'
        verbose_name_plural = 'Fasting Sessions'

    def __str__(self):
        return f"{self.fasting_type} fast on {self.start_time.strftime('%Y-%m-%d %H:%M')} ({self.status})"

    @property
    def target_end_time(self):
        return self.start_time + timedelta(hours=self.target_hours)

    @property
    def duration(self):
        """Actual fasting duration (None while the fast is still running)"""
        if self.end_time:
            return self.end_time - self.start_time
        return None

    @property
    def duration_hours(self):
        if self.duration:
            return self.duration.total_seconds() / 3600
        return None


class ScheduledFast(models.Model):
    """
    A planned fast, optionally repeating on a recurrence pattern.

    recurrence_pattern shape:
        {"frequency": "daily"|"weekly"|"monthly", "interval": 1..30,
         "daysOfWeek": [0..6], "endDate": "<iso datetime>"}
    daysOfWeek uses 0 = Sunday.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    fasting_type = models.CharField(max_length=20, choices=FASTING_TYPE_CHOICES)
    scheduled_start = models.DateTimeField()
    scheduled_end = models.DateTimeField()
    is_recurring = models.BooleanField(default=False)
    recurrence_pattern = models.JSONField(null=True, blank=True)
    reminder_time = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Minutes before the scheduled start to send a reminder"
    )
    notes = models.TextField(blank=True, default='')
    is_active = models.BooleanField(default=True)

    # Audit fields
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['scheduled_start']
        constraints = [
            models.CheckConstraint(
                condition=Q(scheduled_end__gt=F('scheduled_start')),
                name='scheduled_fast_end_after_start',
            ),
        ]
        verbose_name = 'Scheduled Fast'
        verbose_name_plural = 'Scheduled Fasts'

    def __str__(self):
        suffix = ' (recurring)' if self.is_recurring else ''
        return f"{self.fasting_type} fast at {self.scheduled_start.strftime('%Y-%m-%d %H:%M')}{suffix}"

    @property
    def duration(self):
        return self.scheduled_end - self.scheduled_start

    def clean(self):
        if self.scheduled_start and self.scheduled_end and self.scheduled_end <= self.scheduled_start:
            raise ValidationError({'scheduled_end': 'Scheduled end must be after scheduled start'})
        if isinstance(self.reminder_time, int) and not 5 <= self.reminder_time <= 1440:
            raise ValidationError({'reminder_time': 'Reminder must be between 5 and 1440 minutes'})
        if self.is_recurring:
            validate_recurrence_pattern(self.recurrence_pattern)


def validate_recurrence_pattern(pattern):
    """Raise ValidationError unless `pattern` is a well-formed recurrence dict."""
    if not isinstance(pattern, dict):
        raise ValidationError({'recurrence_pattern': 'Recurring fasts need a recurrence pattern'})

    if pattern.get('frequency') not in RECURRENCE_FREQUENCIES:
        raise ValidationError({'recurrence_pattern': 'Frequency must be daily, weekly or monthly'})

    interval = pattern.get('interval', 1)
    if not isinstance(interval, int) or isinstance(interval, bool) or not 1 <= interval <= 30:
        raise ValidationError({'recurrence_pattern': 'Interval must be an integer between 1 and 30'})

    days = pattern.get('daysOfWeek')
    if days is not None:
        if not isinstance(days, list) or any(
            not isinstance(d, int) or isinstance(d, bool) or not 0 <= d <= 6 for d in days
        ):
            raise ValidationError({'recurrence_pattern': 'daysOfWeek must be a list of integers 0-6'})

    end_date = pattern.get('endDate')
    if end_date is not None and (not isinstance(end_date, str) or parse_datetime(end_date.replace('Z', '+00:00')) is None):
        raise ValidationError({'recurrence_pattern': 'endDate must be an ISO-8601 datetime'})
