import uuid

from django.db import models


class WeighIn(models.Model):
    """
    Represents a weight measurement.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    measurement_time = models.DateTimeField(
        help_text="When the weight measurement was taken"
    )
    weight = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        help_text="Weight in pounds (lbs)"
    )
    notes = models.TextField(blank=True, default='')

    # Audit fields
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-measurement_time']
        indexes = [
            models.Index(fields=['-measurement_time'], name='weighin_time_idx'),
        ]
        verbose_name = 'Weigh-in'
        verbose_name_plural = 'Weigh-ins'

    def __str__(self):
        return f"{self.weight} lbs on {self.measurement_time.strftime('%Y-%m-%d %H:%M')}"


class HealthMetric(models.Model):
    """
    A vital-sign or wellness reading (heart rate, blood pressure, sleep, ...).
    """
    METRIC_TYPE_CHOICES = [
        ('heart_rate', 'Heart Rate'),
        ('blood_pressure_systolic', 'Blood Pressure (Systolic)'),
        ('blood_pressure_diastolic', 'Blood Pressure (Diastolic)'),
        ('blood_glucose', 'Blood Glucose'),
        ('ketones', 'Ketones'),
        ('sleep_hours', 'Sleep Hours'),
        ('water_intake', 'Water Intake'),
        ('steps', 'Steps'),
        ('body_fat', 'Body Fat'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    metric_type = models.CharField(max_length=50, choices=METRIC_TYPE_CHOICES, db_index=True)
    value = models.FloatField()
    unit = models.CharField(max_length=20, blank=True, default='')
    recorded_at = models.DateTimeField()
    notes = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-recorded_at']
        verbose_name = 'Health Metric'
        verbose_name_plural = 'Health Metrics'

    def __str__(self):
        return f"{self.get_metric_type_display()}: {self.value}{self.unit} on {self.recorded_at.strftime('%Y-%m-%d %H:%M')}"
