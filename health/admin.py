from django.contrib import admin
from .models import WeighIn, HealthMetric


@admin.register(WeighIn)
class WeighInAdmin(admin.ModelAdmin):
    list_display = ['measurement_time', 'weight', 'notes']
    date_hierarchy = 'measurement_time'
    readonly_fields = ['id', 'created_at', 'updated_at']


@admin.register(HealthMetric)
class HealthMetricAdmin(admin.ModelAdmin):
    list_display = ['recorded_at', 'metric_type', 'value', 'unit']
    list_filter = ['metric_type']
    date_hierarchy = 'recorded_at'
