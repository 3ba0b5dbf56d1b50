from django.contrib import admin
from .models import FastingSession, ScheduledFast


@admin.register(FastingSession)
class FastingSessionAdmin(admin.ModelAdmin):
    list_display = [
        'start_time',
        'end_time',
        'fasting_type',
        'target_hours',
        'duration_display',
        'status'
    ]
    list_filter = ['status', 'fasting_type']
    search_fields = ['notes']
    date_hierarchy = 'start_time'
    readonly_fields = ['id', 'created_at', 'updated_at', 'duration_display', 'duration_hours']

    fieldsets = (
        ('Fasting Details', {
            'fields': ('id', 'fasting_type', 'target_hours', 'start_time', 'end_time', 'status', 'notes')
        }),
        ('Calculated Fields', {
            'fields': ('duration_display', 'duration_hours'),
            'classes': ('collapse',)
        }),
        ('Audit Information', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def duration_display(self, obj):
        """Display duration in human-readable format"""
        if obj.duration:
            total_seconds = int(obj.duration.total_seconds())
            hours = total_seconds // 3600
            minutes = (total_seconds % 3600) // 60
            return f"{hours}h {minutes}m"
        return "-"
    duration_display.short_description = 'Duration'


@admin.register(ScheduledFast)
class ScheduledFastAdmin(admin.ModelAdmin):
    list_display = ['scheduled_start', 'scheduled_end', 'fasting_type', 'is_recurring', 'is_active']
    list_filter = ['is_active', 'is_recurring', 'fasting_type']
    date_hierarchy = 'scheduled_start'
    readonly_fields = ['id', 'created_at', 'updated_at']
