import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='FastingSession',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('fasting_type', models.CharField(choices=[('16:8', '16:8'), ('18:6', '18:6'), ('20:4', '20:4'), ('24h', '24 hours'), ('36h', '36 hours'), ('48h', '48 hours'), ('custom', 'Custom')], help_text="Fasting protocol (e.g., '16:8', '24h', 'custom')", max_length=20)),
                ('start_time', models.DateTimeField(help_text='Fasting start time')),
                ('end_time', models.DateTimeField(blank=True, help_text='When the fast was ended or cancelled', null=True)),
                ('target_hours', models.FloatField(help_text='Planned fast length in hours')),
                ('status', models.CharField(choices=[('active', 'Active'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], db_index=True, default='active', max_length=20)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Fasting Session',
                'verbose_name_plural': 'Fasting Sessions',
                'ordering': ['-start_time'],
                'indexes': [models.Index(fields=['-start_time'], name='fasting_session_start_idx')],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status', 'active')), fields=('status',), name='single_active_fasting_session'),
                    models.CheckConstraint(condition=models.Q(('target_hours__gt', 0)), name='fasting_target_hours_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ScheduledFast',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('fasting_type', models.CharField(choices=[('16:8', '16:8'), ('18:6', '18:6'), ('20:4', '20:4'), ('24h', '24 hours'), ('36h', '36 hours'), ('48h', '48 hours'), ('custom', 'Custom')], max_length=20)),
                ('scheduled_start', models.DateTimeField()),
                ('scheduled_end', models.DateTimeField()),
                ('is_recurring', models.BooleanField(default=False)),
                ('recurrence_pattern', models.JSONField(blank=True, null=True)),
                ('reminder_time', models.PositiveIntegerField(blank=True, help_text='Minutes before the scheduled start to send a reminder', null=True)),
                ('notes', models.TextField(blank=True, default='')),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Scheduled Fast',
                'verbose_name_plural': 'Scheduled Fasts',
                'ordering': ['scheduled_start'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('scheduled_end__gt', models.F('scheduled_start'))), name='scheduled_fast_end_after_start'),
                ],
            },
        ),
    ]
