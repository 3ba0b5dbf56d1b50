import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='WeighIn',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('measurement_time', models.DateTimeField(help_text='When the weight measurement was taken')),
                ('weight', models.DecimalField(decimal_places=2, help_text='Weight in pounds (lbs)', max_digits=5)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Weigh-in',
                'verbose_name_plural': 'Weigh-ins',
                'ordering': ['-measurement_time'],
                'indexes': [models.Index(fields=['-measurement_time'], name='weighin_time_idx')],
            },
        ),
        migrations.CreateModel(
            name='HealthMetric',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('metric_type', models.CharField(choices=[('heart_rate', 'Heart Rate'), ('blood_pressure_systolic', 'Blood Pressure (Systolic)'), ('blood_pressure_diastolic', 'Blood Pressure (Diastolic)'), ('blood_glucose', 'Blood Glucose'), ('ketones', 'Ketones'), ('sleep_hours', 'Sleep Hours'), ('water_intake', 'Water Intake'), ('steps', 'Steps'), ('body_fat', 'Body Fat')], db_index=True, max_length=50)),
                ('value', models.FloatField()),
                ('unit', models.CharField(blank=True, default='', max_length=20)),
                ('recorded_at', models.DateTimeField()),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Health Metric',
                'verbose_name_plural': 'Health Metrics',
                'ordering': ['-recorded_at'],
            },
        ),
    ]
