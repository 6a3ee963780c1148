import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Instructor',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('email', models.EmailField(max_length=254, unique=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='RoomType',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=120, unique=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='PhysicalRoom',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=120, unique=True)),
                ('seating_capacity', models.PositiveIntegerField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('room_type', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='rooms', to='booking_app.roomtype')),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='ClassSeries',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=255)),
                ('recurrence_type', models.CharField(choices=[('SINGLE', 'Single (one-off)'), ('DAILY', 'Daily'), ('WEEKLY', 'Weekly'), ('MONTHLY', 'Monthly'), ('CUSTOM_MANUAL', 'Custom (hand-picked dates)'), ('CUSTOM_PATTERN', 'Custom (weekly pattern)')], default='SINGLE', max_length=20)),
                ('series_start', models.DateField()),
                ('series_end', models.DateField(blank=True, help_text='Required for repeating classes', null=True)),
                ('interval_count', models.PositiveIntegerField(default=1, help_text='Every N days or weeks')),
                ('selected_weekdays', models.JSONField(blank=True, default=list, help_text='0=Sunday .. 6=Saturday')),
                ('selected_month_days', models.JSONField(blank=True, default=list, help_text='1 .. 31')),
                ('manual_dates', models.JSONField(blank=True, default=list, help_text='ISO dates for hand-picked classes')),
                ('time_windows', models.JSONField(default=list, help_text="List of {'start_time_24h': 'HH:mm', 'end_time_24h': 'HH:mm'}")),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('instructor', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='series', to='booking_app.instructor')),
                ('room', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='series', to='booking_app.physicalroom')),
            ],
            options={
                'verbose_name_plural': 'class series',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='ClassSession',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('start', models.DateTimeField(db_index=True)),
                ('end', models.DateTimeField(db_index=True)),
                ('original_start', models.DateTimeField(help_text='Start time the rule generated for this occurrence')),
                ('series', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sessions', to='booking_app.classseries')),
            ],
            options={
                'ordering': ['start'],
                'indexes': [models.Index(fields=['series', 'start'], name='booking_session_series_start')],
            },
        ),
        migrations.CreateModel(
            name='SeriesException',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('original_start', models.DateTimeField(help_text='Original occurrence start time (identifies which occurrence this affects)')),
                ('status', models.CharField(choices=[('modified', 'Modified'), ('cancelled', 'Cancelled')], max_length=20)),
                ('new_start', models.DateTimeField(blank=True, null=True)),
                ('new_end', models.DateTimeField(blank=True, null=True)),
                ('reason', models.CharField(blank=True, max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('series', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='exceptions', to='booking_app.classseries')),
            ],
            options={
                'ordering': ['original_start'],
                'unique_together': {('series', 'original_start')},
            },
        ),
    ]
