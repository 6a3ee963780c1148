"""
Management command to seed the schedule with sample resources and classes.
Series are booked through the coordinator, so seeding obeys the same
conflict rules as the API.
"""

from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from booking_app.models import ClassSeries, Instructor, PhysicalRoom, RoomType
from booking_app.services.coordinator import BookingCoordinator
from booking_app.services.types import (
    DAILY,
    MONTHLY,
    SINGLE,
    WEEKLY,
    RecurrenceRule,
    SeriesDraft,
    TimeWindow,
)


class Command(BaseCommand):
    help = 'Seed the schedule with sample rooms, instructors and class series'

    def handle(self, *args, **options):
        if ClassSeries.objects.exists():
            self.stdout.write(
                self.style.WARNING(
                    f'Schedule already has {ClassSeries.objects.count()} series. '
                    'Skipping seed to avoid duplicates. Use clear_schedule first if needed.'
                )
            )
            return

        self.stdout.write('Seeding schedule data...')

        lecture_hall, _ = RoomType.objects.get_or_create(name='Lecture Hall')
        lab, _ = RoomType.objects.get_or_create(name='Science Lab')

        hall_a, _ = PhysicalRoom.objects.get_or_create(
            name='Building A - Hall 1', defaults={'room_type': lecture_hall, 'seating_capacity': 120},
        )
        lab_b, _ = PhysicalRoom.objects.get_or_create(
            name='Building B - Lab 2', defaults={'room_type': lab, 'seating_capacity': 24},
        )

        ada, _ = Instructor.objects.get_or_create(email='ada@example.com', defaults={'name': 'Ada Byron'})
        alan, _ = Instructor.objects.get_or_create(email='alan@example.com', defaults={'name': 'Alan Turing'})

        tomorrow = timezone.localdate() + timedelta(days=1)
        in_eight_weeks = tomorrow + timedelta(weeks=8)

        drafts = [
            SeriesDraft(
                title='Intro to Algorithms',
                rule=RecurrenceRule(
                    recurrence_type=WEEKLY,
                    series_start=tomorrow,
                    series_end=in_eight_weeks,
                    selected_weekdays=[1, 3],  # Monday, Wednesday
                    time_windows=[TimeWindow('09:00', '10:30')],
                ),
                room_id=hall_a.pk,
                instructor_id=alan.pk,
            ),
            SeriesDraft(
                title='Chemistry Lab',
                rule=RecurrenceRule(
                    recurrence_type=DAILY,
                    series_start=tomorrow,
                    series_end=tomorrow + timedelta(days=13),
                    interval_count=2,
                    time_windows=[TimeWindow('13:00', '15:00')],
                ),
                room_id=lab_b.pk,
                instructor_id=ada.pk,
            ),
            SeriesDraft(
                title='Faculty Review',
                rule=RecurrenceRule(
                    recurrence_type=MONTHLY,
                    series_start=tomorrow,
                    series_end=tomorrow + timedelta(days=180),
                    selected_month_days=[31],
                    time_windows=[TimeWindow('16:00', '17:00')],
                ),
                room_id=hall_a.pk,
                instructor_id=ada.pk,
            ),
            SeriesDraft(
                title='Guest Lecture',
                rule=RecurrenceRule(
                    recurrence_type=SINGLE,
                    series_start=tomorrow,
                    time_windows=[TimeWindow('11:00', '12:30')],
                ),
                room_id=hall_a.pk,
                instructor_id=ada.pk,
            ),
        ]

        coordinator = BookingCoordinator.from_settings()
        for draft in drafts:
            result = coordinator.create_series(draft)
            if result.committed:
                self.stdout.write(f'Created "{draft.title}" with {len(result.sessions)} sessions')
            else:
                self.stdout.write(
                    self.style.WARNING(f'Skipped "{draft.title}": {result.error_kind} - {result.detail}')
                )

        self.stdout.write(
            self.style.SUCCESS(
                f'Successfully seeded schedule with {ClassSeries.objects.count()} class series'
            )
        )
