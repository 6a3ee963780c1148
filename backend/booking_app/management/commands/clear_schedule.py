"""
Management command to clear all booking data (series, sessions and exceptions)
"""

from django.core.management.base import BaseCommand

from booking_app.models import ClassSeries, ClassSession, Instructor, PhysicalRoom, RoomType, SeriesException


class Command(BaseCommand):
    help = 'Clear all class series (sessions and exceptions go with them)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--confirm',
            action='store_true',
            help='Confirm that you want to delete all data',
        )
        parser.add_argument(
            '--all',
            action='store_true',
            help='Also delete rooms, room types and instructors',
        )

    def handle(self, *args, **options):
        if not options['confirm']:
            self.stdout.write(
                self.style.WARNING(
                    'This will delete ALL class series. Use --confirm to proceed.'
                )
            )
            return

        series_count = ClassSeries.objects.count()
        session_count = ClassSession.objects.count()
        exception_count = SeriesException.objects.count()
        ClassSeries.objects.all().delete()

        message = (
            f'Cleared {series_count} class series '
            f'({session_count} sessions, {exception_count} exceptions)'
        )

        if options['all']:
            Instructor.objects.all().delete()
            PhysicalRoom.objects.all().delete()
            RoomType.objects.all().delete()
            message += ' and all rooms, room types and instructors'

        self.stdout.write(self.style.SUCCESS(message))
