"""
Test cases for the booking API views.
Tests series CRUD through the coordinator and occurrence-level operations.
"""

import json
from datetime import datetime, time, timedelta, timezone as dt_timezone
from urllib.parse import urlencode

from django.core.cache import cache
from django.test import Client, TestCase
from django.utils import timezone

from booking_app.models import ClassSeries, ClassSession, Instructor, PhysicalRoom, RoomType, SeriesException


def utc(day, hour, minute=0):
    return datetime.combine(day, time(hour, minute), tzinfo=dt_timezone.utc)


class BookingApiTestCase(TestCase):

    def setUp(self):
        cache.clear()
        self.client = Client()
        self.room_type = RoomType.objects.create(name='Studio')
        self.room = PhysicalRoom.objects.create(name='Studio A', room_type=self.room_type, seating_capacity=20)
        self.other_room = PhysicalRoom.objects.create(name='Studio B', room_type=self.room_type, seating_capacity=10)
        self.instructor = Instructor.objects.create(name='Alex Doe', email='alex@example.com')
        self.other_instructor = Instructor.objects.create(name='Sam Roe', email='sam@example.com')
        # A week out so nothing falls inside the lead time
        self.first_day = timezone.localdate() + timedelta(days=7)

    def payload(self, **overrides):
        data = {
            'title': 'Morning Yoga',
            'room': self.room.pk,
            'instructor': self.instructor.pk,
            'recurrence_type': 'DAILY',
            'series_start': self.first_day.isoformat(),
            'series_end': (self.first_day + timedelta(days=2)).isoformat(),
            'interval_count': 1,
            'time_windows': [{'start_time_24h': '09:00', 'end_time_24h': '10:00'}],
        }
        data.update(overrides)
        return data

    def post_json(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type='application/json')

    def create_series(self, **overrides):
        response = self.post_json('/api/series/', self.payload(**overrides))
        self.assertEqual(response.status_code, 201, response.content)
        return response.json()['series']


class ClassSeriesApiTest(BookingApiTestCase):
    """Test ClassSeries CRUD operations"""

    def test_create_series(self):
        """Test POST /api/series/"""
        response = self.post_json('/api/series/', self.payload())

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data['series']['title'], 'Morning Yoga')
        self.assertEqual(len(data['series']['sessions']), 3)
        self.assertEqual(data['diagnostics'], [])
        self.assertEqual(ClassSession.objects.count(), 3)

    def test_list_series(self):
        """Test GET /api/series/"""
        self.create_series()

        response = self.client.get('/api/series/')

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]['recurrence_type'], 'DAILY')

    def test_create_rejects_bad_time_format(self):
        response = self.post_json('/api/series/', self.payload(
            time_windows=[{'start_time_24h': '9am', 'end_time_24h': '10:00'}],
        ))

        self.assertEqual(response.status_code, 400)
        self.assertIn('time_windows', response.json())
        self.assertEqual(ClassSeries.objects.count(), 0)

    def test_create_requires_end_for_repeating_series(self):
        response = self.post_json('/api/series/', self.payload(series_end=None))

        self.assertEqual(response.status_code, 400)
        self.assertIn('series_end', response.json())

    def test_create_rejects_short_session(self):
        response = self.post_json('/api/series/', self.payload(
            time_windows=[{'start_time_24h': '09:00', 'end_time_24h': '09:15'}],
        ))

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body['error'], 'range_error')
        self.assertEqual(body['errors'][0]['field'], 'time_windows')

    def test_create_conflict_returns_409(self):
        self.create_series()

        response = self.post_json('/api/series/', self.payload(
            title='Pilates',
            instructor=self.other_instructor.pk,
            time_windows=[{'start_time_24h': '09:30', 'end_time_24h': '10:30'}],
        ))

        self.assertEqual(response.status_code, 409)
        body = response.json()
        self.assertEqual(body['error'], 'conflict')
        self.assertEqual(body['conflict']['field'], 'room')
        self.assertTrue(body['message'].startswith(f'Room {self.room.pk} is busy on'))
        self.assertEqual(ClassSeries.objects.count(), 1)

    def test_update_series(self):
        """Test PUT /api/series/{id}/"""
        series = self.create_series()

        response = self.client.put(
            f"/api/series/{series['id']}/",
            data=json.dumps(self.payload(
                title='Evening Yoga',
                time_windows=[{'start_time_24h': '18:00', 'end_time_24h': '19:00'}],
            )),
            content_type='application/json',
        )

        self.assertEqual(response.status_code, 200)
        updated = ClassSeries.objects.get(pk=series['id'])
        self.assertEqual(updated.title, 'Evening Yoga')
        starts = list(updated.sessions.values_list('start', flat=True))
        self.assertTrue(all(s.hour == 18 for s in starts))

    def test_partial_update_keeps_rule(self):
        """Test PATCH /api/series/{id}/"""
        series = self.create_series()

        response = self.client.patch(
            f"/api/series/{series['id']}/",
            data=json.dumps({'title': 'Gentle Yoga'}),
            content_type='application/json',
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['series']['title'], 'Gentle Yoga')
        self.assertEqual(ClassSession.objects.filter(series_id=series['id']).count(), 3)

    def test_update_unknown_series(self):
        response = self.client.put(
            '/api/series/99999/', data=json.dumps(self.payload()), content_type='application/json',
        )
        self.assertEqual(response.status_code, 404)

    def test_delete_series(self):
        """Test DELETE /api/series/{id}/"""
        series = self.create_series()

        response = self.client.delete(f"/api/series/{series['id']}/")

        self.assertEqual(response.status_code, 204)
        self.assertFalse(ClassSeries.objects.exists())
        self.assertFalse(ClassSession.objects.exists())

    def test_delete_unknown_series(self):
        response = self.client.delete('/api/series/99999/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error'], 'not_found')

    def test_preview(self):
        """Test POST /api/series/preview/"""
        payload = self.payload()
        del payload['title'], payload['room'], payload['instructor']

        response = self.post_json('/api/series/preview/', payload)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()['sessions']), 3)
        self.assertFalse(ClassSeries.objects.exists())

    def test_preview_of_past_dates_is_empty(self):
        past = timezone.localdate() - timedelta(days=30)
        payload = self.payload(series_start=past.isoformat(), series_end=(past + timedelta(days=2)).isoformat())

        response = self.post_json('/api/series/preview/', payload)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'empty_result')

    def test_preview_reports_skipped_manual_dates(self):
        payload = self.payload(
            recurrence_type='CUSTOM_MANUAL',
            series_end=None,
            manual_dates=[self.first_day.isoformat(), 'not-a-date'],
        )

        response = self.post_json('/api/series/preview/', payload)

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(len(data['sessions']), 1)
        self.assertEqual([d['code'] for d in data['diagnostics']], ['invalid_manual_date'])


class OccurrenceApiTest(BookingApiTestCase):
    """Test single-occurrence operations"""

    def setUp(self):
        super().setUp()
        self.series = self.create_series()
        self.second_day = self.first_day + timedelta(days=1)
        self.session = ClassSession.objects.get(series_id=self.series['id'], start__date=self.second_day)

    def occurrence_url(self, session_id=None):
        return f"/api/series/{self.series['id']}/occurrences/{session_id or self.session.pk}/"

    def move(self, start_hour, end_hour, **extra):
        body = {
            'new_start': utc(self.second_day, start_hour).isoformat(),
            'new_end': utc(self.second_day, end_hour).isoformat(),
        }
        body.update(extra)
        return self.client.patch(self.occurrence_url(), data=json.dumps(body), content_type='application/json')

    def test_move_occurrence(self):
        response = self.move(14, 15, reason='Room maintenance')

        self.assertEqual(response.status_code, 200)
        self.session.refresh_from_db()
        self.assertEqual(self.session.start.hour, 14)
        exception = SeriesException.objects.get(series_id=self.series['id'])
        self.assertEqual(exception.status, 'modified')
        self.assertEqual(exception.reason, 'Room maintenance')

    def test_move_then_edit_series_keeps_move(self):
        self.move(14, 15)

        response = self.client.put(
            f"/api/series/{self.series['id']}/",
            data=json.dumps(self.payload(series_end=(self.first_day + timedelta(days=4)).isoformat())),
            content_type='application/json',
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()['series']['sessions']), 5)
        moved = ClassSession.objects.get(series_id=self.series['id'], original_start__date=self.second_day)
        self.assertEqual(moved.start.hour, 14)

    def test_move_into_conflict(self):
        self.create_series(
            title='Pilates',
            instructor=self.other_instructor.pk,
            series_start=self.second_day.isoformat(),
            series_end=self.second_day.isoformat(),
            time_windows=[{'start_time_24h': '14:00', 'end_time_24h': '15:00'}],
        )

        response = self.move(14, 15)

        self.assertEqual(response.status_code, 409)
        self.assertFalse(SeriesException.objects.exists())

    def test_move_requires_times(self):
        response = self.client.patch(self.occurrence_url(), data=json.dumps({}), content_type='application/json')
        self.assertEqual(response.status_code, 400)

    def test_move_unknown_occurrence(self):
        response = self.client.patch(
            self.occurrence_url(999999),
            data=json.dumps({
                'new_start': utc(self.second_day, 14).isoformat(),
                'new_end': utc(self.second_day, 15).isoformat(),
            }),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 404)

    def test_cancel_occurrence(self):
        response = self.client.delete(self.occurrence_url())

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['message'], 'Occurrence cancelled')
        self.assertFalse(ClassSession.objects.filter(pk=self.session.pk).exists())
        exception = SeriesException.objects.get(series_id=self.series['id'])
        self.assertEqual(exception.status, 'cancelled')


class OccurrencesViewTest(BookingApiTestCase):
    """Test GET /api/occurrences/"""

    def setUp(self):
        super().setUp()
        self.series = self.create_series()
        self.window = {
            'start': utc(self.first_day, 0).isoformat(),
            'end': utc(self.first_day + timedelta(days=7), 0).isoformat(),
        }

    def get(self, **params):
        return self.client.get('/api/occurrences/?' + urlencode({**self.window, **params}))

    def test_occurrences_in_window(self):
        response = self.get()

        self.assertEqual(response.status_code, 200)
        occurrences = response.json()['occurrences']
        self.assertEqual(len(occurrences), 3)
        self.assertEqual(occurrences[0]['title'], 'Morning Yoga')
        self.assertFalse(occurrences[0]['is_exception'])
        self.assertNotIn('localStart', occurrences[0])

    def test_occurrences_with_timezone(self):
        response = self.get(tz='Europe/London')

        self.assertEqual(response.status_code, 200)
        self.assertIn('localStart', response.json()['occurrences'][0])

    def test_filter_by_room(self):
        self.assertEqual(len(self.get(room=self.other_room.pk).json()['occurrences']), 0)
        self.assertEqual(len(self.get(room=self.room.pk).json()['occurrences']), 3)

    def test_missing_parameters(self):
        response = self.client.get('/api/occurrences/')
        self.assertEqual(response.status_code, 400)

    def test_invalid_timezone(self):
        response = self.get(tz='Mars/Olympus')
        self.assertEqual(response.status_code, 400)


class ResourceApiTest(BookingApiTestCase):
    """Test room and instructor endpoints"""

    def test_create_room(self):
        response = self.post_json('/api/rooms/', {
            'name': 'Lab 3', 'room_type': self.room_type.pk, 'seating_capacity': 30,
        })
        self.assertEqual(response.status_code, 201)

    def test_room_capacity_validation(self):
        response = self.post_json('/api/rooms/', {
            'name': 'Closet', 'room_type': self.room_type.pk, 'seating_capacity': 0,
        })
        self.assertEqual(response.status_code, 400)

    def test_instructor_email_normalised(self):
        response = self.post_json('/api/instructors/', {'name': 'Jo Poe', 'email': 'Jo@Example.com'})

        self.assertEqual(response.status_code, 201)
        self.assertEqual(Instructor.objects.get(name='Jo Poe').email, 'jo@example.com')
