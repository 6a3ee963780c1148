"""
Test cases for the occurrence generator.
Tests each recurrence type, the lead-time filter and rule errors.
"""

from datetime import date, datetime, timedelta

import pytz
from django.test import SimpleTestCase

from booking_app.exceptions import EmptyResultError, InputError, RangeError
from booking_app.services.conflicts import sessions_overlap
from booking_app.services.generate import generate_sessions, get_weekday_from_date, iter_candidate_dates
from booking_app.services.types import (
    CUSTOM_MANUAL,
    CUSTOM_PATTERN,
    DAILY,
    MONTHLY,
    SINGLE,
    WEEKLY,
    RecurrenceRule,
    TimeWindow,
)

UTC = pytz.utc
NOW = datetime(2023, 12, 1, 8, 0, tzinfo=UTC)
NINE_TO_TEN = TimeWindow('09:00', '10:00')


def at(year, month, day, hour=9, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=UTC)


def generate(rule, now=NOW, tz='UTC'):
    return generate_sessions(rule, now=now, tz=tz, lead_minutes=30, min_minutes=30)


class RecurrenceTypeTest(SimpleTestCase):
    """Test each recurrence type"""

    def test_daily_scenario(self):
        """Daily, interval 1, Jan 1 - Jan 3 at 09:00-10:00"""
        rule = RecurrenceRule(
            recurrence_type=DAILY,
            series_start=date(2024, 1, 1),
            series_end=date(2024, 1, 3),
            interval_count=1,
            time_windows=[NINE_TO_TEN],
        )

        result = generate(rule)

        self.assertEqual([s.start for s in result.sessions], [at(2024, 1, 1), at(2024, 1, 2), at(2024, 1, 3)])
        self.assertEqual([s.end for s in result.sessions], [at(2024, 1, 1, 10), at(2024, 1, 2, 10), at(2024, 1, 3, 10)])
        self.assertEqual(result.diagnostics, [])

    def test_daily_interval(self):
        rule = RecurrenceRule(
            recurrence_type=DAILY,
            series_start=date(2024, 1, 1),
            series_end=date(2024, 1, 10),
            interval_count=3,
            time_windows=[NINE_TO_TEN],
        )

        days = [s.start.day for s in generate(rule).sessions]
        self.assertEqual(days, [1, 4, 7, 10])

    def test_fortnightly_monday_scenario(self):
        """Weekly, interval 2, Mondays from Monday Jan 1 to Feb 28"""
        rule = RecurrenceRule(
            recurrence_type=WEEKLY,
            series_start=date(2024, 1, 1),
            series_end=date(2024, 2, 28),
            interval_count=2,
            selected_weekdays=[1],
            time_windows=[NINE_TO_TEN],
        )

        dates = [s.start.date() for s in generate(rule).sessions]
        self.assertEqual(dates, [
            date(2024, 1, 1), date(2024, 1, 15), date(2024, 1, 29), date(2024, 2, 12), date(2024, 2, 26),
        ])

    def test_weekly_multiple_days(self):
        """Test weekly recurrence on multiple days"""
        rule = RecurrenceRule(
            recurrence_type=WEEKLY,
            series_start=date(2024, 1, 1),
            series_end=date(2024, 1, 21),
            selected_weekdays=[1, 3, 5],
            time_windows=[NINE_TO_TEN],
        )

        sessions = generate(rule).sessions
        self.assertEqual(len(sessions), 9)  # 3 weeks * 3 days
        weekdays = sorted({get_weekday_from_date(s.start.date()) for s in sessions})
        self.assertEqual(weekdays, [1, 3, 5])

    def test_monthly_31_falls_back_in_leap_february(self):
        rule = RecurrenceRule(
            recurrence_type=MONTHLY,
            series_start=date(2024, 2, 1),
            series_end=date(2024, 2, 29),
            selected_month_days=[31],
            time_windows=[NINE_TO_TEN],
        )

        sessions = generate(rule).sessions
        self.assertEqual([s.start.date() for s in sessions], [date(2024, 2, 29)])

    def test_monthly_31_falls_back_in_common_february(self):
        rule = RecurrenceRule(
            recurrence_type=MONTHLY,
            series_start=date(2023, 2, 1),
            series_end=date(2023, 2, 28),
            selected_month_days=[31],
            time_windows=[NINE_TO_TEN],
        )

        sessions = generate(rule, now=datetime(2023, 1, 1, tzinfo=UTC)).sessions
        self.assertEqual([s.start.date() for s in sessions], [date(2023, 2, 28)])

    def test_monthly_fallback_yields_one_session_per_short_month(self):
        rule = RecurrenceRule(
            recurrence_type=MONTHLY,
            series_start=date(2024, 1, 1),
            series_end=date(2024, 4, 30),
            selected_month_days=[15, 30, 31],
            time_windows=[NINE_TO_TEN],
        )

        dates = [s.start.date() for s in generate(rule).sessions]
        self.assertEqual(dates, [
            date(2024, 1, 15), date(2024, 1, 30), date(2024, 1, 31),
            date(2024, 2, 15), date(2024, 2, 29),
            date(2024, 3, 15), date(2024, 3, 30), date(2024, 3, 31),
            date(2024, 4, 15), date(2024, 4, 30),
        ])

    def test_single_processes_only_start_day(self):
        rule = RecurrenceRule(
            recurrence_type=SINGLE,
            series_start=date(2024, 1, 5),
            series_end=date(2024, 3, 1),
            time_windows=[NINE_TO_TEN],
        )

        sessions = generate(rule).sessions
        self.assertEqual([s.start for s in sessions], [at(2024, 1, 5)])

    def test_custom_manual_skips_bad_dates(self):
        rule = RecurrenceRule(
            recurrence_type=CUSTOM_MANUAL,
            series_start=date(2024, 1, 1),
            manual_dates=['2024-03-05', 'not-a-date', '2024-03-01'],
            time_windows=[NINE_TO_TEN],
        )

        result = generate(rule)

        self.assertEqual([s.start.date() for s in result.sessions], [date(2024, 3, 1), date(2024, 3, 5)])
        self.assertEqual([d.code for d in result.diagnostics], ['invalid_manual_date'])
        self.assertIn('index 1', result.diagnostics[0].message)

    def test_custom_manual_with_only_bad_dates_is_empty(self):
        rule = RecurrenceRule(
            recurrence_type=CUSTOM_MANUAL,
            series_start=date(2024, 1, 1),
            manual_dates=['31/31/2024'],
            time_windows=[NINE_TO_TEN],
        )

        with self.assertRaises(EmptyResultError):
            generate(rule)

    def test_custom_pattern_without_weekdays_matches_every_day(self):
        rule = RecurrenceRule(
            recurrence_type=CUSTOM_PATTERN,
            series_start=date(2024, 1, 1),
            series_end=date(2024, 1, 7),
            interval_count=None,
            time_windows=[NINE_TO_TEN],
        )

        self.assertEqual(len(generate(rule).sessions), 7)

    def test_custom_pattern_interval_and_weekdays(self):
        rule = RecurrenceRule(
            recurrence_type=CUSTOM_PATTERN,
            series_start=date(2024, 1, 1),
            series_end=date(2024, 1, 31),
            interval_count=2,
            selected_weekdays=[1],
            time_windows=[NINE_TO_TEN],
        )

        days = [s.start.day for s in generate(rule).sessions]
        self.assertEqual(days, [1, 15, 29])

    def test_multiple_windows_per_day(self):
        rule = RecurrenceRule(
            recurrence_type=DAILY,
            series_start=date(2024, 1, 1),
            series_end=date(2024, 1, 3),
            time_windows=[TimeWindow('14:00', '15:30'), NINE_TO_TEN],
        )

        sessions = generate(rule).sessions
        self.assertEqual(len(sessions), 6)
        self.assertEqual(sessions, sorted(sessions, key=lambda s: s.start))
        for i, a in enumerate(sessions):
            for b in sessions[i + 1:]:
                self.assertFalse(sessions_overlap(a, b))

    def test_windows_read_in_schedule_time_zone(self):
        rule = RecurrenceRule(
            recurrence_type=SINGLE,
            series_start=date(2024, 6, 3),
            time_windows=[NINE_TO_TEN],
        )

        session = generate(rule, tz='Europe/London').sessions[0]
        self.assertEqual(session.start.astimezone(UTC), at(2024, 6, 3, 8))

    def test_regeneration_is_stable(self):
        rule = RecurrenceRule(
            recurrence_type=WEEKLY,
            series_start=date(2024, 1, 1),
            series_end=date(2024, 3, 31),
            selected_weekdays=[2, 4],
            time_windows=[NINE_TO_TEN],
        )

        first = [(s.start, s.end) for s in generate(rule).sessions]
        second = [(s.start, s.end) for s in generate(rule).sessions]
        self.assertEqual(first, second)


class LeadTimeTest(SimpleTestCase):
    """Sessions too close to generation time are dropped, not rejected"""

    def setUp(self):
        self.rule = RecurrenceRule(
            recurrence_type=DAILY,
            series_start=date(2024, 1, 1),
            series_end=date(2024, 1, 3),
            time_windows=[NINE_TO_TEN],
        )

    def test_session_inside_buffer_is_dropped(self):
        result = generate(self.rule, now=at(2024, 1, 1, 8, 45))

        self.assertEqual([s.start for s in result.sessions], [at(2024, 1, 2), at(2024, 1, 3)])
        self.assertEqual([d.code for d in result.diagnostics], ['inside_lead_time'])
        self.assertEqual(result.diagnostics[0].day, date(2024, 1, 1))

    def test_session_exactly_at_buffer_is_kept(self):
        result = generate(self.rule, now=at(2024, 1, 1, 8, 30))
        self.assertEqual(len(result.sessions), 3)

    def test_everything_in_the_past_is_empty(self):
        with self.assertRaises(EmptyResultError):
            generate(self.rule, now=at(2024, 2, 1))

    def test_regeneration_later_only_loses_buffered_sessions(self):
        earlier = {(s.start, s.end) for s in generate(self.rule).sessions}
        later = {(s.start, s.end) for s in generate(self.rule, now=at(2024, 1, 1, 12)).sessions}
        self.assertTrue(later < earlier)
        self.assertEqual(earlier - later, {(at(2024, 1, 1), at(2024, 1, 1, 10))})


class RuleErrorTest(SimpleTestCase):
    """Test rule validation failures"""

    def rule(self, **overrides):
        values = dict(
            recurrence_type=DAILY,
            series_start=date(2024, 1, 1),
            series_end=date(2024, 1, 3),
            time_windows=[NINE_TO_TEN],
        )
        values.update(overrides)
        return RecurrenceRule(**values)

    def test_time_windows_required(self):
        with self.assertRaises(InputError):
            generate(self.rule(time_windows=[]))

    def test_series_end_required_for_repeating_types(self):
        for rule_type in (DAILY, WEEKLY, MONTHLY, CUSTOM_PATTERN):
            with self.subTest(rule_type=rule_type):
                with self.assertRaises(InputError):
                    generate(self.rule(
                        recurrence_type=rule_type, series_end=None,
                        selected_weekdays=[1], selected_month_days=[1],
                    ))

    def test_start_after_end(self):
        with self.assertRaises(RangeError):
            generate(self.rule(series_start=date(2024, 2, 1)))

    def test_unparsable_time(self):
        with self.assertRaises(InputError):
            generate(self.rule(time_windows=[TimeWindow('9am', '10:00')]))

    def test_end_before_start(self):
        with self.assertRaises(RangeError):
            generate(self.rule(time_windows=[TimeWindow('10:00', '09:00')]))

    def test_too_short(self):
        with self.assertRaises(RangeError):
            generate(self.rule(time_windows=[TimeWindow('09:00', '09:20')]))

    def test_zero_interval(self):
        with self.assertRaises(InputError):
            generate(self.rule(interval_count=0))

    def test_weekly_needs_weekdays(self):
        with self.assertRaises(InputError):
            generate(self.rule(recurrence_type=WEEKLY))

    def test_unknown_type(self):
        with self.assertRaises(InputError):
            generate(self.rule(recurrence_type='YEARLY'))


class UtilityFunctionTest(SimpleTestCase):
    """Test utility functions"""

    def test_get_weekday_from_date(self):
        monday = date(2024, 1, 1)
        self.assertEqual(get_weekday_from_date(monday), 1)
        self.assertEqual(get_weekday_from_date(monday + timedelta(days=5)), 6)
        self.assertEqual(get_weekday_from_date(monday + timedelta(days=6)), 0)

    def test_candidate_dates_ignore_time_windows(self):
        rule = RecurrenceRule(
            recurrence_type=WEEKLY,
            series_start=date(2024, 1, 1),
            series_end=date(2024, 1, 14),
            selected_weekdays=[0],
        )
        self.assertEqual(iter_candidate_dates(rule, []), [date(2024, 1, 7), date(2024, 1, 14)])
