"""
Service for expanding a recurrence rule into concrete class sessions.
Walks the series one calendar day at a time and crosses every matching
day with every time window.
"""

import logging
from datetime import date, datetime, time
from typing import Callable, List, Optional

from dateutil import parser, rrule
from dateutil.relativedelta import relativedelta
from django.utils import timezone

from ..exceptions import EmptyResultError, InputError, RangeError
from .types import (
    CUSTOM_MANUAL,
    CUSTOM_PATTERN,
    DAILY,
    MONTHLY,
    RECURRENCE_TYPES,
    SINGLE,
    WEEKLY,
    Diagnostic,
    GenerationResult,
    RecurrenceRule,
)
from .validate import build_session, earliest_allowed_start, resolve_timezone

logger = logging.getLogger(__name__)


def get_weekday_from_date(day: date) -> int:
    """Weekday of a date in rule numbering (Sunday is 0)"""
    return (day.weekday() + 1) % 7


def last_day_of_month(day: date) -> int:
    return (day + relativedelta(day=31)).day


def _require_interval(rule: RecurrenceRule) -> int:
    interval = rule.interval_count
    if interval is None or interval < 1:
        raise InputError(f'interval_count must be at least 1, got {interval}', field='interval_count')
    return interval


def _daily_matcher(rule: RecurrenceRule, start: date) -> Callable[[date], bool]:
    interval = _require_interval(rule)
    return lambda day: (day - start).days % interval == 0


def _weekly_matcher(rule: RecurrenceRule, start: date) -> Callable[[date], bool]:
    interval = _require_interval(rule)
    if not rule.selected_weekdays:
        raise InputError('selected_weekdays is required for weekly classes', field='selected_weekdays')
    weekdays = set(rule.selected_weekdays)

    def matches(day):
        weeks_since_start = (day - start).days // 7
        return weeks_since_start % interval == 0 and get_weekday_from_date(day) in weekdays
    return matches


def _custom_pattern_matcher(rule: RecurrenceRule, start: date) -> Callable[[date], bool]:
    interval = max(1, rule.interval_count or 1)
    weekdays = set(rule.selected_weekdays)

    def matches(day):
        weeks_since_start = (day - start).days // 7
        if weeks_since_start % interval:
            return False
        return not weekdays or get_weekday_from_date(day) in weekdays
    return matches


def _monthly_matcher(rule: RecurrenceRule, start: date) -> Callable[[date], bool]:
    if not rule.selected_month_days:
        raise InputError('selected_month_days is required for monthly classes', field='selected_month_days')
    month_days = set(rule.selected_month_days)

    def matches(day):
        if day.day in month_days:
            return True
        # 29/30/31 fall back to the last day of shorter months
        last_day = last_day_of_month(day)
        return day.day == last_day and any(d > last_day for d in month_days)
    return matches


MATCHERS = {
    DAILY: _daily_matcher,
    WEEKLY: _weekly_matcher,
    MONTHLY: _monthly_matcher,
    CUSTOM_PATTERN: _custom_pattern_matcher,
}


def _coerce_date(value) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return parser.isoparse(value.strip()).date()
        except (ValueError, OverflowError):
            return None
    return None


def _manual_dates(rule: RecurrenceRule, diagnostics: List[Diagnostic]) -> List[date]:
    if not rule.manual_dates:
        raise InputError('manual_dates is required for hand-picked classes', field='manual_dates')

    days = []
    for index, raw in enumerate(rule.manual_dates):
        day = _coerce_date(raw)
        if day is None:
            message = f'Invalid manual date at index {index}: "{raw}"; skipped'
            logger.info(message)
            diagnostics.append(Diagnostic('invalid_manual_date', message))
            continue
        if day in days:
            diagnostics.append(Diagnostic('duplicate_manual_date', f'{day.isoformat()} listed more than once', day))
            continue
        days.append(day)
    return sorted(days)


def iter_candidate_dates(rule: RecurrenceRule, diagnostics: List[Diagnostic]) -> List[date]:
    """
    List the calendar days a rule matches, in order.

    Args:
        rule: RecurrenceRule to walk
        diagnostics: list that receives notices about skipped manual dates

    Returns:
        Matching dates between series_start and series_end inclusive
    """
    rule_type = rule.recurrence_type
    if rule_type not in RECURRENCE_TYPES:
        raise InputError(f'Unknown recurrence type: {rule_type}', field='recurrence_type')

    if rule_type == CUSTOM_MANUAL:
        return _manual_dates(rule, diagnostics)

    start = _coerce_date(rule.series_start)
    if start is None:
        raise InputError(f'Invalid series_start: "{rule.series_start}"', field='series_start')

    # Single classes process exactly one day
    if rule_type == SINGLE:
        return [start]

    if rule.series_end is None:
        raise InputError(f'series_end is required for {rule_type.lower()} classes', field='series_end')
    end = _coerce_date(rule.series_end)
    if end is None:
        raise InputError(f'Invalid series_end: "{rule.series_end}"', field='series_end')
    if start > end:
        raise RangeError('series_start cannot be after series_end', field='series_end')

    matches = MATCHERS[rule_type](rule, start)
    cursor = rrule.rrule(
        rrule.DAILY,
        dtstart=datetime.combine(start, time.min),
        until=datetime.combine(end, time.min),
    )
    return [day.date() for day in cursor if matches(day.date())]


def generate_sessions(rule: RecurrenceRule, now: Optional[datetime] = None, tz=None,
                      lead_minutes: Optional[int] = None,
                      min_minutes: Optional[int] = None) -> GenerationResult:
    """
    Expand a rule into validated sessions.

    Sessions starting inside the lead time are dropped with a diagnostic
    rather than rejected.

    Args:
        rule: RecurrenceRule to expand
        now: Generation time (defaults to the current time)
        tz: Time zone the HH:mm windows are read in
        lead_minutes: Minimum gap between now and a session start
        min_minutes: Minimum session duration

    Returns:
        GenerationResult with sessions sorted by start and any diagnostics
    """
    if not rule.time_windows:
        raise InputError('At least one time window is required', field='time_windows')

    tz = resolve_timezone(tz)
    now = now or timezone.now()
    earliest = earliest_allowed_start(now, lead_minutes)

    diagnostics = []
    sessions = []
    for day in iter_candidate_dates(rule, diagnostics):
        for window in rule.time_windows:
            session = build_session(day, window, tz, min_minutes)
            if session.start < earliest:
                diagnostics.append(Diagnostic(
                    'inside_lead_time',
                    f'Session at {session.start:%Y-%m-%d %H:%M} starts before '
                    f'{earliest.astimezone(tz):%Y-%m-%d %H:%M}; dropped',
                    day,
                ))
                continue
            sessions.append(session)

    dropped = sum(1 for d in diagnostics if d.code == 'inside_lead_time')
    if dropped:
        logger.debug('Dropped %d session(s) inside the lead time', dropped)

    if not sessions:
        raise EmptyResultError(
            'No future sessions could be generated. Possible causes: past dates, '
            'no matching days, or every session starts inside the lead time.'
        )

    sessions.sort(key=lambda s: s.start)
    return GenerationResult(sessions=sessions, diagnostics=diagnostics)
