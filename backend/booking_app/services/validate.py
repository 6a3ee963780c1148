"""
Turns a calendar day plus an HH:mm window into a checked Session.
Sessions never cross midnight: start and end share the day.
"""

import re
from datetime import date, datetime, time, timedelta
from typing import Optional

import pytz

from ..conf import schedule_setting
from ..exceptions import InputError, RangeError
from .types import Session, TimeWindow

CLOCK_TIME_RE = re.compile(r'^(\d{1,2}):(\d{2})$')


def resolve_timezone(tz=None):
    """Return a pytz timezone; None means the configured schedule zone"""
    if tz is None:
        tz = schedule_setting('TIME_ZONE')
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def localize(naive: datetime, tz) -> datetime:
    tz = resolve_timezone(tz)
    if hasattr(tz, 'localize'):
        return tz.localize(naive)
    return naive.replace(tzinfo=tz)


def parse_clock_time(value) -> time:
    """Parse 'HH:mm' into a time, raising InputError on anything else"""
    match = CLOCK_TIME_RE.match(value.strip()) if isinstance(value, str) else None
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour < 24 and minute < 60:
            return time(hour, minute)
    raise InputError(f'Invalid time format. Expected "HH:mm" but got "{value}"', field='time_windows')


def check_session_bounds(start: datetime, end: datetime, min_minutes: Optional[int] = None):
    """Raise RangeError unless end is after start by at least the minimum duration"""
    if min_minutes is None:
        min_minutes = schedule_setting('MIN_SESSION_MINUTES')

    if end <= start:
        raise RangeError(
            f'End time must be after start time. Received {start:%Y-%m-%d %H:%M} -> {end:%H:%M}',
            field='time_windows',
        )

    duration_minutes = (end - start).total_seconds() / 60
    if duration_minutes < min_minutes:
        raise RangeError(
            f'Class duration is too short. Minimum allowed: {min_minutes} minutes. '
            f'Received: ~{round(duration_minutes)} minutes',
            field='time_windows',
        )


def build_session(day: date, window: TimeWindow, tz=None, min_minutes: Optional[int] = None) -> Session:
    """Combine the day with the window's clock times and validate the result"""
    start_clock = parse_clock_time(window.start_time_24h)
    end_clock = parse_clock_time(window.end_time_24h)

    start = localize(datetime.combine(day, start_clock), tz)
    end = localize(datetime.combine(day, end_clock), tz)
    check_session_bounds(start, end, min_minutes)

    return Session(start=start, end=end)


def earliest_allowed_start(now: datetime, lead_minutes: Optional[int] = None) -> datetime:
    if lead_minutes is None:
        lead_minutes = schedule_setting('LEAD_TIME_MINUTES')
    return now + timedelta(minutes=lead_minutes)


def is_within_lead_time(session: Session, now: datetime, lead_minutes: Optional[int] = None) -> bool:
    """True when the session starts too soon to be booked"""
    return session.start < earliest_allowed_start(now, lead_minutes)
