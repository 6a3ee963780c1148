"""
Detects overlap between candidate sessions and sessions already booked
on the same room or instructor.
"""

import logging
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple

from .types import INSTRUCTOR, ROOM, ConflictDetail, ConflictReport, SeriesRecord, Session
from .validate import resolve_timezone

logger = logging.getLogger(__name__)


def sessions_overlap(a: Session, b: Session) -> bool:
    """Half-open overlap: touching boundaries are not a conflict"""
    return a.start < b.end and a.end > b.start


def overlap_window(a: Session, b: Session) -> Tuple[datetime, datetime]:
    return max(a.start, b.start), min(a.end, b.end)


def first_overlap(existing: Sequence[Session], candidates: Sequence[Session]) -> Optional[Tuple[datetime, datetime]]:
    """
    Earliest overlapping window between two session lists.
    candidates must be sorted by start.
    """
    earliest = None
    for booked in existing:
        for candidate in candidates:
            if candidate.start >= booked.end:
                break
            if sessions_overlap(booked, candidate):
                window = overlap_window(booked, candidate)
                if earliest is None or window[0] < earliest[0]:
                    earliest = window
    return earliest


def _matched_resources(series: SeriesRecord, room_id, instructor_id) -> Tuple[str, ...]:
    resources = []
    if room_id is not None and str(series.room_id) == str(room_id):
        resources.append(ROOM)
    if instructor_id is not None and str(series.instructor_id) == str(instructor_id):
        resources.append(INSTRUCTOR)
    return tuple(resources)


def _describe(resource: str, resource_id: Any, window: Tuple[datetime, datetime], tz) -> str:
    start = window[0].astimezone(tz)
    end = window[1].astimezone(tz)
    label = 'Room' if resource == ROOM else 'Instructor'
    return f'{label} {resource_id} is busy on {start:%a %b %d %Y} {start:%H:%M}-{end:%H:%M}'


def build_report(details: List[ConflictDetail], room_id, instructor_id, tz=None) -> ConflictReport:
    """Fold per-series conflicts into one report"""
    tz = resolve_timezone(tz)
    details = sorted(details, key=lambda d: d.window[0])

    first_by_resource = {}
    for detail in details:
        for resource in detail.resources:
            first_by_resource.setdefault(resource, detail)

    resources = tuple(r for r in (ROOM, INSTRUCTOR) if r in first_by_resource)
    field = INSTRUCTOR if INSTRUCTOR in first_by_resource else ROOM
    window = first_by_resource[field].window

    ids = {ROOM: room_id, INSTRUCTOR: instructor_id}
    message = '; '.join(
        _describe(resource, ids[resource], first_by_resource[resource].window, tz)
        for resource in resources
    )

    return ConflictReport(
        resources=resources,
        field=field,
        window=window,
        message=message,
        room_id=room_id if ROOM in resources else None,
        instructor_id=instructor_id if INSTRUCTOR in resources else None,
        conflicts=tuple(details),
    )


def find_conflict(candidates: Sequence[Session], room_id, instructor_id, store,
                  exclude_series_id=None, tz=None) -> Optional[ConflictReport]:
    """
    Check candidate sessions against every other series on the same room
    or instructor.

    Args:
        candidates: Sessions that are about to be booked
        room_id: Room being booked
        instructor_id: Instructor being booked
        store: SeriesStore used to look up existing bookings
        exclude_series_id: Series to ignore (the one being edited)
        tz: Time zone used in the report message

    Returns:
        ConflictReport, or None when the time is free
    """
    if not candidates:
        return None

    ordered = sorted(candidates, key=lambda s: s.start)
    existing = store.find_overlapping(
        room_id=room_id,
        instructor_id=instructor_id,
        windows=ordered,
        exclude_id=exclude_series_id,
    )

    details = []
    for series in existing:
        if exclude_series_id is not None and str(series.id) == str(exclude_series_id):
            continue
        resources = _matched_resources(series, room_id, instructor_id)
        if not resources:
            continue
        window = first_overlap(sorted(series.sessions, key=lambda s: s.start), ordered)
        if window is None:
            continue
        details.append(ConflictDetail(series_id=series.id, resources=resources, window=window))

    if not details:
        return None

    report = build_report(details, room_id, instructor_id, tz)
    logger.info('Booking conflict on %s: %s', '/'.join(report.resources), report.message)
    return report
