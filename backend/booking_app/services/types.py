"""
Plain data carried between the generator, reconciler, conflict detector
and the booking coordinator. Django models convert to and from these.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple


# Recurrence types
SINGLE = 'SINGLE'
DAILY = 'DAILY'
WEEKLY = 'WEEKLY'
MONTHLY = 'MONTHLY'
CUSTOM_MANUAL = 'CUSTOM_MANUAL'
CUSTOM_PATTERN = 'CUSTOM_PATTERN'

RECURRENCE_CHOICES = [
    (SINGLE, 'Single (one-off)'),
    (DAILY, 'Daily'),
    (WEEKLY, 'Weekly'),
    (MONTHLY, 'Monthly'),
    (CUSTOM_MANUAL, 'Custom (hand-picked dates)'),
    (CUSTOM_PATTERN, 'Custom (weekly pattern)'),
]
RECURRENCE_TYPES = [value for value, _ in RECURRENCE_CHOICES]

# Exception statuses
MODIFIED = 'modified'
CANCELLED = 'cancelled'

EXCEPTION_STATUS_CHOICES = [
    (MODIFIED, 'Modified'),
    (CANCELLED, 'Cancelled'),
]

# Resources
ROOM = 'room'
INSTRUCTOR = 'instructor'


@dataclass(frozen=True)
class TimeWindow:
    """Wall-clock slot in 24-hour HH:mm, applied to every matching day"""
    start_time_24h: str
    end_time_24h: str

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> 'TimeWindow':
        return cls(
            start_time_24h=data.get('start_time_24h', data.get('startTime24h')),
            end_time_24h=data.get('end_time_24h', data.get('endTime24h')),
        )

    def to_dict(self) -> Dict[str, str]:
        return {'start_time_24h': self.start_time_24h, 'end_time_24h': self.end_time_24h}


@dataclass
class RecurrenceRule:
    """
    How a class repeats. Weekdays use 0=Sunday .. 6=Saturday, month days 1..31.
    manual_dates may hold unparsed strings; the generator skips bad ones.
    """
    recurrence_type: str
    series_start: Optional[date] = None
    series_end: Optional[date] = None
    interval_count: Optional[int] = 1
    selected_weekdays: List[int] = field(default_factory=list)
    selected_month_days: List[int] = field(default_factory=list)
    manual_dates: List[Any] = field(default_factory=list)
    time_windows: List[TimeWindow] = field(default_factory=list)


@dataclass(frozen=True)
class Session:
    """
    One concrete occurrence. original_start is the occurrence key used to
    match exceptions and survives single-instance moves.
    """
    start: datetime
    end: datetime
    original_start: Optional[datetime] = None
    id: Optional[Any] = None

    def __post_init__(self):
        if self.original_start is None:
            object.__setattr__(self, 'original_start', self.start)

    @property
    def is_moved(self) -> bool:
        return self.start != self.original_start


@dataclass(frozen=True)
class SeriesException:
    """Recorded override (move or cancellation) for one occurrence"""
    original_start: datetime
    status: str
    new_start: Optional[datetime] = None
    new_end: Optional[datetime] = None
    reason: str = ''
    id: Optional[Any] = None


@dataclass
class SeriesDraft:
    """What a create or whole-series update asks for"""
    title: str
    rule: RecurrenceRule
    room_id: Any
    instructor_id: Any
    sessions: List[Session] = field(default_factory=list)

    def with_sessions(self, sessions: List[Session]) -> 'SeriesDraft':
        return replace(self, sessions=list(sessions))


@dataclass
class SeriesRecord:
    """A stored series as the store hands it back"""
    id: Any
    title: str
    rule: RecurrenceRule
    room_id: Any
    instructor_id: Any
    sessions: List[Session] = field(default_factory=list)
    exceptions: List[SeriesException] = field(default_factory=list)

    def find_session(self, session_id) -> Optional[Session]:
        for session in self.sessions:
            if session.id is not None and str(session.id) == str(session_id):
                return session
        return None


@dataclass(frozen=True)
class Diagnostic:
    """Non-fatal notice produced while building sessions"""
    code: str
    message: str
    day: Optional[date] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'message': self.message,
            'date': self.day.isoformat() if self.day else None,
        }


@dataclass
class GenerationResult:
    sessions: List[Session] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)


@dataclass(frozen=True)
class ConflictDetail:
    series_id: Any
    resources: Tuple[str, ...]
    window: Tuple[datetime, datetime]


@dataclass(frozen=True)
class ConflictReport:
    """
    Which resources are taken and where. field is the resource the caller
    should change; instructor wins when both conflict.
    """
    resources: Tuple[str, ...]
    field: str
    window: Tuple[datetime, datetime]
    message: str
    room_id: Any = None
    instructor_id: Any = None
    conflicts: Tuple[ConflictDetail, ...] = ()

    def as_dict(self) -> Dict[str, Any]:
        return {
            'field': self.field,
            'resources': list(self.resources),
            'room_id': self.room_id,
            'instructor_id': self.instructor_id,
            'window': {
                'start': self.window[0].isoformat(),
                'end': self.window[1].isoformat(),
            },
            'message': self.message,
            'series_ids': [detail.series_id for detail in self.conflicts],
        }
