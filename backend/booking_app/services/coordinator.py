"""
Booking coordinator: runs generation, reconciliation and conflict checks
for every create or update, and commits under a per-resource lock.

Draft -> Generated -> Validated -> ConflictChecked -> Committed | Rejected
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, List, Optional

from django.utils import timezone

from ..conf import schedule_setting
from ..exceptions import ConflictError, EmptyResultError, NotFoundError, SchedulingError
from .conflicts import find_conflict
from .generate import generate_sessions
from .locking import CacheResourceLock, resource_keys
from .reconcile import reconcile_exceptions, unmatched_exceptions, upsert_exception
from .store import DjangoSeriesStore
from .types import (
    CANCELLED,
    MODIFIED,
    ConflictReport,
    Diagnostic,
    SeriesDraft,
    SeriesRecord,
    Session,
)
from .validate import check_session_bounds, localize, resolve_timezone

logger = logging.getLogger(__name__)


class BookingState(Enum):
    DRAFT = 'draft'
    GENERATED = 'generated'
    VALIDATED = 'validated'
    CONFLICT_CHECKED = 'conflict_checked'
    COMMITTED = 'committed'
    REJECTED = 'rejected'


@dataclass
class BookingResult:
    """Outcome of one coordinator operation"""
    operation: str
    state: BookingState = BookingState.DRAFT
    series_id: Any = None
    sessions: List[Session] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    conflict: Optional[ConflictReport] = None
    error: Optional[SchedulingError] = None

    @property
    def committed(self) -> bool:
        return self.state is BookingState.COMMITTED

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error else None

    @property
    def detail(self) -> Optional[str]:
        return self.error.message if self.error else None

    def advance(self, state: BookingState) -> 'BookingResult':
        logger.debug('%s series=%s: %s -> %s', self.operation, self.series_id, self.state.value, state.value)
        self.state = state
        return self

    def reject(self, error: SchedulingError) -> 'BookingResult':
        self.error = error
        if isinstance(error, ConflictError):
            self.conflict = error.report
        level = logging.WARNING if error.retryable else logging.INFO
        logger.log(level, '%s series=%s rejected (%s): %s', self.operation, self.series_id, error.kind, error.message)
        return self.advance(BookingState.REJECTED)


def with_retries(call: Callable[[], BookingResult], attempts: Optional[int] = None) -> BookingResult:
    """Replay a whole coordinator operation while it fails with a retryable error"""
    attempts = schedule_setting('LOCK_RETRIES') if attempts is None else attempts
    result = call()
    for attempt in range(1, attempts + 1):
        if result.error is None or not result.error.retryable:
            break
        logger.info('Retrying %s after %s (attempt %d of %d)', result.operation, result.error_kind, attempt, attempts)
        result = call()
    return result


def _move_session(record: SeriesRecord, session_id, new_start, new_end, reason) -> SeriesRecord:
    session = record.find_session(session_id)
    if session is None:
        raise NotFoundError(f'Session {session_id} not found in series {record.id}', field='session')

    if not reason:
        edited_before = any(e.original_start == session.original_start for e in record.exceptions)
        reason = 'Updated again' if edited_before else 'Manual override'

    exceptions, _, _ = upsert_exception(
        record.exceptions, session.original_start, MODIFIED, new_start, new_end, reason,
    )
    sessions = [
        replace(s, start=new_start, end=new_end) if s.id == session.id else s
        for s in record.sessions
    ]
    return replace(record, sessions=sessions, exceptions=exceptions)


def _cancel_session(record: SeriesRecord, session_id, reason) -> SeriesRecord:
    session = record.find_session(session_id)
    if session is None:
        raise NotFoundError(f'Session {session_id} not found in series {record.id}', field='session')

    exceptions, _, _ = upsert_exception(record.exceptions, session.original_start, CANCELLED, reason=reason)
    sessions = [s for s in record.sessions if s.id != session.id]
    return replace(record, sessions=sessions, exceptions=exceptions)


class BookingCoordinator:
    """
    Sequences the scheduling pipeline against an injected store and lock.

    Conflict detection runs once before the lock and again while holding
    it; only the second check gates the commit.
    """

    def __init__(self, store, lock, clock: Optional[Callable[[], datetime]] = None, tz=None,
                 lock_timeout: Optional[float] = None, lead_minutes: Optional[int] = None,
                 min_minutes: Optional[int] = None):
        self.store = store
        self.lock = lock
        self.clock = clock or timezone.now
        self.tz = resolve_timezone(tz)
        self.lock_timeout = lock_timeout
        self.lead_minutes = lead_minutes
        self.min_minutes = min_minutes

    @classmethod
    def from_settings(cls, **kwargs) -> 'BookingCoordinator':
        return cls(DjangoSeriesStore(), CacheResourceLock(), **kwargs)

    # Pipeline stages

    def _generate(self, rule, result: BookingResult) -> List[Session]:
        generated = generate_sessions(
            rule,
            now=self.clock(),
            tz=self.tz,
            lead_minutes=self.lead_minutes,
            min_minutes=self.min_minutes,
        )
        result.advance(BookingState.GENERATED)
        result.sessions = generated.sessions
        result.diagnostics.extend(generated.diagnostics)
        return result.advance(BookingState.VALIDATED).sessions

    def _check(self, candidates, room_id, instructor_id, exclude_series_id=None):
        report = find_conflict(candidates, room_id, instructor_id, self.store, exclude_series_id, tz=self.tz)
        if report is not None:
            raise ConflictError(report)

    def _commit(self, result: BookingResult, keys, prepare: Callable[[], List[Session]],
                persist: Callable[[List[Session]], Any], room_id, instructor_id, exclude_series_id=None):
        candidates = prepare()
        self._check(candidates, room_id, instructor_id, exclude_series_id)
        result.advance(BookingState.CONFLICT_CHECKED)

        with self.lock.hold(keys, timeout=self.lock_timeout):
            # Authoritative check: nothing else can commit on these resources now
            candidates = prepare()
            self._check(candidates, room_id, instructor_id, exclude_series_id)
            result.sessions = candidates
            return persist(candidates)

    def _aware(self, value: datetime) -> datetime:
        if timezone.is_naive(value):
            return localize(value, self.tz)
        return value

    # Operations

    def preview(self, rule) -> BookingResult:
        """Generate and validate without touching the store"""
        result = BookingResult('preview')
        try:
            self._generate(rule, result)
        except SchedulingError as exc:
            return result.reject(exc)
        return result

    def create_series(self, draft: SeriesDraft) -> BookingResult:
        result = BookingResult('create')
        try:
            sessions = self._generate(draft.rule, result)
            series_id = self._commit(
                result,
                resource_keys(draft.room_id, draft.instructor_id),
                prepare=lambda: sessions,
                persist=lambda candidates: self.store.create(draft.with_sessions(candidates)),
                room_id=draft.room_id,
                instructor_id=draft.instructor_id,
            )
        except SchedulingError as exc:
            return result.reject(exc)

        result.series_id = series_id
        logger.info('Created series %s with %d session(s)', series_id, len(result.sessions))
        return result.advance(BookingState.COMMITTED)

    def update_series(self, series_id, draft: SeriesDraft) -> BookingResult:
        """Regenerate a series from a new rule, keeping its recorded exceptions"""
        result = BookingResult('update', series_id=series_id)
        try:
            current = self.store.get(series_id)
            generated = self._generate(draft.rule, result)

            for exception in unmatched_exceptions(generated, current.exceptions):
                result.diagnostics.append(Diagnostic(
                    'unmatched_exception',
                    f'No generated occurrence at {exception.original_start.isoformat()}; '
                    f'{exception.status} exception kept but not applied',
                ))

            def reconcile(record: SeriesRecord) -> List[Session]:
                sessions = reconcile_exceptions(generated, record.exceptions)
                if not sessions:
                    raise EmptyResultError('Every generated session has been cancelled')
                return sessions

            keys = resource_keys(draft.room_id, draft.instructor_id) + resource_keys(
                current.room_id, current.instructor_id)
            # replace re-runs reconcile on the locked row; cancellations
            # committed after the conflict check still apply
            record = self._commit(
                result,
                tuple(sorted(set(keys))),
                prepare=lambda: reconcile(self.store.get(current.id)),
                persist=lambda candidates: self.store.replace(
                    current.id, draft.with_sessions(candidates), build_sessions=reconcile,
                ),
                room_id=draft.room_id,
                instructor_id=draft.instructor_id,
                exclude_series_id=current.id,
            )
        except SchedulingError as exc:
            return result.reject(exc)

        result.sessions = record.sessions
        logger.info('Updated series %s with %d session(s)', series_id, len(result.sessions))
        return result.advance(BookingState.COMMITTED)

    def update_occurrence(self, series_id, session_id, new_start: datetime, new_end: datetime,
                          reason: str = '') -> BookingResult:
        """Move one occurrence and record it as a modified exception"""
        result = BookingResult('update_occurrence', series_id=series_id)
        try:
            new_start, new_end = self._aware(new_start), self._aware(new_end)
            check_session_bounds(new_start, new_end, self.min_minutes)
            current = self.store.get(series_id)
            target = current.find_session(session_id)
            if target is None:
                raise NotFoundError(f'Session {session_id} not found in series {series_id}', field='session')
            result.advance(BookingState.VALIDATED)

            moved = replace(target, start=new_start, end=new_end)
            record = self._commit(
                result,
                resource_keys(current.room_id, current.instructor_id),
                prepare=lambda: [moved],
                persist=lambda _: self.store.apply(
                    current.id,
                    lambda rec: _move_session(rec, session_id, new_start, new_end, reason),
                ),
                room_id=current.room_id,
                instructor_id=current.instructor_id,
                exclude_series_id=current.id,
            )
        except SchedulingError as exc:
            return result.reject(exc)

        result.sessions = record.sessions
        return result.advance(BookingState.COMMITTED)

    def cancel_occurrence(self, series_id, session_id, reason: str = '') -> BookingResult:
        """
        Drop one occurrence and record it as a cancelled exception.
        Runs without the resource lock.
        """
        result = BookingResult('cancel_occurrence', series_id=series_id)
        try:
            record = self.store.apply(
                series_id,
                lambda rec: _cancel_session(rec, session_id, reason or 'Cancelled by user'),
            )
        except SchedulingError as exc:
            return result.reject(exc)

        result.sessions = record.sessions
        return result.advance(BookingState.COMMITTED)

    def delete_series(self, series_id) -> BookingResult:
        result = BookingResult('delete', series_id=series_id)
        try:
            self.store.delete(series_id)
        except SchedulingError as exc:
            return result.reject(exc)
        logger.info('Deleted series %s', series_id)
        return result.advance(BookingState.COMMITTED)
