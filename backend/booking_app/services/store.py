"""
Storage contract used by the booking coordinator, and its Django ORM
implementation.
"""

import bisect
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

from django.db import transaction
from django.db.models import Q

from ..exceptions import NotFoundError
from ..models import ClassSeries, ClassSession, SeriesException
from .types import SeriesDraft, SeriesRecord, Session


class SeriesStore(ABC):
    """What the coordinator needs from persistence"""

    @abstractmethod
    def create(self, draft: SeriesDraft):
        """Persist a new series with its sessions and return its id"""

    @abstractmethod
    def get(self, series_id) -> SeriesRecord:
        """Load a series or raise NotFoundError"""

    @abstractmethod
    def replace(self, series_id, draft: SeriesDraft,
                build_sessions: Optional[Callable[[SeriesRecord], List[Session]]] = None) -> SeriesRecord:
        """
        Swap rule, resources and sessions; exceptions are kept.
        build_sessions, when given, computes the sessions from the locked
        current record inside the write transaction.
        """

    @abstractmethod
    def delete(self, series_id) -> None:
        """Remove a series with its sessions and exceptions"""

    @abstractmethod
    def apply(self, series_id, change: Callable[[SeriesRecord], SeriesRecord]) -> SeriesRecord:
        """Atomic read-modify-write of one series' sessions and exceptions"""

    @abstractmethod
    def find_overlapping(self, room_id=None, instructor_id=None, windows: Sequence[Session] = (),
                         exclude_id=None) -> List[SeriesRecord]:
        """Series on the room or instructor with a session intersecting any window"""


class _WindowIndex:
    """Answers "does [start, end) intersect any window?" for a fixed window list"""

    def __init__(self, windows: Sequence[Session]):
        ordered = sorted(windows, key=lambda w: w.start)
        self.starts = [w.start for w in ordered]
        self.max_ends = []
        for window in ordered:
            previous = self.max_ends[-1] if self.max_ends else window.end
            self.max_ends.append(max(previous, window.end))

    def intersects(self, start, end) -> bool:
        # Windows starting before `end` are candidates; one of them must end after `start`
        count = bisect.bisect_left(self.starts, end)
        return count > 0 and self.max_ends[count - 1] > start


class DjangoSeriesStore(SeriesStore):
    """SeriesStore backed by ClassSeries / ClassSession / SeriesException rows"""

    def _queryset(self):
        return ClassSeries.objects.prefetch_related('sessions', 'exceptions')

    def _load(self, series_id, for_update=False):
        queryset = self._queryset()
        if for_update:
            queryset = queryset.select_for_update()
        try:
            return queryset.get(pk=series_id)
        except (ClassSeries.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f'Series {series_id} not found', field='series')

    def _create_sessions(self, series, sessions: Sequence[Session]):
        ClassSession.objects.bulk_create([
            ClassSession(series=series, start=s.start, end=s.end, original_start=s.original_start)
            for s in sessions
        ])

    def create(self, draft):
        with transaction.atomic():
            series = ClassSeries(title=draft.title, room_id=draft.room_id, instructor_id=draft.instructor_id)
            series.apply_rule(draft.rule)
            series.save()
            self._create_sessions(series, draft.sessions)
        return series.pk

    def get(self, series_id):
        return self._load(series_id).to_record()

    def replace(self, series_id, draft, build_sessions=None):
        with transaction.atomic():
            series = self._load(series_id, for_update=True)
            if build_sessions is not None:
                draft = draft.with_sessions(build_sessions(series.to_record()))
            series.title = draft.title
            series.room_id = draft.room_id
            series.instructor_id = draft.instructor_id
            series.apply_rule(draft.rule)
            series.save()
            series.sessions.all().delete()
            self._create_sessions(series, draft.sessions)
        return self.get(series_id)

    def delete(self, series_id):
        try:
            deleted, _ = ClassSeries.objects.filter(pk=series_id).delete()
        except (ValueError, TypeError):
            deleted = 0
        if not deleted:
            raise NotFoundError(f'Series {series_id} not found', field='series')

    def apply(self, series_id, change):
        with transaction.atomic():
            series = self._load(series_id, for_update=True)
            current = series.to_record()
            updated = change(current)
            self._sync_sessions(series, current.sessions, updated.sessions)
            self._sync_exceptions(series, updated.exceptions)
        return self.get(series_id)

    def _sync_sessions(self, series, before: List[Session], after: List[Session]):
        previous = {s.id: s for s in before}
        kept = {s.id for s in after if s.id is not None}

        removed = [session_id for session_id in previous if session_id not in kept]
        if removed:
            ClassSession.objects.filter(series=series, pk__in=removed).delete()

        for session in after:
            if session.id is None:
                self._create_sessions(series, [session])
            elif previous.get(session.id) != session:
                ClassSession.objects.filter(series=series, pk=session.id).update(
                    start=session.start,
                    end=session.end,
                    original_start=session.original_start,
                )

    def _sync_exceptions(self, series, exceptions):
        for exception in exceptions:
            SeriesException.objects.update_or_create(
                series=series,
                original_start=exception.original_start,
                defaults={
                    'status': exception.status,
                    'new_start': exception.new_start,
                    'new_end': exception.new_end,
                    'reason': exception.reason,
                },
            )

    def find_overlapping(self, room_id=None, instructor_id=None, windows=(), exclude_id=None):
        if not windows or (room_id is None and instructor_id is None):
            return []

        resource_filter = Q()
        if room_id is not None:
            resource_filter |= Q(series__room_id=room_id)
        if instructor_id is not None:
            resource_filter |= Q(series__instructor_id=instructor_id)

        # One bounded query over the candidates' overall span, narrowed in Python
        span_start = min(w.start for w in windows)
        span_end = max(w.end for w in windows)
        rows = ClassSession.objects.filter(resource_filter, start__lt=span_end, end__gt=span_start)
        if exclude_id is not None:
            rows = rows.exclude(series_id=exclude_id)

        index = _WindowIndex(windows)
        series_ids = set()
        for series_id, start, end in rows.values_list('series_id', 'start', 'end'):
            if series_id not in series_ids and index.intersects(start, end):
                series_ids.add(series_id)

        if not series_ids:
            return []
        queryset = self._queryset().filter(pk__in=series_ids).order_by('pk')
        return [series.to_record() for series in queryset]
