"""
Views for the class booking API.
Series writes go through the booking coordinator; resources are plain CRUD.
"""

import datetime
import logging

import pytz
from django.http import JsonResponse
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response

from .exceptions import (
    ConcurrencyError,
    ConflictError,
    EmptyResultError,
    InputError,
    NotFoundError,
    RangeError,
)
from .models import ClassSeries, ClassSession, Instructor, PhysicalRoom, RoomType
from .serializers import (
    ClassSeriesSerializer,
    ClassSeriesWriteSerializer,
    GeneratedSessionSerializer,
    InstructorSerializer,
    OccurrenceChangeSerializer,
    PhysicalRoomSerializer,
    RecurrenceRuleSerializer,
    RoomTypeSerializer,
)
from .services.coordinator import BookingCoordinator, with_retries

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    InputError.kind: status.HTTP_400_BAD_REQUEST,
    RangeError.kind: status.HTTP_400_BAD_REQUEST,
    EmptyResultError.kind: status.HTTP_400_BAD_REQUEST,
    NotFoundError.kind: status.HTTP_404_NOT_FOUND,
    ConflictError.kind: status.HTTP_409_CONFLICT,
    ConcurrencyError.kind: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def error_response(error):
    """Render a SchedulingError as {'error', 'message', 'errors'}"""
    body = {
        'error': error.kind,
        'message': error.message,
        'errors': [error.as_detail()],
    }
    if isinstance(error, ConflictError):
        body['conflict'] = error.report.as_dict()
    return Response(body, status=STATUS_BY_KIND.get(error.kind, status.HTTP_400_BAD_REQUEST))


def diagnostics_data(result):
    return [d.as_dict() for d in result.diagnostics]


class RoomTypeViewSet(viewsets.ModelViewSet):
    queryset = RoomType.objects.all()
    serializer_class = RoomTypeSerializer


class PhysicalRoomViewSet(viewsets.ModelViewSet):
    queryset = PhysicalRoom.objects.select_related('room_type')
    serializer_class = PhysicalRoomSerializer


class InstructorViewSet(viewsets.ModelViewSet):
    queryset = Instructor.objects.all()
    serializer_class = InstructorSerializer


class ClassSeriesViewSet(viewsets.ModelViewSet):
    """
    ViewSet for class series.
    Create, update and delete run through the booking coordinator so every
    write is conflict-checked under the resource lock.
    """
    queryset = ClassSeries.objects.prefetch_related('sessions', 'exceptions')
    serializer_class = ClassSeriesSerializer

    def get_coordinator(self):
        return BookingCoordinator.from_settings()

    def _series_response(self, result, status_code):
        series = self.get_queryset().get(pk=result.series_id)
        return Response({
            'series': ClassSeriesSerializer(series).data,
            'diagnostics': diagnostics_data(result),
        }, status=status_code)

    def create(self, request: Request, *args, **kwargs):
        payload = ClassSeriesWriteSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        draft = payload.to_draft()

        coordinator = self.get_coordinator()
        result = with_retries(lambda: coordinator.create_series(draft))
        if not result.committed:
            return error_response(result.error)
        return self._series_response(result, status.HTTP_201_CREATED)

    def update(self, request: Request, *args, **kwargs):
        """Whole-series edit: regenerate from the new rule and re-apply exceptions"""
        partial = kwargs.pop('partial', False)
        series = self.get_object()

        data = request.data
        if partial:
            data = {**ClassSeriesWriteSerializer.data_from_instance(series), **request.data}
        payload = ClassSeriesWriteSerializer(data=data)
        payload.is_valid(raise_exception=True)
        draft = payload.to_draft()

        coordinator = self.get_coordinator()
        result = with_retries(lambda: coordinator.update_series(series.pk, draft))
        if not result.committed:
            return error_response(result.error)
        return self._series_response(result, status.HTTP_200_OK)

    def destroy(self, request: Request, *args, **kwargs):
        result = self.get_coordinator().delete_series(kwargs.get('pk'))
        if not result.committed:
            return error_response(result.error)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['post'])
    def preview(self, request: Request):
        """
        Generate sessions for a rule without booking anything.
        Returns the sessions plus diagnostics (skipped dates, lead-time drops).
        """
        payload = RecurrenceRuleSerializer(data=request.data)
        payload.is_valid(raise_exception=True)

        result = self.get_coordinator().preview(payload.to_rule())
        if result.error:
            return error_response(result.error)
        return Response({
            'sessions': GeneratedSessionSerializer(result.sessions, many=True).data,
            'diagnostics': diagnostics_data(result),
        })

    @action(detail=True, methods=['patch', 'delete'], url_path=r'occurrences/(?P<session_id>[^/.]+)')
    def occurrence(self, request: Request, pk=None, session_id=None):
        """
        Single-occurrence operations.

        PATCH - move one occurrence:
        {
            "new_start": "2025-01-20T10:00:00Z",
            "new_end": "2025-01-20T11:00:00Z",
            "reason": "Room maintenance"  // optional
        }

        DELETE - cancel one occurrence (optional "reason" in body or query)
        """
        coordinator = self.get_coordinator()

        if request.method == 'DELETE':
            reason = request.data.get('reason') or request.query_params.get('reason', '')
            result = coordinator.cancel_occurrence(pk, session_id, reason)
            if not result.committed:
                return error_response(result.error)
            return Response({'message': 'Occurrence cancelled', 'session_id': session_id})

        payload = OccurrenceChangeSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        data = payload.validated_data

        result = with_retries(lambda: coordinator.update_occurrence(
            pk, session_id, data['new_start'], data['new_end'], data['reason'],
        ))
        if not result.committed:
            return error_response(result.error)
        return self._series_response(result, status.HTTP_200_OK)


def _parse_window_bound(value):
    parsed = parse_datetime(value) if value else None
    if parsed is None:
        raise ValueError("Invalid datetime format")
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, datetime.timezone.utc)
    return parsed


def occurrences_view(request):
    """
    Get booked sessions starting within a time window.

    Query parameters:
    - start: ISO datetime string (required)
    - end: ISO datetime string (required)
    - tz: Timezone name (optional, e.g., 'Europe/London')
    - room / instructor: ids to filter by (optional)

    Returns sessions with UTC times, and local times if tz is provided.
    """
    start_str = request.GET.get('start')
    end_str = request.GET.get('end')
    tz_name = request.GET.get('tz')

    if not start_str or not end_str:
        return JsonResponse(
            {'error': 'Both start and end query parameters are required'},
            status=400
        )

    try:
        start_utc = _parse_window_bound(start_str)
        end_utc = _parse_window_bound(end_str)
    except (ValueError, TypeError):
        return JsonResponse(
            {'error': 'start and end must be valid ISO datetime strings'},
            status=400
        )

    local_tz = None
    if tz_name:
        try:
            local_tz = pytz.timezone(tz_name)
        except pytz.UnknownTimeZoneError:
            return JsonResponse(
                {'error': f'Invalid timezone: {tz_name}'},
                status=400
            )

    sessions = ClassSession.objects.select_related('series').filter(
        start__gte=start_utc, start__lte=end_utc,
    ).order_by('start')

    for param, lookup in (('room', 'series__room_id'), ('instructor', 'series__instructor_id')):
        value = request.GET.get(param)
        if value:
            if not value.isdigit():
                return JsonResponse({'error': f'{param} must be an id'}, status=400)
            sessions = sessions.filter(**{lookup: int(value)})

    occurrences = []
    for session in sessions:
        occ = {
            'series_id': session.series_id,
            'session_id': session.pk,
            'title': session.series.title,
            'room_id': session.series.room_id,
            'instructor_id': session.series.instructor_id,
            'start_utc': session.start.astimezone(datetime.timezone.utc).isoformat(),
            'end_utc': session.end.astimezone(datetime.timezone.utc).isoformat(),
            'original_start_utc': session.original_start.astimezone(datetime.timezone.utc).isoformat(),
            'is_exception': session.is_exception,
        }
        if local_tz:
            occ['localStart'] = session.start.astimezone(local_tz).isoformat()
            occ['localEnd'] = session.end.astimezone(local_tz).isoformat()
        occurrences.append(occ)

    return JsonResponse({'occurrences': occurrences})
