from rest_framework import serializers

from .models import ClassSeries, ClassSession, Instructor, PhysicalRoom, RoomType, SeriesException
from .services.types import (
    CUSTOM_MANUAL,
    RECURRENCE_CHOICES,
    SINGLE,
    RecurrenceRule,
    SeriesDraft,
    TimeWindow,
)

TIME_24H_REGEX = r'^([01]\d|2[0-3]):([0-5]\d)$'


class RoomTypeSerializer(serializers.ModelSerializer):
    class Meta:
        model = RoomType
        fields = ['id', 'name', 'created_at']


class PhysicalRoomSerializer(serializers.ModelSerializer):
    class Meta:
        model = PhysicalRoom
        fields = ['id', 'name', 'room_type', 'seating_capacity', 'created_at']

    def validate_seating_capacity(self, value):
        """Ensure capacity is positive"""
        if value <= 0:
            raise serializers.ValidationError("Capacity must be a positive number")
        return value


class InstructorSerializer(serializers.ModelSerializer):
    class Meta:
        model = Instructor
        fields = ['id', 'name', 'email', 'created_at']

    def validate_name(self, value):
        value = value.strip()
        if len(value) < 2:
            raise serializers.ValidationError("Name must be at least 2 characters")
        return value

    def validate_email(self, value):
        return value.strip().lower()


class TimeWindowSerializer(serializers.Serializer):
    start_time_24h = serializers.RegexField(TIME_24H_REGEX, error_messages={'invalid': 'Must be HH:mm format'})
    end_time_24h = serializers.RegexField(TIME_24H_REGEX, error_messages={'invalid': 'Must be HH:mm format'})


class RecurrenceRuleSerializer(serializers.Serializer):
    """Validates a recurrence payload and turns it into a RecurrenceRule"""

    recurrence_type = serializers.ChoiceField(choices=RECURRENCE_CHOICES)
    series_start = serializers.DateField()
    series_end = serializers.DateField(required=False, allow_null=True)
    interval_count = serializers.IntegerField(min_value=1, required=False, default=1)
    selected_weekdays = serializers.ListField(
        child=serializers.IntegerField(min_value=0, max_value=6), required=False, default=list,
    )
    selected_month_days = serializers.ListField(
        child=serializers.IntegerField(min_value=1, max_value=31), required=False, default=list,
    )
    # Kept as raw strings; unparseable entries are skipped with a notice
    manual_dates = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    time_windows = TimeWindowSerializer(many=True, allow_empty=False)

    def validate(self, data):
        """Cross-field validation"""
        recurrence_type = data.get('recurrence_type')
        series_end = data.get('series_end')

        if recurrence_type not in (SINGLE, CUSTOM_MANUAL) and not series_end:
            raise serializers.ValidationError({'series_end': 'series_end is required for repeating classes'})

        if recurrence_type == CUSTOM_MANUAL and not data.get('manual_dates'):
            raise serializers.ValidationError({'manual_dates': 'Pick at least one date'})

        if series_end and data['series_start'] > series_end:
            raise serializers.ValidationError({'series_end': 'series_start cannot be after series_end'})

        return data

    def to_rule(self) -> RecurrenceRule:
        data = self.validated_data
        return RecurrenceRule(
            recurrence_type=data['recurrence_type'],
            series_start=data['series_start'],
            series_end=data.get('series_end'),
            interval_count=data.get('interval_count') or 1,
            selected_weekdays=list(data.get('selected_weekdays', [])),
            selected_month_days=list(data.get('selected_month_days', [])),
            manual_dates=list(data.get('manual_dates', [])),
            time_windows=[TimeWindow(**w) for w in data['time_windows']],
        )


class ClassSeriesWriteSerializer(RecurrenceRuleSerializer):
    """Payload for creating or replacing a whole series"""

    title = serializers.CharField(min_length=3, max_length=255, trim_whitespace=True)
    room = serializers.PrimaryKeyRelatedField(queryset=PhysicalRoom.objects.all())
    instructor = serializers.PrimaryKeyRelatedField(queryset=Instructor.objects.all())

    @staticmethod
    def data_from_instance(series: ClassSeries):
        """Current values of a series, used as the base for partial updates"""
        return {
            'title': series.title,
            'room': series.room_id,
            'instructor': series.instructor_id,
            'recurrence_type': series.recurrence_type,
            'series_start': series.series_start.isoformat(),
            'series_end': series.series_end.isoformat() if series.series_end else None,
            'interval_count': series.interval_count,
            'selected_weekdays': list(series.selected_weekdays),
            'selected_month_days': list(series.selected_month_days),
            'manual_dates': list(series.manual_dates),
            'time_windows': list(series.time_windows),
        }

    def to_draft(self) -> SeriesDraft:
        data = self.validated_data
        return SeriesDraft(
            title=data['title'],
            rule=self.to_rule(),
            room_id=data['room'].pk,
            instructor_id=data['instructor'].pk,
        )


class ClassSessionSerializer(serializers.ModelSerializer):
    is_exception = serializers.BooleanField(read_only=True)

    class Meta:
        model = ClassSession
        fields = ['id', 'start', 'end', 'original_start', 'is_exception']


class SeriesExceptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = SeriesException
        fields = ['id', 'original_start', 'status', 'new_start', 'new_end', 'reason', 'created_at', 'updated_at']


class ClassSeriesSerializer(serializers.ModelSerializer):
    """Read view of a series with its sessions and exceptions"""

    sessions = ClassSessionSerializer(many=True, read_only=True)
    exceptions = SeriesExceptionSerializer(many=True, read_only=True)

    class Meta:
        model = ClassSeries
        fields = [
            'id', 'title', 'room', 'instructor', 'recurrence_type', 'series_start', 'series_end',
            'interval_count', 'selected_weekdays', 'selected_month_days', 'manual_dates',
            'time_windows', 'sessions', 'exceptions', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class GeneratedSessionSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True, allow_null=True)
    start = serializers.DateTimeField(read_only=True)
    end = serializers.DateTimeField(read_only=True)
    original_start = serializers.DateTimeField(read_only=True)


class OccurrenceChangeSerializer(serializers.Serializer):
    """Move a single occurrence"""

    new_start = serializers.DateTimeField()
    new_end = serializers.DateTimeField()
    reason = serializers.CharField(required=False, allow_blank=True, default='', max_length=255)
