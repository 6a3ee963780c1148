from django.core.exceptions import ValidationError
from django.db import models

from .services.types import (
    CUSTOM_MANUAL,
    EXCEPTION_STATUS_CHOICES,
    RECURRENCE_CHOICES,
    RECURRENCE_TYPES,
    SINGLE,
    RecurrenceRule,
    SeriesException as SeriesExceptionData,
    SeriesRecord,
    Session,
    TimeWindow,
)


class RoomType(models.Model):
    """Category of room, e.g. "Science Lab" or "Lecture Hall" """

    name = models.CharField(max_length=120, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class PhysicalRoom(models.Model):
    """A bookable location. Two sessions in one room must not overlap."""

    name = models.CharField(max_length=120, unique=True)
    room_type = models.ForeignKey(RoomType, on_delete=models.PROTECT, related_name='rooms')
    seating_capacity = models.PositiveIntegerField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def clean(self):
        if self.seating_capacity is not None and self.seating_capacity <= 0:
            raise ValidationError("Seating capacity must be positive")


class Instructor(models.Model):
    """A bookable person. Two sessions with one instructor must not overlap."""

    name = models.CharField(max_length=255)
    email = models.EmailField(unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class ClassSeries(models.Model):
    """
    A recurrence rule bound to a room and an instructor.
    The rule is kept for regeneration; sessions hold the booked occurrences.
    """

    title = models.CharField(max_length=255)
    room = models.ForeignKey(PhysicalRoom, on_delete=models.PROTECT, related_name='series')
    instructor = models.ForeignKey(Instructor, on_delete=models.PROTECT, related_name='series')

    recurrence_type = models.CharField(max_length=20, choices=RECURRENCE_CHOICES, default=SINGLE)
    series_start = models.DateField()
    series_end = models.DateField(null=True, blank=True, help_text="Required for repeating classes")
    interval_count = models.PositiveIntegerField(default=1, help_text="Every N days or weeks")
    selected_weekdays = models.JSONField(default=list, blank=True, help_text="0=Sunday .. 6=Saturday")
    selected_month_days = models.JSONField(default=list, blank=True, help_text="1 .. 31")
    manual_dates = models.JSONField(default=list, blank=True, help_text="ISO dates for hand-picked classes")
    time_windows = models.JSONField(
        default=list,
        help_text="List of {'start_time_24h': 'HH:mm', 'end_time_24h': 'HH:mm'}",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name_plural = 'class series'

    def __str__(self):
        return f"{self.title} ({self.get_recurrence_type_display()})"

    def clean(self):
        """Validate model constraints"""
        if self.recurrence_type not in RECURRENCE_TYPES:
            raise ValidationError(f"Unknown recurrence type: {self.recurrence_type}")

        if self.recurrence_type not in (SINGLE, CUSTOM_MANUAL) and not self.series_end:
            raise ValidationError("Repeating classes need an end date")

        if self.series_end and self.series_start and self.series_start > self.series_end:
            raise ValidationError("Series start cannot be after series end")

        if self.interval_count is not None and self.interval_count < 1:
            raise ValidationError("Interval must be at least 1")

        if any(not isinstance(d, int) or not 0 <= d <= 6 for d in self.selected_weekdays or []):
            raise ValidationError("Weekdays must be between 0 (Sunday) and 6 (Saturday)")

        if any(not isinstance(d, int) or not 1 <= d <= 31 for d in self.selected_month_days or []):
            raise ValidationError("Month days must be between 1 and 31")

        if not self.time_windows:
            raise ValidationError("At least one time window is required")

    def to_rule(self) -> RecurrenceRule:
        return RecurrenceRule(
            recurrence_type=self.recurrence_type,
            series_start=self.series_start,
            series_end=self.series_end,
            interval_count=self.interval_count,
            selected_weekdays=list(self.selected_weekdays or []),
            selected_month_days=list(self.selected_month_days or []),
            manual_dates=list(self.manual_dates or []),
            time_windows=[TimeWindow.from_dict(w) for w in self.time_windows or []],
        )

    def apply_rule(self, rule: RecurrenceRule):
        """Copy a rule onto this row (does not save)"""
        self.recurrence_type = rule.recurrence_type
        self.series_start = rule.series_start
        self.series_end = rule.series_end
        self.interval_count = rule.interval_count or 1
        self.selected_weekdays = list(rule.selected_weekdays)
        self.selected_month_days = list(rule.selected_month_days)
        self.manual_dates = [d.isoformat() if hasattr(d, 'isoformat') else str(d) for d in rule.manual_dates]
        self.time_windows = [w.to_dict() for w in rule.time_windows]

    def to_record(self) -> SeriesRecord:
        return SeriesRecord(
            id=self.pk,
            title=self.title,
            rule=self.to_rule(),
            room_id=self.room_id,
            instructor_id=self.instructor_id,
            sessions=[s.to_session() for s in self.sessions.all()],
            exceptions=[e.to_exception() for e in self.exceptions.all()],
        )


class ClassSession(models.Model):
    """
    One booked occurrence of a series. original_start identifies the
    occurrence across moves.
    """

    series = models.ForeignKey(ClassSeries, on_delete=models.CASCADE, related_name='sessions')
    start = models.DateTimeField(db_index=True)
    end = models.DateTimeField(db_index=True)
    original_start = models.DateTimeField(help_text="Start time the rule generated for this occurrence")

    class Meta:
        ordering = ['start']
        indexes = [
            models.Index(fields=['series', 'start'], name='booking_session_series_start'),
        ]

    def __str__(self):
        return f"{self.series.title} at {self.start}"

    def clean(self):
        if self.start and self.end and self.end <= self.start:
            raise ValidationError("Session end must be after its start")

    @property
    def is_exception(self):
        return self.start != self.original_start

    def to_session(self) -> Session:
        return Session(start=self.start, end=self.end, original_start=self.original_start, id=self.pk)


class SeriesException(models.Model):
    """
    Per-occurrence move or cancellation, identified by the occurrence's
    original start time. Kept across whole-series edits.
    """

    series = models.ForeignKey(ClassSeries, on_delete=models.CASCADE, related_name='exceptions')
    original_start = models.DateTimeField(
        help_text="Original occurrence start time (identifies which occurrence this affects)"
    )
    status = models.CharField(max_length=20, choices=EXCEPTION_STATUS_CHOICES)
    new_start = models.DateTimeField(null=True, blank=True)
    new_end = models.DateTimeField(null=True, blank=True)
    reason = models.CharField(max_length=255, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ['series', 'original_start']
        ordering = ['original_start']

    def __str__(self):
        action = "Cancelled" if self.status == 'cancelled' else "Modified"
        return f"{action} occurrence of '{self.series.title}' at {self.original_start}"

    def clean(self):
        """Validate override constraints"""
        if self.status == 'modified':
            if self.new_start is None or self.new_end is None:
                raise ValidationError("Modified occurrences need a new start and end")
            if self.new_end <= self.new_start:
                raise ValidationError("New end must be after new start")

    def to_exception(self) -> SeriesExceptionData:
        return SeriesExceptionData(
            original_start=self.original_start,
            status=self.status,
            new_start=self.new_start,
            new_end=self.new_end,
            reason=self.reason,
            id=self.pk,
        )
