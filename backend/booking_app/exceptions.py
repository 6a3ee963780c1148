"""
Error kinds raised by the scheduling core.
Only ConcurrencyError is worth retrying; everything else is terminal.
"""


class SchedulingError(Exception):
    """Base class for every scheduling failure"""

    kind = 'scheduling_error'
    retryable = False

    def __init__(self, message, field=None):
        super().__init__(message)
        self.message = message
        self.field = field

    def as_detail(self):
        return {'field': self.field or 'non_field_errors', 'message': self.message}


class InputError(SchedulingError):
    """Malformed time window or a required rule field is missing"""
    kind = 'input_error'


class RangeError(SchedulingError):
    """End before start, session too short, or start date after end date"""
    kind = 'range_error'


class EmptyResultError(SchedulingError):
    """Every candidate session was filtered out"""
    kind = 'empty_result'


class ConflictError(SchedulingError):
    """A room or instructor is already booked for part of the requested time"""
    kind = 'conflict'

    def __init__(self, report):
        super().__init__(report.message, field=report.field)
        self.report = report
        self.window = report.window


class NotFoundError(SchedulingError):
    """Unknown series or occurrence id"""
    kind = 'not_found'


class ConcurrencyError(SchedulingError):
    """The resource lock could not be taken in time"""
    kind = 'concurrency'
    retryable = True
