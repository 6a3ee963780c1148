"""
Applies a series' stored exceptions to freshly generated sessions.
Exceptions are keyed by the occurrence's original start time and are
never dropped by regeneration.
"""

from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .types import CANCELLED, MODIFIED, SeriesException, Session


def _index_exceptions(exceptions: List[SeriesException]) -> Dict[datetime, SeriesException]:
    # Later records win if storage ever held duplicates
    return {exception.original_start: exception for exception in exceptions}


def reconcile_exceptions(sessions: List[Session], exceptions: List[SeriesException]) -> List[Session]:
    """
    Apply moves and cancellations to generated sessions.

    Args:
        sessions: Sessions generated from the (new) rule
        exceptions: The series' stored exceptions

    Returns:
        Sessions with modified occurrences moved and cancelled ones removed,
        sorted by start
    """
    by_start = _index_exceptions(exceptions)

    reconciled = []
    for session in sessions:
        exception = by_start.get(session.original_start)
        if exception is None:
            reconciled.append(session)
            continue

        if exception.status == CANCELLED:
            continue

        if exception.status == MODIFIED and exception.new_start and exception.new_end:
            session = replace(session, start=exception.new_start, end=exception.new_end)
        reconciled.append(session)

    reconciled.sort(key=lambda s: s.start)
    return reconciled


def unmatched_exceptions(sessions: List[Session], exceptions: List[SeriesException]) -> List[SeriesException]:
    """Exceptions whose original occurrence the rule no longer generates"""
    generated = {session.original_start for session in sessions}
    return [exception for exception in exceptions if exception.original_start not in generated]


def upsert_exception(exceptions: List[SeriesException], original_start: datetime, status: str,
                     new_start: Optional[datetime] = None, new_end: Optional[datetime] = None,
                     reason: str = '') -> Tuple[List[SeriesException], SeriesException, bool]:
    """
    Record an override for one occurrence, replacing any existing record
    for the same original start.

    Returns:
        (updated exception list, the stored record, whether it was created)
    """
    updated = list(exceptions)
    for index, existing in enumerate(updated):
        if existing.original_start == original_start:
            record = replace(existing, status=status, new_start=new_start, new_end=new_end, reason=reason)
            updated[index] = record
            return updated, record, False

    record = SeriesException(
        original_start=original_start,
        status=status,
        new_start=new_start,
        new_end=new_end,
        reason=reason,
    )
    updated.append(record)
    return updated, record, True
