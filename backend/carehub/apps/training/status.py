"""
Record Status Engine.

Status is derived on every read from the completion date, the course's
refresher interval and its due-soon window; nothing here is persisted.
"""

from __future__ import annotations

from datetime import MAXYEAR, MINYEAR, date
from typing import Optional

from .models import CompletionRecord, Course, PendingState, RecordStatus


# Best first; used when a person has several candidate statuses.
STATUS_RANK = {
    RecordStatus.UP_TO_DATE: 0,
    RecordStatus.DUE_SOON: 1,
    RecordStatus.OVERDUE: 2,
}


def add_years(start: date, years: int) -> date:
    """
    Calendar-year addition.

    Feb 29 lands on Feb 28 when the target year is not a leap year.
    """
    year = start.year + years
    if not MINYEAR <= year <= MAXYEAR:
        raise ValueError(f"{start.isoformat()} plus {years} years is outside the supported calendar")
    try:
        return start.replace(year=year)
    except ValueError:
        return start.replace(year=year, day=28)


def next_due_date(date_completed: Optional[date], refresher_interval_years: Optional[int]) -> Optional[date]:
    if date_completed is None or refresher_interval_years is None:
        return None
    return add_years(date_completed, refresher_interval_years)


def status_for_dates(
    date_completed: date,
    *,
    refresher_interval_years: Optional[int],
    due_soon_window_days: int,
    today: date,
) -> RecordStatus:
    if refresher_interval_years is None:
        return RecordStatus.UP_TO_DATE

    due = add_years(date_completed, refresher_interval_years)
    days_remaining = (due - today).days
    if days_remaining < 0:
        return RecordStatus.OVERDUE
    if days_remaining <= max(due_soon_window_days or 0, 0):
        return RecordStatus.DUE_SOON
    return RecordStatus.UP_TO_DATE


def compute_status(record: CompletionRecord, course: Course, today: date) -> RecordStatus:
    """
    Status of a completed record against its course.

    Only defined for completed records; a pending row has no status and
    raises ValueError.
    """
    if record.date_completed is None:
        raise ValueError("Pending records have no completion status")
    return status_for_dates(
        record.date_completed,
        refresher_interval_years=course.refresher_interval_years,
        due_soon_window_days=course.due_soon_window_days,
        today=today,
    )


def pending_state(record: CompletionRecord, today: date) -> PendingState:
    if record.due_by is not None and record.due_by < today:
        return PendingState.PAST_DUE
    return PendingState.AWAITING


def best_status(current: Optional[RecordStatus], candidate: RecordStatus) -> RecordStatus:
    if current is None or STATUS_RANK[candidate] < STATUS_RANK[current]:
        return candidate
    return current
