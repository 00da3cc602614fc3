from __future__ import annotations

from datetime import date, timedelta

import pytest

from carehub.apps.training import models, status


def _course(refresher=1, due_soon=60):
    return models.Course(
        company_id="c1",
        name="Fire Safety",
        refresher_interval_years=refresher,
        due_soon_window_days=due_soon,
    )


def _record(completed):
    return models.CompletionRecord(person_id="p1", course_id="course-1", company_id="c1", date_completed=completed)


def test_leap_day_completion_rolls_to_feb_28():
    assert status.add_years(date(2024, 2, 29), 1) == date(2025, 2, 28)
    assert status.add_years(date(2024, 2, 29), 4) == date(2028, 2, 29)
    assert status.next_due_date(date(2024, 2, 29), 1) == date(2025, 2, 28)


def test_add_years_outside_calendar_raises():
    with pytest.raises(ValueError, match="outside the supported calendar"):
        status.add_years(date(9990, 2, 28), 20)
    with pytest.raises(ValueError):
        status.add_years(date(2024, 2, 29), 8000)
    assert status.add_years(date(9899, 6, 1), 100) == date(9999, 6, 1)


def test_leap_day_status_uses_clamped_due_date():
    course = _course(refresher=1, due_soon=0)
    record = _record(date(2024, 2, 29))

    assert status.compute_status(record, course, date(2025, 2, 28)) == models.RecordStatus.DUE_SOON
    assert status.compute_status(record, course, date(2025, 3, 1)) == models.RecordStatus.OVERDUE


@pytest.mark.parametrize("completed", [date(1990, 1, 1), date(2020, 6, 15), date(2026, 10, 18)])
def test_never_expiring_course_is_always_up_to_date(completed):
    course = _course(refresher=None, due_soon=60)
    assert status.compute_status(_record(completed), course, date(2026, 10, 18)) == models.RecordStatus.UP_TO_DATE
    assert status.next_due_date(completed, None) is None


def test_due_soon_boundary_is_inclusive():
    today = date(2026, 10, 18)
    course = _course(refresher=1, due_soon=60)

    due_in_60 = _record(status.add_years(today + timedelta(days=60), -1))
    due_in_61 = _record(status.add_years(today + timedelta(days=61), -1))
    due_yesterday = _record(status.add_years(today - timedelta(days=1), -1))
    due_today = _record(status.add_years(today, -1))

    assert status.compute_status(due_in_60, course, today) == models.RecordStatus.DUE_SOON
    assert status.compute_status(due_in_61, course, today) == models.RecordStatus.UP_TO_DATE
    assert status.compute_status(due_yesterday, course, today) == models.RecordStatus.OVERDUE
    assert status.compute_status(due_today, course, today) == models.RecordStatus.DUE_SOON


def test_pending_record_has_no_status():
    with pytest.raises(ValueError):
        status.compute_status(_record(None), _course(), date(2026, 10, 18))


def test_pending_state_reflects_due_by():
    today = date(2026, 10, 18)
    record = _record(None)
    assert status.pending_state(record, today) == models.PendingState.AWAITING

    record.due_by = today
    assert status.pending_state(record, today) == models.PendingState.AWAITING

    record.due_by = today - timedelta(days=1)
    assert status.pending_state(record, today) == models.PendingState.PAST_DUE


def test_best_status_prefers_up_to_date():
    assert status.best_status(None, models.RecordStatus.OVERDUE) == models.RecordStatus.OVERDUE
    assert status.best_status(models.RecordStatus.OVERDUE, models.RecordStatus.DUE_SOON) == models.RecordStatus.DUE_SOON
    assert status.best_status(models.RecordStatus.UP_TO_DATE, models.RecordStatus.DUE_SOON) == models.RecordStatus.UP_TO_DATE
