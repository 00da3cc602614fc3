"""
Read models for the self-service ("My Training") and team screens.

Both decorate completion rows with the same status, next-due and mandate
label derivations the compliance report uses, so the three surfaces agree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import catalog, mandates, models
from .compliance import STRICT_POLICY, SECTION_ERROR_MESSAGE, CompliancePolicy
from .roster import Roster, RosterPerson, matches_home
from .status import compute_status, next_due_date, pending_state

logger = logging.getLogger(__name__)

PENDING_FILTER = "PENDING"


@dataclass
class DecoratedRecord:
    id: str
    person_id: str
    course_id: str
    course_name: str
    training_type: models.TrainingType
    refresher_interval_years: Optional[int]
    mandate_label: models.MandateLabel
    date_completed: Optional[date] = None
    next_due_date: Optional[date] = None
    status: Optional[models.RecordStatus] = None
    pending_state: Optional[models.PendingState] = None
    certificate_ref: Optional[str] = None
    due_by: Optional[date] = None
    reference_link: Optional[str] = None
    person_name: Optional[str] = None
    home_id: Optional[str] = None
    home_label: Optional[str] = None
    is_bank: bool = False

    @property
    def is_pending(self) -> bool:
        return self.date_completed is None


@dataclass
class StatusSummary:
    total: int = 0
    up_to_date: int = 0
    due_soon: int = 0
    overdue: int = 0


@dataclass
class MyTrainingView:
    person_id: str
    company_id: Optional[str]
    records: List[DecoratedRecord] = field(default_factory=list)
    summary: StatusSummary = field(default_factory=StatusSummary)
    mandatory_total: int = 0
    mandatory_completed: int = 0
    available_courses: List[models.Course] = field(default_factory=list)


@dataclass
class TeamView:
    records: List[DecoratedRecord] = field(default_factory=list)
    error: Optional[str] = None


def decorate(
    record: models.CompletionRecord,
    course: models.Course,
    *,
    today: date,
    has_targets: bool,
    person: Optional[RosterPerson] = None,
) -> DecoratedRecord:
    row = DecoratedRecord(
        id=record.id,
        person_id=record.person_id,
        course_id=course.id,
        course_name=course.name,
        training_type=course.training_type,
        refresher_interval_years=course.refresher_interval_years,
        mandate_label=catalog.mandate_label(course, has_targets),
        date_completed=record.date_completed,
        certificate_ref=record.certificate_ref,
        due_by=record.due_by,
        reference_link=course.reference_link,
    )
    if record.date_completed is None:
        row.pending_state = pending_state(record, today)
    else:
        row.status = compute_status(record, course, today)
        row.next_due_date = next_due_date(record.date_completed, course.refresher_interval_years)
    if person is not None:
        row.person_name = person.name
        row.home_id = person.home_id
        row.home_label = person.home_label
        row.is_bank = person.is_bank
    return row


def summarise(rows: List[DecoratedRecord]) -> StatusSummary:
    summary = StatusSummary()
    for row in rows:
        if row.status is None:
            continue
        summary.total += 1
        if row.status == models.RecordStatus.UP_TO_DATE:
            summary.up_to_date += 1
        elif row.status == models.RecordStatus.DUE_SOON:
            summary.due_soon += 1
        else:
            summary.overdue += 1
    return summary


def _records_for(db: Session, company_id: str, person_ids: List[str]) -> List[models.CompletionRecord]:
    if not person_ids:
        return []
    return (
        db.query(models.CompletionRecord)
        .join(models.Course, models.Course.id == models.CompletionRecord.course_id)
        .filter(
            models.Course.company_id == company_id,
            models.CompletionRecord.person_id.in_(person_ids),
        )
        .all()
    )


# ---------------------------------------------------------------------------
# My Training
# ---------------------------------------------------------------------------


def my_training(
    db: Session,
    *,
    person_id: str,
    company_id: Optional[str],
    today: date,
    policy: CompliancePolicy = STRICT_POLICY,
) -> MyTrainingView:
    view = MyTrainingView(person_id=person_id, company_id=company_id)
    if not company_id:
        return view

    courses = {c.id: c for c in catalog.list_courses(db, company_id)}
    with_targets = catalog.get_courses_with_targets(db, courses.keys())
    records = _records_for(db, company_id, [person_id])

    rows = [
        decorate(r, courses[r.course_id], today=today, has_targets=r.course_id in with_targets)
        for r in records
        if r.course_id in courses
    ]
    rows.sort(key=lambda row: (row.course_name.lower(), row.id))
    view.records = rows
    view.summary = summarise(rows)

    required = mandates.required_course_ids(db, person_id, company_id)
    satisfied = {row.course_id for row in rows if policy.satisfies(row.status)}
    view.mandatory_total = len(required)
    view.mandatory_completed = len(required & satisfied)

    held = {r.course_id for r in records}
    view.available_courses = [c for c in courses.values() if c.id not in held]
    view.available_courses.sort(key=lambda c: (c.name.lower(), c.id))
    return view


# ---------------------------------------------------------------------------
# Team
# ---------------------------------------------------------------------------


def _matches_status(row: DecoratedRecord, status: Optional[str]) -> bool:
    if not status or status == "ALL":
        return True
    if status == PENDING_FILTER:
        return row.is_pending
    if row.status is not None:
        return row.status.value == status
    return row.pending_state is not None and row.pending_state.value == status


def _matches_certificate(row: DecoratedRecord, has_certificate: Optional[bool]) -> bool:
    if has_certificate is None:
        return True
    return bool(row.certificate_ref) == has_certificate


def _matches_mandate(row: DecoratedRecord, mandate: Optional[str]) -> bool:
    if not mandate or mandate == "ALL":
        return True
    return row.mandate_label.value == mandate


def _matches_search(row: DecoratedRecord, search: Optional[str]) -> bool:
    needle = (search or "").strip().lower()
    if not needle:
        return True
    return needle in (row.person_name or "").lower() or needle in row.course_name.lower()


def team_records(
    db: Session,
    roster: Roster,
    *,
    today: date,
    status: Optional[str] = None,
    has_certificate: Optional[bool] = None,
    mandate: Optional[str] = None,
    home: Optional[str] = None,
    search: Optional[str] = None,
) -> TeamView:
    """Every record of the people in a roster, decorated and filtered."""
    if roster.error is not None:
        return TeamView(error=roster.error.message)
    if not roster.company_id:
        return TeamView()

    people: Dict[str, RosterPerson] = {p.id: p for p in roster.people if matches_home(p, home)}
    try:
        courses = {c.id: c for c in catalog.list_courses(db, roster.company_id)}
        with_targets: Set[str] = catalog.get_courses_with_targets(db, courses.keys())
        records = _records_for(db, roster.company_id, list(people))
    except SQLAlchemyError:
        logger.warning(
            "Team records failed to load",
            exc_info=True,
            extra={"company_id": roster.company_id},
        )
        return TeamView(error=SECTION_ERROR_MESSAGE)

    rows = []
    for record in records:
        course = courses.get(record.course_id)
        if course is None:
            continue
        row = decorate(
            record,
            course,
            today=today,
            has_targets=course.id in with_targets,
            person=people.get(record.person_id),
        )
        if (
            _matches_status(row, status)
            and _matches_certificate(row, has_certificate)
            and _matches_mandate(row, mandate)
            and _matches_search(row, search)
        ):
            rows.append(row)

    rows.sort(key=lambda r: ((r.person_name or "").lower(), r.course_name.lower(), r.id))
    return TeamView(records=rows)
