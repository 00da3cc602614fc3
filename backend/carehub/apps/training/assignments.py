"""
Assignment Workflow.

Creates forward-looking "due by" obligations as pending completion rows.

The flow is check-then-act: recipients are partitioned into fresh and
conflicting (already holding a completion), and nothing is written while
conflicts are unresolved. Storage holds one row per (person, course), so a
concurrent writer that wins the race turns the loser's insert into a
retryable per-recipient failure.

Writes are committed per recipient; a failure part way through is reported
alongside the recipients that succeeded.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from carehub.apps.accounts.models import ManagerSubrole
from carehub.apps.audit import services as audit_services

from . import catalog, models
from .errors import ConflictError, StaleRecordError, UniqueConstraintViolation, ValidationError
from .roster import Roster

logger = logging.getLogger(__name__)

NO_RECIPIENTS_MESSAGE = "No recipients found for the chosen scope."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecipientMode(str, enum.Enum):
    HOMES = "HOMES"
    PEOPLE = "PEOPLE"


class ConflictResolution(str, enum.Enum):
    SKIP_EXISTING = "SKIP_EXISTING"
    CHANGE_DUE_DATE = "CHANGE_DUE_DATE"


# ---------------------------------------------------------------------------
# Recipient selection
# ---------------------------------------------------------------------------


def _is_home_manager_position(person, home_id: str) -> bool:
    if home_id not in person.managed_homes:
        return False
    # Legacy rows without a sub-role count as full managers.
    return person.managed_homes[home_id] in (None, ManagerSubrole.MANAGER)


def select_recipients(
    roster: Roster,
    *,
    by: RecipientMode,
    home_ids: Iterable[str] = (),
    person_ids: Iterable[str] = (),
    include_managers: bool = False,
    actor_id: Optional[str] = None,
) -> List[str]:
    """
    Recipient ids chosen from a roster.

    HOMES picks everyone whose home is selected; unless `include_managers`
    is set, the managers of that home are skipped while deputies stay.
    PEOPLE picks the named people that are in the roster. `actor_id`, when
    given, is always removed.
    """
    selected: List[str] = []
    if RecipientMode(by) == RecipientMode.HOMES:
        allowed = {hid for hid in home_ids if hid}
        for person in roster.people:
            if not person.home_id or person.home_id not in allowed:
                continue
            if not include_managers and _is_home_manager_position(person, person.home_id):
                continue
            selected.append(person.id)
    else:
        in_scope = set(roster.ids)
        selected = [pid for pid in dict.fromkeys(person_ids) if pid in in_scope]

    if actor_id:
        selected = [pid for pid in selected if pid != actor_id]
    return selected


# ---------------------------------------------------------------------------
# Partition
# ---------------------------------------------------------------------------


@dataclass
class AssignmentPartition:
    fresh: List[str] = field(default_factory=list)
    conflicting: List[str] = field(default_factory=list)
    # fresh recipients that already have a pending row, by person id
    pending_rows: Dict[str, models.CompletionRecord] = field(default_factory=dict)
    completed_rows: Dict[str, models.CompletionRecord] = field(default_factory=dict)


def partition_recipients(
    db: Session,
    *,
    course_id: str,
    recipient_ids: Sequence[str],
) -> AssignmentPartition:
    """Split recipients by whether they already hold a completion of the course."""
    ids = list(dict.fromkeys(pid for pid in recipient_ids if pid))
    partition = AssignmentPartition()
    if not ids:
        return partition

    rows = (
        db.query(models.CompletionRecord)
        .filter(
            models.CompletionRecord.course_id == course_id,
            models.CompletionRecord.person_id.in_(ids),
        )
        .all()
    )
    for row in rows:
        if row.date_completed is None:
            partition.pending_rows[row.person_id] = row
        else:
            partition.completed_rows[row.person_id] = row

    for person_id in ids:
        if person_id in partition.completed_rows:
            partition.conflicting.append(person_id)
        else:
            partition.fresh.append(person_id)
    return partition


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


@dataclass
class RecipientFailure:
    person_id: str
    message: str
    retryable: bool = False


@dataclass
class AssignmentResult:
    course_id: str
    due_by: date
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[RecipientFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> List[str]:
        return self.created + self.updated


def _write_one(
    db: Session,
    *,
    course: models.Course,
    person_id: str,
    due_by: date,
    existing: Optional[models.CompletionRecord],
    actor_person_id: Optional[str],
    now: datetime,
) -> str:
    if existing is None:
        db.add(
            models.CompletionRecord(
                person_id=person_id,
                course_id=course.id,
                company_id=course.company_id,
                date_completed=None,
                due_by=due_by,
                assigned_by_person_id=actor_person_id,
                assigned_at=now,
            )
        )
        action = "assignment_create"
    elif existing.date_completed is None:
        # Only touch the row while it is still pending.
        changed = (
            db.query(models.CompletionRecord)
            .filter(
                models.CompletionRecord.id == existing.id,
                models.CompletionRecord.date_completed.is_(None),
            )
            .update(
                {
                    models.CompletionRecord.due_by: due_by,
                    models.CompletionRecord.assigned_by_person_id: actor_person_id,
                    models.CompletionRecord.assigned_at: now,
                },
                synchronize_session="fetch",
            )
        )
        if not changed:
            raise StaleRecordError(person_id, course.id)
        action = "assignment_due_date_change"
    else:
        existing.due_by = due_by
        existing.assigned_by_person_id = actor_person_id
        existing.assigned_at = now
        db.add(existing)
        action = "assignment_due_date_change"
    db.flush()

    audit_services.log_event(
        db,
        company_id=course.company_id,
        actor_person_id=actor_person_id,
        entity_type="training_assignment",
        entity_id=f"{person_id}:{course.id}",
        action=action,
        after={"person_id": person_id, "course_id": course.id, "due_by": due_by.isoformat()},
        metadata={"module": "training"},
    )
    return action


def apply_assignment(
    db: Session,
    *,
    course: models.Course,
    due_by: date,
    partition: AssignmentPartition,
    resolution: Optional[ConflictResolution] = None,
    actor_person_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AssignmentResult:
    """
    Write an already computed partition, committing per recipient.

    Fresh recipients get a pending row (or a new due date on the pending
    row they already have). Conflicting recipients are skipped, or with
    CHANGE_DUE_DATE get `due_by` set on their completed row.
    """
    now = now or _utcnow()
    result = AssignmentResult(course_id=course.id, due_by=due_by)

    plan: List[tuple] = [(pid, partition.pending_rows.get(pid)) for pid in partition.fresh]
    if resolution == ConflictResolution.CHANGE_DUE_DATE:
        plan.extend((pid, partition.completed_rows.get(pid)) for pid in partition.conflicting)
    else:
        result.skipped.extend(partition.conflicting)

    for person_id, existing in plan:
        try:
            action = _write_one(
                db,
                course=course,
                person_id=person_id,
                due_by=due_by,
                existing=existing,
                actor_person_id=actor_person_id,
                now=now,
            )
            db.commit()
        except IntegrityError:
            db.rollback()
            violation = UniqueConstraintViolation(person_id, course.id)
            logger.warning(
                "Concurrent assignment write; recipient left for retry",
                extra={"course_id": course.id, "person_id": person_id},
            )
            result.failed.append(
                RecipientFailure(person_id=person_id, message=str(violation), retryable=violation.retryable)
            )
            continue
        except StaleRecordError as exc:
            db.rollback()
            logger.warning(
                "Pending record completed concurrently; recipient left for retry",
                extra={"course_id": course.id, "person_id": person_id},
            )
            result.failed.append(RecipientFailure(person_id=person_id, message=str(exc), retryable=exc.retryable))
            continue
        except SQLAlchemyError:
            db.rollback()
            logger.exception(
                "Assignment write failed",
                extra={"course_id": course.id, "person_id": person_id},
            )
            result.failed.append(
                RecipientFailure(person_id=person_id, message="Could not save this recipient.")
            )
            continue

        if action == "assignment_create":
            result.created.append(person_id)
        else:
            result.updated.append(person_id)

    logger.info(
        "Training assignment written",
        extra={
            "course_id": course.id,
            "created": len(result.created),
            "updated": len(result.updated),
            "skipped": len(result.skipped),
            "failed": len(result.failed),
        },
    )
    return result


def create_assignment(
    db: Session,
    *,
    course_id: Optional[str],
    due_by: Optional[date],
    recipient_ids: Sequence[str],
    resolution: Optional[ConflictResolution] = None,
    actor_person_id: Optional[str] = None,
    company_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AssignmentResult:
    """
    Assign a course to recipients with a due-by date.

    Raises ValidationError before any query when the course, due date or
    recipients are missing, and ConflictError (writing nothing) when some
    recipients already hold a completion and no resolution was given.
    """
    if not course_id:
        raise ValidationError("course_id", "Pick a course.")
    if due_by is None:
        raise ValidationError("due_by", "Pick a due date.")
    recipients = list(dict.fromkeys(pid for pid in recipient_ids if pid))
    if not recipients:
        raise ValidationError("recipients", NO_RECIPIENTS_MESSAGE)

    course = catalog.require_course(db, course_id)
    if company_id and course.company_id != company_id:
        raise ValidationError("course_id", "The course does not belong to this company.")

    partition = partition_recipients(db, course_id=course.id, recipient_ids=recipients)
    if partition.conflicting and resolution is None:
        raise ConflictError(partition.fresh, partition.conflicting)

    return apply_assignment(
        db,
        course=course,
        due_by=due_by,
        partition=partition,
        resolution=ConflictResolution(resolution) if resolution else None,
        actor_person_id=actor_person_id,
        now=now,
    )
