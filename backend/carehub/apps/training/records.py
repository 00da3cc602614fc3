"""
Self-service completion records.

State machine for a (person, course) row:

    PENDING (no date) --submit--> COMPLETED --edit--> COMPLETED
    COMPLETED --delete--> removed

Pending rows are only ever superseded by a completion.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from carehub.apps.accounts import models as account_models
from carehub.apps.accounts import services as account_services
from carehub.apps.audit import services as audit_services

from . import models
from .errors import NotFoundError, UniqueConstraintViolation, ValidationError

logger = logging.getLogger(__name__)


def get_record(db: Session, record_id: str) -> Optional[models.CompletionRecord]:
    if not record_id:
        return None
    return db.query(models.CompletionRecord).filter(models.CompletionRecord.id == record_id).first()


def require_record(db: Session, record_id: str) -> models.CompletionRecord:
    record = get_record(db, record_id)
    if record is None:
        raise NotFoundError("Record", record_id)
    return record


def find_record(db: Session, *, person_id: str, course_id: str) -> Optional[models.CompletionRecord]:
    return (
        db.query(models.CompletionRecord)
        .filter(
            models.CompletionRecord.person_id == person_id,
            models.CompletionRecord.course_id == course_id,
        )
        .first()
    )


def _check_completion_date(value: Optional[date], today: date) -> date:
    if value is None:
        raise ValidationError("date_completed", "Enter the date the course was completed.")
    if value > today:
        raise ValidationError("date_completed", "Completion date cannot be in the future.")
    return value


def _clean_certificate(value: Optional[str]) -> Optional[str]:
    cleaned = (value or "").strip()
    return cleaned or None


def _snapshot(record: models.CompletionRecord) -> dict:
    return {
        "date_completed": record.date_completed.isoformat() if record.date_completed else None,
        "certificate_ref": record.certificate_ref,
        "due_by": record.due_by.isoformat() if record.due_by else None,
    }


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


def can_manage_record(
    db: Session,
    *,
    actor: account_models.Person,
    record: models.CompletionRecord,
) -> bool:
    """Owner, an admin of the record's company, or a manager of the owner's home."""
    if record.person_id == actor.id:
        return True

    level = account_services.resolve_effective_level(db, actor)
    if level == account_models.EffectiveLevel.PLATFORM_ADMIN:
        return True
    if level == account_models.EffectiveLevel.COMPANY_ADMIN:
        return account_services.company_id_for_person(db, actor.id) == record.company_id
    if level == account_models.EffectiveLevel.HOME_MANAGER:
        managed = set(account_services.managed_home_ids(db, actor.id))
        owner_homes = {
            home_id
            for (home_id,) in db.query(account_models.HomeMembership.home_id)
            .filter(account_models.HomeMembership.person_id == record.person_id)
            .all()
        }
        return bool(managed & owner_homes)
    return False


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def submit_completion(
    db: Session,
    *,
    person_id: str,
    course: models.Course,
    date_completed: Optional[date],
    today: date,
    certificate_ref: Optional[str] = None,
    actor_person_id: Optional[str] = None,
) -> models.CompletionRecord:
    """
    Record that a person completed a course.

    A pending assignment row is promoted in place; otherwise a new row is
    inserted. A second completed row for the same course is refused.
    """
    completed_on = _check_completion_date(date_completed, today)

    record = find_record(db, person_id=person_id, course_id=course.id)
    if record is not None and record.date_completed is not None:
        raise ValidationError(
            "course_id",
            "A completion for this course already exists; edit it instead.",
        )

    promoted = record is not None
    if record is None:
        record = models.CompletionRecord(
            person_id=person_id,
            course_id=course.id,
            company_id=course.company_id,
        )
    record.date_completed = completed_on
    record.certificate_ref = _clean_certificate(certificate_ref)
    db.add(record)

    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        logger.warning(
            "Concurrent completion write",
            extra={"person_id": person_id, "course_id": course.id},
        )
        raise UniqueConstraintViolation(person_id, course.id)

    audit_services.log_event(
        db,
        company_id=course.company_id,
        actor_person_id=actor_person_id or person_id,
        entity_type="training_record",
        entity_id=record.id,
        action="record_promote" if promoted else "record_create",
        after=_snapshot(record),
        metadata={"module": "training", "course_id": course.id},
    )
    return record


def edit_record(
    db: Session,
    *,
    record: models.CompletionRecord,
    changes: dict,
    today: date,
    actor_person_id: Optional[str] = None,
) -> models.CompletionRecord:
    """Update date and/or certificate of a completed record."""
    if record.date_completed is None:
        raise ValidationError("record", "Pending assignments are completed, not edited.")

    before = _snapshot(record)
    if "date_completed" in changes:
        record.date_completed = _check_completion_date(changes["date_completed"], today)
    if "certificate_ref" in changes:
        record.certificate_ref = _clean_certificate(changes["certificate_ref"])
    db.add(record)
    db.flush()

    audit_services.log_event(
        db,
        company_id=record.company_id,
        actor_person_id=actor_person_id,
        entity_type="training_record",
        entity_id=record.id,
        action="record_update",
        before=before,
        after=_snapshot(record),
        metadata={"module": "training"},
    )
    return record


def delete_record(
    db: Session,
    *,
    record: models.CompletionRecord,
    actor_person_id: Optional[str] = None,
) -> None:
    if record.date_completed is None:
        raise ValidationError("record", "Pending assignments cannot be deleted.")

    snapshot = _snapshot(record)
    company_id = record.company_id
    record_id = record.id
    db.delete(record)
    db.flush()

    audit_services.log_event(
        db,
        company_id=company_id,
        actor_person_id=actor_person_id,
        entity_type="training_record",
        entity_id=record_id,
        action="record_delete",
        before=snapshot,
        metadata={"module": "training"},
    )
