"""
Course Catalog: per-company course definitions and their mandate targets.

Reads are plain projections. Writes normalise input (trimmed name, clamped
numbers, empty link -> NULL, closed training type) and replace a course's
targets wholesale whenever its audience is saved.
"""

from __future__ import annotations

import logging
import os
from typing import Iterable, List, Optional, Sequence, Set

from sqlalchemy.orm import Session

from carehub.apps.audit import services as audit_services

from . import models
from .errors import NotFoundError, ValidationError
from .models import MAX_REFRESHER_YEARS

logger = logging.getLogger(__name__)

try:
    DEFAULT_DUE_SOON_DAYS: int = max(int(os.getenv("TRAINING_DEFAULT_DUE_SOON_DAYS", "60")), 0)
except ValueError:
    DEFAULT_DUE_SOON_DAYS = 60


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def _type_order(course: models.Course) -> str:
    value = course.training_type
    return value.value if isinstance(value, models.TrainingType) else str(value or "")


def list_courses(db: Session, company_id: str) -> List[models.Course]:
    """Courses of a company, by name then training type."""
    courses = db.query(models.Course).filter(models.Course.company_id == company_id).all()
    return sorted(courses, key=lambda c: ((c.name or "").lower(), _type_order(c)))


def get_course(db: Session, course_id: str) -> Optional[models.Course]:
    if not course_id:
        return None
    return db.query(models.Course).filter(models.Course.id == course_id).first()


def require_course(db: Session, course_id: str) -> models.Course:
    course = get_course(db, course_id)
    if course is None:
        raise NotFoundError("Course", course_id)
    return course


def get_courses_with_targets(db: Session, course_ids: Iterable[str]) -> Set[str]:
    """Which of the given courses have at least one mandate target row."""
    ids = sorted({cid for cid in course_ids if cid})
    if not ids:
        return set()
    rows = (
        db.query(models.CourseMandateTarget.course_id)
        .filter(models.CourseMandateTarget.course_id.in_(ids))
        .distinct()
        .all()
    )
    return {course_id for (course_id,) in rows}


def list_targets(db: Session, course_id: str) -> List[str]:
    rows = (
        db.query(models.CourseMandateTarget.person_id)
        .filter(models.CourseMandateTarget.course_id == course_id)
        .all()
    )
    return sorted(person_id for (person_id,) in rows)


def mandate_label(course: models.Course, has_targets: bool) -> models.MandateLabel:
    if course.mandatory_everyone:
        return models.MandateLabel.YES
    if has_targets:
        return models.MandateLabel.CONDITIONAL
    return models.MandateLabel.NO


def audience_for(course: models.Course, has_targets: bool) -> models.CourseAudience:
    if course.mandatory_everyone:
        return models.CourseAudience.EVERYONE
    if has_targets:
        return models.CourseAudience.PEOPLE
    return models.CourseAudience.NONE


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("name", "Name is required.")
    return cleaned


def _clean_refresher(value: Optional[int]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        years = max(int(value), 0)
    except (TypeError, ValueError):
        raise ValidationError("refresher_interval_years", "Refresher interval must be a whole number of years.")
    if years > MAX_REFRESHER_YEARS:
        raise ValidationError(
            "refresher_interval_years",
            f"Refresher interval cannot exceed {MAX_REFRESHER_YEARS} years.",
        )
    return years


def _clean_due_soon(value: Optional[int]) -> int:
    if value is None or value == "":
        return DEFAULT_DUE_SOON_DAYS
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        raise ValidationError("due_soon_window_days", "Due-soon window must be a whole number of days.")


def _clean_link(link: Optional[str]) -> Optional[str]:
    cleaned = (link or "").strip()
    return cleaned or None


def _course_snapshot(course: models.Course) -> dict:
    return {
        "name": course.name,
        "training_type": _type_order(course),
        "refresher_interval_years": course.refresher_interval_years,
        "due_soon_window_days": course.due_soon_window_days,
        "mandatory_everyone": bool(course.mandatory_everyone),
        "reference_link": course.reference_link,
    }


def replace_targets(
    db: Session,
    *,
    course: models.Course,
    person_ids: Sequence[str],
    actor_person_id: Optional[str] = None,
) -> List[str]:
    """Delete every target of the course, then insert one per distinct person."""
    before = list_targets(db, course.id)
    db.query(models.CourseMandateTarget).filter(
        models.CourseMandateTarget.course_id == course.id
    ).delete(synchronize_session=False)
    db.expire(course, ["targets"])

    unique_ids = sorted({pid for pid in person_ids if pid})
    for person_id in unique_ids:
        db.add(
            models.CourseMandateTarget(
                course_id=course.id,
                person_id=person_id,
                company_id=course.company_id,
            )
        )
    db.flush()

    audit_services.log_event(
        db,
        company_id=course.company_id,
        actor_person_id=actor_person_id,
        entity_type="training_course",
        entity_id=course.id,
        action="targets_replace",
        before={"person_ids": before},
        after={"person_ids": unique_ids},
        metadata={"module": "training"},
    )
    return unique_ids


def _apply_audience(
    db: Session,
    *,
    course: models.Course,
    audience: models.CourseAudience,
    target_person_ids: Sequence[str],
    actor_person_id: Optional[str],
) -> None:
    course.mandatory_everyone = audience == models.CourseAudience.EVERYONE
    db.flush()
    people = list(target_person_ids) if audience == models.CourseAudience.PEOPLE else []
    replace_targets(db, course=course, person_ids=people, actor_person_id=actor_person_id)


def create_course(
    db: Session,
    *,
    company_id: str,
    name: str,
    training_type: object = models.TrainingType.OTHER,
    refresher_interval_years: Optional[int] = None,
    due_soon_window_days: Optional[int] = None,
    audience: models.CourseAudience = models.CourseAudience.NONE,
    target_person_ids: Sequence[str] = (),
    reference_link: Optional[str] = None,
    actor_person_id: Optional[str] = None,
) -> models.Course:
    if not company_id:
        raise ValidationError("company_id", "Could not determine the company for this course.")

    course = models.Course(
        company_id=company_id,
        name=_clean_name(name),
        training_type=models.TrainingType.parse(training_type),
        refresher_interval_years=_clean_refresher(refresher_interval_years),
        due_soon_window_days=_clean_due_soon(due_soon_window_days),
        mandatory_everyone=False,
        reference_link=_clean_link(reference_link),
        created_by_person_id=actor_person_id,
    )
    db.add(course)
    db.flush()

    _apply_audience(
        db,
        course=course,
        audience=models.CourseAudience(audience),
        target_person_ids=target_person_ids,
        actor_person_id=actor_person_id,
    )

    audit_services.log_event(
        db,
        company_id=company_id,
        actor_person_id=actor_person_id,
        entity_type="training_course",
        entity_id=course.id,
        action="course_create",
        after=_course_snapshot(course),
        metadata={"module": "training"},
    )
    return course


def update_course(
    db: Session,
    *,
    course: models.Course,
    name: str,
    training_type: object = models.TrainingType.OTHER,
    refresher_interval_years: Optional[int] = None,
    due_soon_window_days: Optional[int] = None,
    audience: models.CourseAudience = models.CourseAudience.NONE,
    target_person_ids: Sequence[str] = (),
    reference_link: Optional[str] = None,
    actor_person_id: Optional[str] = None,
) -> models.Course:
    before = _course_snapshot(course)

    course.name = _clean_name(name)
    course.training_type = models.TrainingType.parse(training_type)
    course.refresher_interval_years = _clean_refresher(refresher_interval_years)
    course.due_soon_window_days = _clean_due_soon(due_soon_window_days)
    course.reference_link = _clean_link(reference_link)
    db.add(course)

    _apply_audience(
        db,
        course=course,
        audience=models.CourseAudience(audience),
        target_person_ids=target_person_ids,
        actor_person_id=actor_person_id,
    )

    audit_services.log_event(
        db,
        company_id=course.company_id,
        actor_person_id=actor_person_id,
        entity_type="training_course",
        entity_id=course.id,
        action="course_update",
        before=before,
        after=_course_snapshot(course),
        metadata={"module": "training"},
    )
    return course


def delete_course(
    db: Session,
    *,
    course: models.Course,
    actor_person_id: Optional[str] = None,
) -> None:
    """Remove a course together with its targets and completion records."""
    company_id = course.company_id
    course_id = course.id
    snapshot = _course_snapshot(course)

    db.query(models.CourseMandateTarget).filter(
        models.CourseMandateTarget.course_id == course_id
    ).delete(synchronize_session=False)
    db.query(models.CompletionRecord).filter(
        models.CompletionRecord.course_id == course_id
    ).delete(synchronize_session=False)
    db.expire(course)
    db.delete(course)
    db.flush()

    audit_services.log_event(
        db,
        company_id=company_id,
        actor_person_id=actor_person_id,
        entity_type="training_course",
        entity_id=course_id,
        action="course_delete",
        before=snapshot,
        metadata={"module": "training"},
    )
