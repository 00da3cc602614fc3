"""
Mandate Resolver.

required(P) = {courses flagged mandatory_everyone} | {courses targeting P}

Pending assignments never make a course required. Computed per person on
every call; nothing is cached across people or requests.
"""

from __future__ import annotations

from typing import Dict, Iterable, Set

from sqlalchemy.orm import Session

from . import models


def everyone_course_ids(db: Session, company_id: str) -> Set[str]:
    rows = (
        db.query(models.Course.id)
        .filter(
            models.Course.company_id == company_id,
            models.Course.mandatory_everyone.is_(True),
        )
        .all()
    )
    return {course_id for (course_id,) in rows}


def targets_by_person(
    db: Session,
    company_id: str,
    person_ids: Iterable[str],
) -> Dict[str, Set[str]]:
    ids = sorted({pid for pid in person_ids if pid})
    if not ids:
        return {}
    rows = (
        db.query(models.CourseMandateTarget.person_id, models.CourseMandateTarget.course_id)
        .join(models.Course, models.Course.id == models.CourseMandateTarget.course_id)
        .filter(
            models.Course.company_id == company_id,
            models.CourseMandateTarget.person_id.in_(ids),
        )
        .all()
    )
    result: Dict[str, Set[str]] = {}
    for person_id, course_id in rows:
        result.setdefault(person_id, set()).add(course_id)
    return result


def required_course_ids(db: Session, person_id: str, company_id: str) -> Set[str]:
    required = set(everyone_course_ids(db, company_id))
    required |= targets_by_person(db, company_id, [person_id]).get(person_id, set())
    return required


def required_by_person(
    db: Session,
    company_id: str,
    person_ids: Iterable[str],
) -> Dict[str, Set[str]]:
    """Required course ids for each person, one query per source."""
    ids = [pid for pid in dict.fromkeys(person_ids) if pid]
    everyone = everyone_course_ids(db, company_id)
    targets = targets_by_person(db, company_id, ids)
    return {pid: everyone | targets.get(pid, set()) for pid in ids}
