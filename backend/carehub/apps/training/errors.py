"""
Typed failures raised by the training services.

The router turns these into HTTP responses; read paths catch
ScopeResolutionError at their boundary and report it per section instead.
"""

from __future__ import annotations

from typing import List, Optional, Sequence


class TrainingError(Exception):
    """Base class for every training failure surfaced to callers."""


class ScopeResolutionError(TrainingError):
    """Roster, company or home lookups failed."""

    def __init__(self, message: str = "Could not resolve the people in scope."):
        super().__init__(message)
        self.message = message


class ValidationError(TrainingError):
    """Missing or invalid write input, raised before anything is persisted."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class ConflictError(TrainingError):
    """
    Some assignment recipients already hold a completion of the course.

    Nothing has been written; the caller decides whether to skip the
    conflicting recipients or change their due date.
    """

    def __init__(self, fresh: Sequence[str], conflicting: Sequence[str]):
        super().__init__(
            f"{len(conflicting)} recipient(s) already hold this course."
        )
        self.fresh: List[str] = list(fresh)
        self.conflicting: List[str] = list(conflicting)


class UniqueConstraintViolation(TrainingError):
    """A concurrent writer created the (person, course) row first."""

    retryable = True

    def __init__(self, person_id: str, course_id: str):
        super().__init__(
            f"A record for person {person_id} and course {course_id} was written concurrently."
        )
        self.person_id = person_id
        self.course_id = course_id


class StaleRecordError(TrainingError):
    """The pending row a write targeted was completed by another writer."""

    retryable = True

    def __init__(self, person_id: str, course_id: str):
        super().__init__(
            f"The pending record for person {person_id} and course {course_id} was completed concurrently."
        )
        self.person_id = person_id
        self.course_id = course_id


class NotFoundError(TrainingError):
    def __init__(self, entity: str, entity_id: Optional[str]):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id
