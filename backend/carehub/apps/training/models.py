# backend/carehub/apps/training/models.py

from __future__ import annotations

import enum
import logging
import re
from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from carehub.database import Base
from carehub.identifiers import generate_uuid7

logger = logging.getLogger(__name__)

# Longest refresher cycle a course may declare.
MAX_REFRESHER_YEARS = 100


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class TrainingType(str, enum.Enum):
    CLASSROOM = "CLASSROOM"
    E_LEARNING = "E_LEARNING"
    ASSESSED = "ASSESSED"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: Any) -> "TrainingType":
        """
        Normalise a training type from user input or legacy data.

        Known aliases map onto the closed set; anything else becomes OTHER
        and is logged so bad data can be traced back to its source.
        """
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.OTHER
        key = re.sub(r"[^a-z]", "", str(value).lower())
        if not key:
            return cls.OTHER
        found = _TRAINING_TYPE_ALIASES.get(key)
        if found is None:
            logger.warning(
                "Unknown training type coerced to OTHER",
                extra={"training_type": str(value)},
            )
            return cls.OTHER
        return found


_TRAINING_TYPE_ALIASES = {
    "classroom": TrainingType.CLASSROOM,
    "inperson": TrainingType.CLASSROOM,
    "facetoface": TrainingType.CLASSROOM,
    "elearning": TrainingType.E_LEARNING,
    "online": TrainingType.E_LEARNING,
    "tes": TrainingType.E_LEARNING,
    "assessed": TrainingType.ASSESSED,
    "assessment": TrainingType.ASSESSED,
    "other": TrainingType.OTHER,
}


class RecordStatus(str, enum.Enum):
    """Lifecycle status of a completed record against its refresher cycle."""

    UP_TO_DATE = "UP_TO_DATE"
    DUE_SOON = "DUE_SOON"
    OVERDUE = "OVERDUE"


class PendingState(str, enum.Enum):
    """Presentation of a pending (assigned, not yet completed) record."""

    AWAITING = "AWAITING"
    PAST_DUE = "PAST_DUE"


class MandateLabel(str, enum.Enum):
    YES = "YES"
    CONDITIONAL = "CONDITIONAL"
    NO = "NO"


class CourseAudience(str, enum.Enum):
    EVERYONE = "EVERYONE"
    PEOPLE = "PEOPLE"
    NONE = "NONE"


# ---------------------------------------------------------------------------
# COURSES
# ---------------------------------------------------------------------------


class Course(Base):
    """
    A training course owned by a company.

    - refresher_interval_years NULL: a completion never expires.
    - due_soon_window_days: days before the refresher deadline during which
      a completion reports DUE_SOON.
    - mandatory_everyone: required for every person in the company.
    """

    __tablename__ = "training_courses"
    __table_args__ = (
        Index("idx_training_courses_company_name", "company_id", "name"),
        CheckConstraint(
            "due_soon_window_days >= 0",
            name="ck_training_courses_due_soon_nonneg",
        ),
        CheckConstraint(
            "refresher_interval_years IS NULL OR "
            "(refresher_interval_years >= 0 AND refresher_interval_years <= 100)",
            name="ck_training_courses_refresher_range",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = Column(String(255), nullable=False)
    training_type = Column(
        Enum(TrainingType, name="training_type_enum"),
        nullable=False,
        default=TrainingType.OTHER,
    )
    refresher_interval_years = Column(
        Integer,
        nullable=True,
        doc="Calendar years until a completion must be refreshed; NULL never expires.",
    )
    due_soon_window_days = Column(Integer, nullable=False, default=60)
    mandatory_everyone = Column(Boolean, nullable=False, default=False, index=True)
    reference_link = Column(String(1024), nullable=True)

    created_by_person_id = Column(
        String(36),
        ForeignKey("people.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    targets = relationship(
        "CourseMandateTarget",
        back_populates="course",
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    records = relationship(
        "CompletionRecord",
        back_populates="course",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Course {self.name!r} company={self.company_id}>"


class CourseMandateTarget(Base):
    """
    "This course is mandatory for this specific person."

    Rows are replaced wholesale whenever a course's audience is edited.
    """

    __tablename__ = "training_course_targets"
    __table_args__ = (
        UniqueConstraint("course_id", "person_id", name="uq_training_course_targets_course_person"),
        Index("idx_training_course_targets_company_person", "company_id", "person_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    course_id = Column(
        String(36),
        ForeignKey("training_courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    person_id = Column(
        String(36),
        ForeignKey("people.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    course = relationship("Course", back_populates="targets")


# ---------------------------------------------------------------------------
# COMPLETION RECORDS
# ---------------------------------------------------------------------------


class CompletionRecord(Base):
    """
    One person's standing against one course.

    date_completed NULL marks a pending assignment. Submitting a completion
    fills the date on the same row; storage allows one row per
    (person, course) so concurrent assigners cannot create duplicates.
    """

    __tablename__ = "training_completion_records"
    __table_args__ = (
        UniqueConstraint("person_id", "course_id", name="uq_training_records_person_course"),
        Index("idx_training_records_company_course", "company_id", "course_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    person_id = Column(
        String(36),
        ForeignKey("people.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id = Column(
        String(36),
        ForeignKey("training_courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    date_completed = Column(Date, nullable=True)
    certificate_ref = Column(
        String(1024),
        nullable=True,
        doc="Opaque reference into external file storage.",
    )

    # Assignment metadata; advisory only, never used for status.
    due_by = Column(Date, nullable=True)
    assigned_by_person_id = Column(
        String(36),
        ForeignKey("people.id", ondelete="SET NULL"),
        nullable=True,
    )
    assigned_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    course = relationship("Course", back_populates="records", lazy="joined")

    @property
    def is_pending(self) -> bool:
        return self.date_completed is None

    def __repr__(self) -> str:
        state = "pending" if self.is_pending else str(self.date_completed)
        return f"<CompletionRecord person={self.person_id} course={self.course_id} {state}>"
