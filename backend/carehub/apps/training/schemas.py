# backend/carehub/apps/training/schemas.py

from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .models import (
    MAX_REFRESHER_YEARS,
    CourseAudience,
    MandateLabel,
    PendingState,
    RecordStatus,
    TrainingType,
)


# ---------------------------------------------------------------------------
# COURSES
# ---------------------------------------------------------------------------


class CourseBase(BaseModel):
    name: str = Field(..., description="Course name; surrounding whitespace is trimmed.")
    training_type: TrainingType = TrainingType.OTHER
    refresher_interval_years: Optional[int] = Field(
        None,
        le=MAX_REFRESHER_YEARS,
        description="Calendar years until the course must be refreshed; empty means it never expires.",
    )
    due_soon_window_days: Optional[int] = Field(
        None,
        description="Days before the refresher deadline that count as due soon. Defaults to 60.",
    )
    reference_link: Optional[str] = None

    @field_validator("training_type", mode="before")
    @classmethod
    def _normalise_type(cls, value):
        return TrainingType.parse(value)

    @field_validator("refresher_interval_years", "due_soon_window_days", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class CourseWrite(CourseBase):
    audience: CourseAudience = CourseAudience.NONE
    target_person_ids: List[str] = Field(
        default_factory=list,
        description="People the course is mandatory for when audience is PEOPLE.",
    )


class CourseRead(BaseModel):
    id: str
    company_id: str
    name: str
    training_type: TrainingType
    refresher_interval_years: Optional[int] = None
    due_soon_window_days: int
    mandatory_everyone: bool
    reference_link: Optional[str] = None
    mandate_label: MandateLabel = MandateLabel.NO

    class Config:
        from_attributes = True


class CourseTargetsRead(BaseModel):
    course_id: str
    audience: CourseAudience
    person_ids: List[str]


# ---------------------------------------------------------------------------
# RECORDS
# ---------------------------------------------------------------------------


class RecordSubmit(BaseModel):
    course_id: str
    date_completed: date
    certificate_ref: Optional[str] = Field(
        None,
        description="Opaque reference returned by the certificate store.",
    )


class RecordUpdate(BaseModel):
    date_completed: Optional[date] = None
    certificate_ref: Optional[str] = None


class CompletionRecordRead(BaseModel):
    id: str
    person_id: str
    course_id: str
    company_id: str
    date_completed: Optional[date] = None
    certificate_ref: Optional[str] = None
    due_by: Optional[date] = None

    class Config:
        from_attributes = True


class DecoratedRecordRead(BaseModel):
    id: str
    person_id: str
    course_id: str
    course_name: str
    training_type: TrainingType
    refresher_interval_years: Optional[int] = None
    mandate_label: MandateLabel
    date_completed: Optional[date] = None
    next_due_date: Optional[date] = None
    status: Optional[RecordStatus] = None
    pending_state: Optional[PendingState] = None
    certificate_ref: Optional[str] = None
    due_by: Optional[date] = None
    reference_link: Optional[str] = None
    person_name: Optional[str] = None
    home_id: Optional[str] = None
    home_label: Optional[str] = None
    is_bank: bool = False

    class Config:
        from_attributes = True


class StatusSummaryRead(BaseModel):
    total: int = 0
    up_to_date: int = 0
    due_soon: int = 0
    overdue: int = 0

    class Config:
        from_attributes = True


class MyTrainingRead(BaseModel):
    person_id: str
    company_id: Optional[str] = None
    records: List[DecoratedRecordRead] = Field(default_factory=list)
    summary: StatusSummaryRead
    mandatory_total: int = 0
    mandatory_completed: int = 0
    available_courses: List[CourseRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


class TeamRecordsRead(BaseModel):
    records: List[DecoratedRecordRead] = Field(default_factory=list)
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# ROSTER + COMPLIANCE
# ---------------------------------------------------------------------------


class RosterPersonRead(BaseModel):
    id: str
    name: str
    home_id: Optional[str] = None
    home_label: Optional[str] = None
    is_bank: bool = False
    is_manager: bool = False

    class Config:
        from_attributes = True


class HomeOption(BaseModel):
    id: str
    name: str


class RosterRead(BaseModel):
    company_id: Optional[str] = None
    homes: List[HomeOption] = Field(default_factory=list)
    people: List[RosterPersonRead] = Field(default_factory=list)
    error: Optional[str] = None


class NonCompliantRead(BaseModel):
    person: RosterPersonRead
    missing_course_names: List[str]


class HomeBucketRead(BaseModel):
    id: str
    name: str
    compliant: int
    total: int
    rate: int

    class Config:
        from_attributes = True


class MissingCourseCount(BaseModel):
    name: str
    count: int


class CourseStatusCountsRead(BaseModel):
    up_to_date: int = 0
    due_soon: int = 0
    overdue: int = 0
    missing: int = 0

    class Config:
        from_attributes = True


class ComplianceRead(BaseModel):
    mode: str
    course_id: Optional[str] = None
    total: int = 0
    compliant_count: int = 0
    non_compliant_count: int = 0
    rate: int = Field(0, description="Whole percent of people in scope that are compliant.")
    non_compliant: List[NonCompliantRead] = Field(default_factory=list)
    by_home: List[HomeBucketRead] = Field(default_factory=list)
    top_missing: List[MissingCourseCount] = Field(default_factory=list)
    course_counts: Optional[CourseStatusCountsRead] = None
    errors: Dict[str, str] = Field(
        default_factory=dict,
        description="Sections that failed to load, keyed by section name.",
    )


# ---------------------------------------------------------------------------
# ASSIGNMENTS
# ---------------------------------------------------------------------------


class AssignmentCreate(BaseModel):
    course_id: Optional[str] = None
    due_by: Optional[date] = None
    by: str = Field("PEOPLE", description="HOMES or PEOPLE.")
    home_ids: List[str] = Field(default_factory=list)
    person_ids: List[str] = Field(default_factory=list)
    include_managers: bool = False
    resolution: Optional[str] = Field(
        None,
        description="SKIP_EXISTING or CHANGE_DUE_DATE once a conflict has been reported.",
    )


class RecipientFailureRead(BaseModel):
    person_id: str
    message: str
    retryable: bool = False

    class Config:
        from_attributes = True


class AssignmentResultRead(BaseModel):
    course_id: str
    due_by: date
    created: List[str] = Field(default_factory=list)
    updated: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    failed: List[RecipientFailureRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


class AssignmentConflictRead(BaseModel):
    fresh: List[str]
    conflicting: List[str]
    conflicting_names: List[str] = Field(default_factory=list)
