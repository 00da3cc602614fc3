# backend/carehub/apps/training/router.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from carehub.database import get_db, get_read_db
from carehub.security import get_current_active_person, level_at_least
from carehub.apps.accounts import models as account_models
from carehub.apps.accounts import services as account_services
from carehub.apps.accounts.models import EffectiveLevel

from . import assignments, catalog, compliance, models, records, views
from . import schemas as training_schemas
from .errors import (
    ConflictError,
    NotFoundError,
    ScopeResolutionError,
    TrainingError,
    UniqueConstraintViolation,
    ValidationError,
)
from .roster import (
    CompanyScope,
    ManagerScope,
    Roster,
    RosterContext,
    RosterScope,
    SelfScope,
    resolve_roster,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/training", tags=["training"])

GENERIC_ERROR_MESSAGE = "Something went wrong, please retry."


# ---------------------------------------------------------------------------
# HELPERS
# ---------------------------------------------------------------------------


@dataclass
class CallerScope:
    person: account_models.Person
    level: EffectiveLevel
    company_id: Optional[str]
    roster_scope: RosterScope

    @property
    def is_admin(self) -> bool:
        return level_at_least(self.level, EffectiveLevel.COMPANY_ADMIN)

    @property
    def is_manager(self) -> bool:
        return self.level == EffectiveLevel.HOME_MANAGER


def _today() -> date:
    return date.today()


def _resolve_caller_scope(
    db: Session,
    person: account_models.Person,
    requested_company_id: Optional[str] = None,
) -> CallerScope:
    """
    Map the caller's effective level to a roster scope.

    - PLATFORM_ADMIN: any company (query param), defaulting to the first one
    - COMPANY_ADMIN: their own company
    - HOME_MANAGER: the homes they manage
    - STAFF: themselves
    """
    level = account_services.resolve_effective_level(db, person)

    if level == EffectiveLevel.PLATFORM_ADMIN:
        company_id = requested_company_id
        if not company_id:
            companies = account_services.list_companies(db)
            company_id = companies[0].id if companies else None
        if not company_id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No company in scope.",
            )
        return CallerScope(person, level, company_id, CompanyScope(company_id))

    company_id = account_services.company_id_for_person(db, person.id)
    if level == EffectiveLevel.COMPANY_ADMIN:
        return CallerScope(person, level, company_id, CompanyScope(company_id))
    if level == EffectiveLevel.HOME_MANAGER:
        return CallerScope(person, level, company_id, ManagerScope(person.id))
    return CallerScope(person, level, company_id, SelfScope(person.id))


def _to_http(exc: TrainingError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"field": exc.field, "message": exc.message},
        )
    if isinstance(exc, UniqueConstraintViolation):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "retryable": exc.retryable},
        )
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ScopeResolutionError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=GENERIC_ERROR_MESSAGE)


def _require_course_admin(scope: CallerScope) -> None:
    if not scope.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only company or platform administrators may manage courses.",
        )


def _load_course_in_scope(db: Session, scope: CallerScope, course_id: str) -> models.Course:
    course = catalog.get_course(db, course_id)
    if course is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    if scope.level != EffectiveLevel.PLATFORM_ADMIN and course.company_id != scope.company_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    return course


def _course_read(course: models.Course, has_targets: bool) -> training_schemas.CourseRead:
    read = training_schemas.CourseRead.model_validate(course)
    return read.model_copy(update={"mandate_label": catalog.mandate_label(course, has_targets)})


def _roster_person_read(person) -> training_schemas.RosterPersonRead:
    return training_schemas.RosterPersonRead.model_validate(person)


# ---------------------------------------------------------------------------
# COURSES
# ---------------------------------------------------------------------------


@router.get("/courses", response_model=List[training_schemas.CourseRead])
def list_courses(
    company_id: Optional[str] = Query(None, description="Platform admins only."),
    db: Session = Depends(get_read_db),
    current_person: account_models.Person = Depends(get_current_active_person),
):
    scope = _resolve_caller_scope(db, current_person, company_id)
    if not scope.company_id:
        return []
    courses = catalog.list_courses(db, scope.company_id)
    with_targets = catalog.get_courses_with_targets(db, [c.id for c in courses])
    return [_course_read(c, c.id in with_targets) for c in courses]


@router.post(
    "/courses",
    response_model=training_schemas.CourseRead,
    status_code=status.HTTP_201_CREATED,
)
def create_course(
    payload: training_schemas.CourseWrite,
    company_id: Optional[str] = Query(None, description="Platform admins only."),
    db: Session = Depends(get_db),
    current_person: account_models.Person = Depends(get_current_active_person),
):
    scope = _resolve_caller_scope(db, current_person, company_id)
    _require_course_admin(scope)
    try:
        course = catalog.create_course(
            db,
            company_id=scope.company_id,
            actor_person_id=current_person.id,
            **payload.model_dump(),
        )
    except TrainingError as exc:
        db.rollback()
        raise _to_http(exc)
    db.commit()
    db.refresh(course)
    return _course_read(course, bool(course.targets))


@router.put("/courses/{course_id}", response_model=training_schemas.CourseRead)
def update_course(
    course_id: str,
    payload: training_schemas.CourseWrite,
    company_id: Optional[str] = Query(None, description="Platform admins only."),
    db: Session = Depends(get_db),
    current_person: account_models.Person = Depends(get_current_active_person),
):
    scope = _resolve_caller_scope(db, current_person, company_id)
    _require_course_admin(scope)
    course = _load_course_in_scope(db, scope, course_id)
    try:
        catalog.update_course(
            db,
            course=course,
            actor_person_id=current_person.id,
            **payload.model_dump(),
        )
    except TrainingError as exc:
        db.rollback()
        raise _to_http(exc)
    db.commit()
    db.refresh(course)
    return _course_read(course, bool(course.targets))


@router.delete("/courses/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_course(
    course_id: str,
    company_id: Optional[str] = Query(None, description="Platform admins only."),
    db: Session = Depends(get_db),
    current_person: account_models.Person = Depends(get_current_active_person),
):
    scope = _resolve_caller_scope(db, current_person, company_id)
    _require_course_admin(scope)
    course = _load_course_in_scope(db, scope, course_id)
    catalog.delete_course(db, course=course, actor_person_id=current_person.id)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/courses/{course_id}/targets", response_model=training_schemas.CourseTargetsRead)
def get_course_targets(
    course_id: str,
    company_id: Optional[str] = Query(None, description="Platform admins only."),
    db: Session = Depends(get_read_db),
    current_person: account_models.Person = Depends(get_current_active_person),
):
    scope = _resolve_caller_scope(db, current_person, company_id)
    _require_course_admin(scope)
    course = _load_course_in_scope(db, scope, course_id)
    person_ids = catalog.list_targets(db, course.id)
    return training_schemas.CourseTargetsRead(
        course_id=course.id,
        audience=catalog.audience_for(course, bool(person_ids)),
        person_ids=person_ids,
    )


# ---------------------------------------------------------------------------
# MY TRAINING + RECORDS
# ---------------------------------------------------------------------------


@router.get("/me", response_model=training_schemas.MyTrainingRead)
def get_my_training(
    db: Session = Depends(get_read_db),
    current_person: account_models.Person = Depends(get_current_active_person),
):
    company_id = account_services.company_id_for_person(db, current_person.id)
    view = views.my_training(
        db,
        person_id=current_person.id,
        company_id=company_id,
        today=_today(),
        policy=compliance.CompliancePolicy.from_env(),
    )
    with_targets = catalog.get_courses_with_targets(db, [c.id for c in view.available_courses])
    return training_schemas.MyTrainingRead(
        person_id=view.person_id,
        company_id=view.company_id,
        records=[training_schemas.DecoratedRecordRead.model_validate(r) for r in view.records],
        summary=training_schemas.StatusSummaryRead.model_validate(view.summary),
        mandatory_total=view.mandatory_total,
        mandatory_completed=view.mandatory_completed,
        available_courses=[_course_read(c, c.id in with_targets) for c in view.available_courses],
    )


@router.post(
    "/records",
    response_model=training_schemas.CompletionRecordRead,
    status_code=status.HTTP_201_CREATED,
)
def submit_record(
    payload: training_schemas.RecordSubmit,
    db: Session = Depends(get_db),
    current_person: account_models.Person = Depends(get_current_active_person),
):
    company_id = account_services.company_id_for_person(db, current_person.id)
    course = catalog.get_course(db, payload.course_id)
    if course is None or course.company_id != company_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    try:
        record = records.submit_completion(
            db,
            person_id=current_person.id,
            course=course,
            date_completed=payload.date_completed,
            certificate_ref=payload.certificate_ref,
            today=_today(),
            actor_person_id=current_person.id,
        )
    except TrainingError as exc:
        db.rollback()
        raise _to_http(exc)
    db.commit()
    return record


def _load_manageable_record(
    db: Session,
    record_id: str,
    current_person: account_models.Person,
) -> models.CompletionRecord:
    record = records.get_record(db, record_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")
    if not records.can_manage_record(db, actor=current_person, record=record):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You cannot change this record.",
        )
    return record


@router.put("/records/{record_id}", response_model=training_schemas.CompletionRecordRead)
def update_record(
    record_id: str,
    payload: training_schemas.RecordUpdate,
    db: Session = Depends(get_db),
    current_person: account_models.Person = Depends(get_current_active_person),
):
    record = _load_manageable_record(db, record_id, current_person)
    try:
        records.edit_record(
            db,
            record=record,
            changes=payload.model_dump(exclude_unset=True),
            today=_today(),
            actor_person_id=current_person.id,
        )
    except TrainingError as exc:
        db.rollback()
        raise _to_http(exc)
    db.commit()
    return record


@router.delete("/records/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_record(
    record_id: str,
    db: Session = Depends(get_db),
    current_person: account_models.Person = Depends(get_current_active_person),
):
    record = _load_manageable_record(db, record_id, current_person)
    try:
        records.delete_record(db, record=record, actor_person_id=current_person.id)
    except TrainingError as exc:
        db.rollback()
        raise _to_http(exc)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# ROSTER + TEAM
# ---------------------------------------------------------------------------


@router.get("/roster", response_model=training_schemas.RosterRead)
def get_roster(
    company_id: Optional[str] = Query(None, description="Platform admins only."),
    db: Session = Depends(get_read_db),
    current_person: account_models.Person = Depends(get_current_active_person),
):
    scope = _resolve_caller_scope(db, current_person, company_id)
    roster = resolve_roster(db, scope.roster_scope)
    return training_schemas.RosterRead(
        company_id=roster.company_id,
        homes=[training_schemas.HomeOption(id=hid, name=name) for hid, name in roster.homes.items()],
        people=[_roster_person_read(p) for p in roster.people],
        error=roster.error.message if roster.error else None,
    )


@router.get("/team/records", response_model=training_schemas.TeamRecordsRead)
def get_team_records(
    company_id: Optional[str] = Query(None, description="Platform admins only."),
    status_filter: Optional[str] = Query(None, alias="status"),
    has_certificate: Optional[bool] = Query(None),
    mandate: Optional[str] = Query(None, description="YES, CONDITIONAL or NO."),
    home: Optional[str] = Query(None, description="Home id, or BANK for bank staff."),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_read_db),
    current_person: account_models.Person = Depends(get_current_active_person),
):
    scope = _resolve_caller_scope(db, current_person, company_id)
    roster = resolve_roster(db, scope.roster_scope)
    view = views.team_records(
        db,
        roster,
        today=_today(),
        status=status_filter,
        has_certificate=has_certificate,
        mandate=mandate,
        home=home,
        search=search,
    )
    return training_schemas.TeamRecordsRead(
        records=[training_schemas.DecoratedRecordRead.model_validate(r) for r in view.records],
        error=view.error,
    )


# ---------------------------------------------------------------------------
# COMPLIANCE
# ---------------------------------------------------------------------------


def _compliance_report(
    db: Session,
    current_person: account_models.Person,
    *,
    company_id: Optional[str],
    mode: compliance.ComplianceMode,
    course_id: Optional[str],
    home: Optional[str],
    search: Optional[str],
) -> compliance.ComplianceReport:
    scope = _resolve_caller_scope(db, current_person, company_id)
    roster = resolve_roster(db, scope.roster_scope)
    return compliance.build_report(
        db,
        roster,
        today=_today(),
        mode=mode,
        course_id=course_id,
        home=home,
        search=search,
        policy=compliance.CompliancePolicy.from_env(),
    )


@router.get("/compliance", response_model=training_schemas.ComplianceRead)
def get_compliance(
    company_id: Optional[str] = Query(None, description="Platform admins only."),
    mode: compliance.ComplianceMode = Query(compliance.ComplianceMode.MANDATORY),
    course_id: Optional[str] = Query(None, description="Required in COURSE mode."),
    home: Optional[str] = Query(None, description="Home id, or BANK for bank staff."),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_read_db),
    current_person: account_models.Person = Depends(get_current_active_person),
):
    report = _compliance_report(
        db,
        current_person,
        company_id=company_id,
        mode=mode,
        course_id=course_id,
        home=home,
        search=search,
    )
    return training_schemas.ComplianceRead(
        mode=report.mode.value,
        course_id=report.course_id,
        total=report.total,
        compliant_count=report.compliant_count,
        non_compliant_count=report.non_compliant_count,
        rate=report.rate,
        non_compliant=[
            training_schemas.NonCompliantRead(
                person=_roster_person_read(entry.person),
                missing_course_names=entry.missing_course_names,
            )
            for entry in report.result.non_compliant
        ],
        by_home=[training_schemas.HomeBucketRead.model_validate(b) for b in report.by_home],
        top_missing=[
            training_schemas.MissingCourseCount(name=name, count=count)
            for name, count in report.top_missing
        ],
        course_counts=(
            training_schemas.CourseStatusCountsRead.model_validate(report.course_counts)
            if report.course_counts is not None
            else None
        ),
        errors=report.errors,
    )


@router.get("/compliance/export.csv")
def export_compliance_csv(
    company_id: Optional[str] = Query(None, description="Platform admins only."),
    mode: compliance.ComplianceMode = Query(compliance.ComplianceMode.MANDATORY),
    course_id: Optional[str] = Query(None),
    home: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_read_db),
    current_person: account_models.Person = Depends(get_current_active_person),
):
    report = _compliance_report(
        db,
        current_person,
        company_id=company_id,
        mode=mode,
        course_id=course_id,
        home=home,
        search=search,
    )
    if "course" in report.errors:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=report.errors["course"])
    if report.errors:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=GENERIC_ERROR_MESSAGE,
        )
    content = compliance.export_csv(report.result.non_compliant, report.mode)
    filename = compliance.csv_filename(report.mode)
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ---------------------------------------------------------------------------
# ASSIGNMENTS
# ---------------------------------------------------------------------------


def _conflict_detail(exc: ConflictError, roster: Roster) -> dict:
    return {
        "message": str(exc),
        "fresh": exc.fresh,
        "conflicting": exc.conflicting,
        "conflicting_names": [roster.name_for(pid) for pid in exc.conflicting],
    }


@router.post("/assignments", response_model=training_schemas.AssignmentResultRead)
def create_assignment(
    payload: training_schemas.AssignmentCreate,
    company_id: Optional[str] = Query(None, description="Platform admins only."),
    db: Session = Depends(get_db),
    current_person: account_models.Person = Depends(get_current_active_person),
):
    scope = _resolve_caller_scope(db, current_person, company_id)
    if not level_at_least(scope.level, EffectiveLevel.HOME_MANAGER):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only managers and administrators may set training.",
        )

    roster = resolve_roster(db, scope.roster_scope, context=RosterContext.WRITE)
    if roster.error is not None:
        raise _to_http(roster.error)

    try:
        mode = assignments.RecipientMode(payload.by)
    except ValueError:
        raise _to_http(ValidationError("by", "Choose HOMES or PEOPLE."))
    try:
        resolution = (
            assignments.ConflictResolution(payload.resolution) if payload.resolution else None
        )
    except ValueError:
        raise _to_http(ValidationError("resolution", "Choose SKIP_EXISTING or CHANGE_DUE_DATE."))

    recipients = assignments.select_recipients(
        roster,
        by=mode,
        home_ids=payload.home_ids,
        person_ids=payload.person_ids,
        include_managers=payload.include_managers,
        actor_id=current_person.id if scope.is_manager else None,
    )
    try:
        result = assignments.create_assignment(
            db,
            course_id=payload.course_id,
            due_by=payload.due_by,
            recipient_ids=recipients,
            resolution=resolution,
            actor_person_id=current_person.id,
            company_id=roster.company_id,
        )
    except ConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=_conflict_detail(exc, roster))
    except TrainingError as exc:
        db.rollback()
        raise _to_http(exc)
    return result
