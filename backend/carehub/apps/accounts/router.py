from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from carehub.database import get_db
from carehub.security import get_current_active_person

from . import models, schemas, services

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.get(
    "/me",
    response_model=schemas.SessionContextRead,
    summary="Current person with their effective level and company",
)
def read_session_context(
    db: Session = Depends(get_db),
    current_person: models.Person = Depends(get_current_active_person),
):
    return schemas.SessionContextRead(
        person=schemas.PersonRead.model_validate(current_person),
        effective_level=services.resolve_effective_level(db, current_person),
        company_id=services.company_id_for_person(db, current_person.id),
    )


@router.get("/companies", response_model=List[schemas.CompanyRead])
def list_companies(
    db: Session = Depends(get_db),
    current_person: models.Person = Depends(get_current_active_person),
):
    level = services.resolve_effective_level(db, current_person)
    if level == models.EffectiveLevel.PLATFORM_ADMIN:
        return services.list_companies(db)
    company_id = services.company_id_for_person(db, current_person.id)
    company = services.get_company(db, company_id) if company_id else None
    return [company] if company else []


@router.get("/companies/{company_id}/homes", response_model=List[schemas.HomeRead])
def list_homes(
    company_id: str,
    db: Session = Depends(get_db),
    current_person: models.Person = Depends(get_current_active_person),
):
    level = services.resolve_effective_level(db, current_person)
    if level != models.EffectiveLevel.PLATFORM_ADMIN and services.company_id_for_person(db, current_person.id) != company_id:
        return []
    return services.list_homes(db, company_id)
