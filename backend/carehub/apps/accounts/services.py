"""
Directory services consumed by the training compliance engine.

These are deliberately thin lookups (companies, homes, profile names,
memberships). Authorisation decisions are not made here; the caller's
effective level is only used to pick a roster scope.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from . import models


# ---------------------------------------------------------------------------
# Companies / homes
# ---------------------------------------------------------------------------


def list_companies(db: Session) -> List[models.Company]:
    return db.query(models.Company).order_by(models.Company.name.asc()).all()


def get_company(db: Session, company_id: str) -> Optional[models.Company]:
    return db.query(models.Company).filter(models.Company.id == company_id).first()


def list_homes(db: Session, company_id: str) -> List[models.Home]:
    return (
        db.query(models.Home)
        .filter(models.Home.company_id == company_id)
        .order_by(models.Home.name.asc())
        .all()
    )


def get_homes(db: Session, home_ids: Iterable[str]) -> List[models.Home]:
    ids = list(home_ids)
    if not ids:
        return []
    return (
        db.query(models.Home)
        .filter(models.Home.id.in_(ids))
        .order_by(models.Home.name.asc())
        .all()
    )


# ---------------------------------------------------------------------------
# People / profiles
# ---------------------------------------------------------------------------


def get_person(db: Session, person_id: str) -> Optional[models.Person]:
    if not person_id:
        return None
    return db.query(models.Person).filter(models.Person.id == str(person_id).strip()).first()


def lookup_names(db: Session, person_ids: Iterable[str]) -> Dict[str, str]:
    """
    Map person id -> display name.

    People without a profile name are simply absent from the result;
    callers fall back to a truncated id.
    """
    ids = sorted({pid for pid in person_ids if pid})
    if not ids:
        return {}

    rows = (
        db.query(models.Person.id, models.Person.full_name)
        .filter(models.Person.id.in_(ids))
        .all()
    )
    names: Dict[str, str] = {}
    for person_id, full_name in rows:
        cleaned = (full_name or "").strip()
        if cleaned:
            names[person_id] = cleaned
    return names


# ---------------------------------------------------------------------------
# Memberships
# ---------------------------------------------------------------------------


def managed_home_ids(db: Session, person_id: str) -> List[str]:
    rows = (
        db.query(models.HomeMembership.home_id)
        .filter(
            models.HomeMembership.person_id == person_id,
            models.HomeMembership.role == models.HomeRole.MANAGER,
        )
        .all()
    )
    return sorted({home_id for (home_id,) in rows})


def company_id_for_person(db: Session, person_id: str) -> Optional[str]:
    """
    Resolve the company a person belongs to.

    Order: company admin membership, then any home membership, then bank.
    """
    company_row = (
        db.query(models.CompanyMembership.company_id)
        .filter(models.CompanyMembership.person_id == person_id)
        .order_by(models.CompanyMembership.created_at.asc())
        .first()
    )
    if company_row:
        return company_row[0]

    home_row = (
        db.query(models.Home.company_id)
        .join(models.HomeMembership, models.HomeMembership.home_id == models.Home.id)
        .filter(models.HomeMembership.person_id == person_id)
        .order_by(models.HomeMembership.created_at.asc())
        .first()
    )
    if home_row:
        return home_row[0]

    bank_row = (
        db.query(models.BankMembership.company_id)
        .filter(models.BankMembership.person_id == person_id)
        .order_by(models.BankMembership.created_at.asc())
        .first()
    )
    if bank_row:
        return bank_row[0]
    return None


def resolve_effective_level(db: Session, person: models.Person) -> models.EffectiveLevel:
    if getattr(person, "is_platform_admin", False):
        return models.EffectiveLevel.PLATFORM_ADMIN

    is_company_admin = (
        db.query(models.CompanyMembership.id)
        .filter(models.CompanyMembership.person_id == person.id)
        .first()
    )
    if is_company_admin:
        return models.EffectiveLevel.COMPANY_ADMIN

    if managed_home_ids(db, person.id):
        return models.EffectiveLevel.HOME_MANAGER

    return models.EffectiveLevel.STAFF
