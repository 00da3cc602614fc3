"""
Roster Resolver.

Turns a scope (a company, a manager's homes, or a single person) into the
canonical, de-duplicated list of people with their home affiliation or bank
status. A failed lookup yields an empty roster carrying the error; a
partially built roster is never returned.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from carehub.apps.accounts import models as account_models
from carehub.apps.accounts import services as account_services
from carehub.identifiers import short_id

from .errors import ScopeResolutionError

logger = logging.getLogger(__name__)

BANK = "BANK"
BANK_LABEL = "Bank staff"


class RosterContext(str, enum.Enum):
    READ = "READ"
    WRITE = "WRITE"


# ---------------------------------------------------------------------------
# Scopes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompanyScope:
    company_id: str


@dataclass(frozen=True)
class ManagerScope:
    manager_id: str
    # None: look up the homes the manager manages.
    managed_home_ids: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class SelfScope:
    person_id: str


RosterScope = Union[CompanyScope, ManagerScope, SelfScope]


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class RosterPerson:
    id: str
    name: str
    home_id: Optional[str] = None
    home_name: Optional[str] = None
    is_bank: bool = False
    # home id -> sub-role for every in-scope home this person manages
    managed_homes: Dict[str, Optional[account_models.ManagerSubrole]] = field(default_factory=dict)

    @property
    def home_label(self) -> Optional[str]:
        if self.home_id:
            return self.home_name
        return BANK_LABEL if self.is_bank else None

    @property
    def bucket(self) -> str:
        """Home id for grouping, with bank and unaffiliated people under BANK."""
        if self.is_bank:
            return BANK
        return self.home_id or BANK

    @property
    def is_manager(self) -> bool:
        return bool(self.managed_homes)


@dataclass
class Roster:
    people: List[RosterPerson] = field(default_factory=list)
    homes: Dict[str, str] = field(default_factory=dict)
    company_id: Optional[str] = None
    error: Optional[ScopeResolutionError] = None

    @property
    def ids(self) -> List[str]:
        return [p.id for p in self.people]

    def get(self, person_id: str) -> Optional[RosterPerson]:
        for person in self.people:
            if person.id == person_id:
                return person
        return None

    def name_for(self, person_id: str) -> str:
        person = self.get(person_id)
        return person.name if person else short_id(person_id)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def _membership_rows(db: Session, home_ids: Sequence[str]) -> List[account_models.HomeMembership]:
    if not home_ids:
        return []
    return (
        db.query(account_models.HomeMembership)
        .filter(account_models.HomeMembership.home_id.in_(list(home_ids)))
        .order_by(account_models.HomeMembership.created_at.asc(), account_models.HomeMembership.id.asc())
        .all()
    )


def _bank_person_ids(db: Session, company_id: str) -> List[str]:
    rows = (
        db.query(account_models.BankMembership.person_id)
        .filter(account_models.BankMembership.company_id == company_id)
        .order_by(account_models.BankMembership.created_at.asc())
        .all()
    )
    return [person_id for (person_id,) in rows]


def _assemble(
    db: Session,
    *,
    homes: Dict[str, str],
    memberships: Iterable[account_models.HomeMembership],
    bank_ids: Iterable[str] = (),
) -> List[RosterPerson]:
    """
    Merge home staff, bank staff and every home manager into one list.

    A person's home is their first staff home, else their first managed
    home. Bank applies only to people with no home in scope.
    """
    staff_home: Dict[str, str] = {}
    managed: Dict[str, Dict[str, Optional[account_models.ManagerSubrole]]] = {}
    order: List[str] = []

    for membership in memberships:
        person_id = membership.person_id
        if person_id not in staff_home and person_id not in managed:
            order.append(person_id)
        if membership.role == account_models.HomeRole.MANAGER:
            managed.setdefault(person_id, {})[membership.home_id] = membership.manager_subrole
        else:
            staff_home.setdefault(person_id, membership.home_id)

    bank = []
    for person_id in bank_ids:
        if person_id in staff_home or person_id in managed or person_id in bank:
            continue
        bank.append(person_id)

    all_ids = order + bank
    names = account_services.lookup_names(db, all_ids)

    people: List[RosterPerson] = []
    for person_id in all_ids:
        managed_homes = managed.get(person_id, {})
        home_id = staff_home.get(person_id) or next(iter(managed_homes), None)
        people.append(
            RosterPerson(
                id=person_id,
                name=names.get(person_id) or short_id(person_id),
                home_id=home_id,
                home_name=homes.get(home_id) if home_id else None,
                is_bank=home_id is None and person_id in bank,
                managed_homes=dict(managed_homes),
            )
        )
    people.sort(key=lambda p: (p.name.lower(), p.id))
    return people


def _company_roster(db: Session, scope: CompanyScope) -> Roster:
    homes = {h.id: h.name for h in account_services.list_homes(db, scope.company_id)}
    people = _assemble(
        db,
        homes=homes,
        memberships=_membership_rows(db, list(homes)),
        bank_ids=_bank_person_ids(db, scope.company_id),
    )
    return Roster(people=people, homes=homes, company_id=scope.company_id)


def _manager_roster(db: Session, scope: ManagerScope, context: RosterContext) -> Roster:
    if scope.managed_home_ids is None:
        home_ids = account_services.managed_home_ids(db, scope.manager_id)
    else:
        home_ids = sorted(set(scope.managed_home_ids))

    home_rows = account_services.get_homes(db, home_ids)
    homes = {h.id: h.name for h in home_rows}
    company_id = home_rows[0].company_id if home_rows else account_services.company_id_for_person(db, scope.manager_id)

    people = _assemble(db, homes=homes, memberships=_membership_rows(db, list(homes)))
    if context == RosterContext.WRITE:
        people = [p for p in people if p.id != scope.manager_id]
    return Roster(people=people, homes=homes, company_id=company_id)


def _self_roster(db: Session, scope: SelfScope) -> Roster:
    company_id = account_services.company_id_for_person(db, scope.person_id)
    memberships = (
        db.query(account_models.HomeMembership)
        .filter(account_models.HomeMembership.person_id == scope.person_id)
        .order_by(account_models.HomeMembership.created_at.asc())
        .all()
    )
    homes = {m.home_id: m.home.name for m in memberships if m.home is not None}
    bank_ids = _bank_person_ids(db, company_id) if company_id else []
    people = _assemble(
        db,
        homes=homes,
        memberships=memberships,
        bank_ids=[pid for pid in bank_ids if pid == scope.person_id],
    )
    if not people:
        names = account_services.lookup_names(db, [scope.person_id])
        people = [RosterPerson(id=scope.person_id, name=names.get(scope.person_id) or short_id(scope.person_id))]
    return Roster(people=people, homes=homes, company_id=company_id)


def resolve_roster(
    db: Session,
    scope: RosterScope,
    *,
    context: RosterContext = RosterContext.READ,
) -> Roster:
    """
    Resolve the people in scope.

    In WRITE context a manager scope leaves the manager out, so managers
    cannot target themselves; READ context keeps them in.
    """
    try:
        if isinstance(scope, CompanyScope):
            return _company_roster(db, scope)
        if isinstance(scope, ManagerScope):
            return _manager_roster(db, scope, context)
        if isinstance(scope, SelfScope):
            return _self_roster(db, scope)
    except SQLAlchemyError:
        logger.warning(
            "Roster lookup failed; returning an empty roster",
            exc_info=True,
            extra={"scope": type(scope).__name__},
        )
        return Roster(error=ScopeResolutionError())
    raise TypeError(f"Unsupported roster scope: {scope!r}")


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


def matches_home(person: RosterPerson, home: Optional[str]) -> bool:
    if not home:
        return True
    if home == BANK:
        return person.is_bank
    return person.home_id == home


def filter_people(
    people: Iterable[RosterPerson],
    *,
    home: Optional[str] = None,
    search: Optional[str] = None,
) -> List[RosterPerson]:
    """Home filter (id or BANK) plus case-insensitive name search."""
    needle = (search or "").strip().lower()
    return [
        p
        for p in people
        if matches_home(p, home) and (not needle or needle in p.name.lower())
    ]
