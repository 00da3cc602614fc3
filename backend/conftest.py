from __future__ import annotations

import os
import sys
from datetime import date
from pathlib import Path
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"

from carehub.database import Base  # noqa: E402
from carehub.apps.accounts import models as account_models  # noqa: E402
from carehub.apps.audit import models as audit_models  # noqa: E402
from carehub.apps.training import models as training_models  # noqa: E402


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(
        bind=engine,
        tables=[
            account_models.Company.__table__,
            account_models.Home.__table__,
            account_models.Person.__table__,
            account_models.CompanyMembership.__table__,
            account_models.HomeMembership.__table__,
            account_models.BankMembership.__table__,
            audit_models.AuditEvent.__table__,
            training_models.Course.__table__,
            training_models.CourseMandateTarget.__table__,
            training_models.CompletionRecord.__table__,
        ],
    )
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


class OrgBuilder:
    """Small factory for companies, homes, people, memberships and courses."""

    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _add(self, obj):
        self.db.add(obj)
        self.db.flush()
        return obj

    def company(self, name: str = "Acme Care") -> account_models.Company:
        return self._add(account_models.Company(name=name))

    def home(self, company: account_models.Company, name: str) -> account_models.Home:
        return self._add(account_models.Home(company_id=company.id, name=name))

    def person(
        self,
        name: Optional[str] = None,
        *,
        platform_admin: bool = False,
        active: bool = True,
    ) -> account_models.Person:
        self._seq += 1
        return self._add(
            account_models.Person(
                email=f"person{self._seq}@example.com",
                full_name=name,
                is_active=active,
                is_platform_admin=platform_admin,
            )
        )

    def staff(self, home: account_models.Home, name: Optional[str] = None, person=None) -> account_models.Person:
        person = person or self.person(name)
        self._add(
            account_models.HomeMembership(
                home_id=home.id,
                person_id=person.id,
                role=account_models.HomeRole.STAFF,
            )
        )
        return person

    def manager(
        self,
        home: account_models.Home,
        name: Optional[str] = None,
        *,
        subrole: Optional[account_models.ManagerSubrole] = account_models.ManagerSubrole.MANAGER,
        person=None,
    ) -> account_models.Person:
        person = person or self.person(name)
        self._add(
            account_models.HomeMembership(
                home_id=home.id,
                person_id=person.id,
                role=account_models.HomeRole.MANAGER,
                manager_subrole=subrole,
            )
        )
        return person

    def bank(self, company: account_models.Company, name: Optional[str] = None, person=None) -> account_models.Person:
        person = person or self.person(name)
        self._add(account_models.BankMembership(company_id=company.id, person_id=person.id))
        return person

    def company_admin(self, company: account_models.Company, name: Optional[str] = None) -> account_models.Person:
        person = self.person(name)
        self._add(account_models.CompanyMembership(company_id=company.id, person_id=person.id))
        return person

    def course(
        self,
        company: account_models.Company,
        name: str,
        *,
        refresher: Optional[int] = None,
        due_soon: int = 60,
        everyone: bool = False,
        training_type: training_models.TrainingType = training_models.TrainingType.CLASSROOM,
    ) -> training_models.Course:
        return self._add(
            training_models.Course(
                company_id=company.id,
                name=name,
                training_type=training_type,
                refresher_interval_years=refresher,
                due_soon_window_days=due_soon,
                mandatory_everyone=everyone,
            )
        )

    def target(self, course: training_models.Course, person: account_models.Person) -> training_models.CourseMandateTarget:
        return self._add(
            training_models.CourseMandateTarget(
                course_id=course.id,
                person_id=person.id,
                company_id=course.company_id,
            )
        )

    def record(
        self,
        person: account_models.Person,
        course: training_models.Course,
        date_completed: Optional[date],
        *,
        due_by: Optional[date] = None,
        certificate_ref: Optional[str] = None,
    ) -> training_models.CompletionRecord:
        return self._add(
            training_models.CompletionRecord(
                person_id=person.id,
                course_id=course.id,
                company_id=course.company_id,
                date_completed=date_completed,
                due_by=due_by,
                certificate_ref=certificate_ref,
            )
        )


@pytest.fixture()
def org(db_session):
    return OrgBuilder(db_session)
