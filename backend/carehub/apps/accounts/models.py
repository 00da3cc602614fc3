# backend/carehub/apps/accounts/models.py

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from carehub.database import Base
from carehub.identifiers import generate_uuid7


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class EffectiveLevel(str, enum.Enum):
    """Authorisation levels, highest first.

    The level only decides which roster scope a caller may read or write;
    it is resolved from memberships, never stored on the person.
    """

    PLATFORM_ADMIN = "PLATFORM_ADMIN"
    COMPANY_ADMIN = "COMPANY_ADMIN"
    HOME_MANAGER = "HOME_MANAGER"
    STAFF = "STAFF"


class HomeRole(str, enum.Enum):
    STAFF = "STAFF"
    MANAGER = "MANAGER"


class ManagerSubrole(str, enum.Enum):
    """Position held by a MANAGER home membership.

    Legacy rows have no sub-role and are treated like MANAGER.
    """

    MANAGER = "MANAGER"
    DEPUTY = "DEPUTY"


# ---------------------------------------------------------------------------
# COMPANY + HOME
# ---------------------------------------------------------------------------


class Company(Base):
    """
    Care provider. Owns homes, bank staff and its training catalogue.
    """

    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    name = Column(String(255), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    homes = relationship("Home", back_populates="company", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Company {self.name} ({self.id})>"


class Home(Base):
    __tablename__ = "homes"
    __table_args__ = (
        Index("idx_homes_company_name", "company_id", "name"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    company = relationship("Company", back_populates="homes", lazy="joined")
    memberships = relationship(
        "HomeMembership",
        back_populates="home",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Home {self.name} company={self.company_id}>"


# ---------------------------------------------------------------------------
# PEOPLE (PROFILE DIRECTORY)
# ---------------------------------------------------------------------------


class Person(Base):
    """
    A signed-in individual: staff, bank staff, manager or administrator.

    full_name may be empty for accounts that never completed their profile;
    display code falls back to a truncated id.
    """

    __tablename__ = "people"
    __table_args__ = (
        UniqueConstraint("email", name="uq_people_email"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(255), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    is_platform_admin = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    home_memberships = relationship("HomeMembership", back_populates="person", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Person {self.id} {self.full_name!r}>"


# ---------------------------------------------------------------------------
# MEMBERSHIPS
# ---------------------------------------------------------------------------


class CompanyMembership(Base):
    """Company-level administrators."""

    __tablename__ = "company_memberships"
    __table_args__ = (
        UniqueConstraint("company_id", "person_id", name="uq_company_memberships_company_person"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    person_id = Column(
        String(36),
        ForeignKey("people.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class HomeMembership(Base):
    __tablename__ = "home_memberships"
    __table_args__ = (
        UniqueConstraint("home_id", "person_id", "role", name="uq_home_memberships_home_person_role"),
        Index("idx_home_memberships_home_role", "home_id", "role"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    home_id = Column(
        String(36),
        ForeignKey("homes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    person_id = Column(
        String(36),
        ForeignKey("people.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = Column(
        Enum(HomeRole, name="home_role_enum"),
        nullable=False,
        default=HomeRole.STAFF,
    )
    manager_subrole = Column(
        Enum(ManagerSubrole, name="manager_subrole_enum"),
        nullable=True,
        doc="Only meaningful when role=MANAGER.",
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    home = relationship("Home", back_populates="memberships", lazy="joined")
    person = relationship("Person", back_populates="home_memberships", lazy="joined")

    def __repr__(self) -> str:
        return f"<HomeMembership home={self.home_id} person={self.person_id} role={self.role}>"


class BankMembership(Base):
    """Floating staff attached to a company rather than a home."""

    __tablename__ = "bank_memberships"
    __table_args__ = (
        UniqueConstraint("company_id", "person_id", name="uq_bank_memberships_company_person"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    company_id = Column(
        String(36),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    person_id = Column(
        String(36),
        ForeignKey("people.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
