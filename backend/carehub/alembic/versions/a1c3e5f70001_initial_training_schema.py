"""
Initial schema: directory tables, audit trail and the training engine.

Revision ID: a1c3e5f70001
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c3e5f70001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "homes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("company_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_homes_company_name", "homes", ["company_id", "name"], unique=False)

    op.create_table(
        "people",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, index=True),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, index=True),
        sa.Column("is_platform_admin", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_people_email"),
    )

    op.create_table(
        "company_memberships",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("company_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("person_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["person_id"], ["people.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("company_id", "person_id", name="uq_company_memberships_company_person"),
    )

    op.create_table(
        "home_memberships",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("home_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("person_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("role", sa.Enum("STAFF", "MANAGER", name="home_role_enum"), nullable=False),
        sa.Column(
            "manager_subrole",
            sa.Enum("MANAGER", "DEPUTY", name="manager_subrole_enum"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["home_id"], ["homes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["person_id"], ["people.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("home_id", "person_id", "role", name="uq_home_memberships_home_person_role"),
    )
    op.create_index("idx_home_memberships_home_role", "home_memberships", ["home_id", "role"], unique=False)

    op.create_table(
        "bank_memberships",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("company_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("person_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["person_id"], ["people.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("company_id", "person_id", name="uq_bank_memberships_company_person"),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True, index=True),
        sa.Column("company_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("entity_type", sa.String(length=64), nullable=False, index=True),
        sa.Column("entity_id", sa.String(length=64), nullable=False, index=True),
        sa.Column("action", sa.String(length=64), nullable=False, index=True),
        sa.Column("actor_person_id", sa.String(length=36), nullable=True, index=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["actor_person_id"], ["people.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "ix_audit_events_company_entity",
        "audit_events",
        ["company_id", "entity_type", "entity_id"],
        unique=False,
    )
    op.create_index(
        "ix_audit_events_company_time_desc",
        "audit_events",
        ["company_id", sa.text("occurred_at DESC")],
        unique=False,
    )

    op.create_table(
        "training_courses",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("company_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "training_type",
            sa.Enum("CLASSROOM", "E_LEARNING", "ASSESSED", "OTHER", name="training_type_enum"),
            nullable=False,
        ),
        sa.Column("refresher_interval_years", sa.Integer(), nullable=True),
        sa.Column("due_soon_window_days", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("mandatory_everyone", sa.Boolean(), nullable=False, index=True),
        sa.Column("reference_link", sa.String(length=1024), nullable=True),
        sa.Column("created_by_person_id", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_person_id"], ["people.id"], ondelete="SET NULL"),
        sa.CheckConstraint("due_soon_window_days >= 0", name="ck_training_courses_due_soon_nonneg"),
        sa.CheckConstraint(
            "refresher_interval_years IS NULL OR "
            "(refresher_interval_years >= 0 AND refresher_interval_years <= 100)",
            name="ck_training_courses_refresher_range",
        ),
    )
    op.create_index(
        "idx_training_courses_company_name",
        "training_courses",
        ["company_id", "name"],
        unique=False,
    )

    op.create_table(
        "training_course_targets",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("course_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("person_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("company_id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["course_id"], ["training_courses.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["person_id"], ["people.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("course_id", "person_id", name="uq_training_course_targets_course_person"),
    )
    op.create_index(
        "idx_training_course_targets_company_person",
        "training_course_targets",
        ["company_id", "person_id"],
        unique=False,
    )

    op.create_table(
        "training_completion_records",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("person_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("course_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("company_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("date_completed", sa.Date(), nullable=True),
        sa.Column("certificate_ref", sa.String(length=1024), nullable=True),
        sa.Column("due_by", sa.Date(), nullable=True),
        sa.Column("assigned_by_person_id", sa.String(length=36), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["person_id"], ["people.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["course_id"], ["training_courses.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assigned_by_person_id"], ["people.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("person_id", "course_id", name="uq_training_records_person_course"),
    )
    op.create_index(
        "idx_training_records_company_course",
        "training_completion_records",
        ["company_id", "course_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_training_records_company_course", table_name="training_completion_records")
    op.drop_table("training_completion_records")
    op.drop_index("idx_training_course_targets_company_person", table_name="training_course_targets")
    op.drop_table("training_course_targets")
    op.drop_index("idx_training_courses_company_name", table_name="training_courses")
    op.drop_table("training_courses")
    op.drop_index("ix_audit_events_company_time_desc", table_name="audit_events")
    op.drop_index("ix_audit_events_company_entity", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_table("bank_memberships")
    op.drop_index("idx_home_memberships_home_role", table_name="home_memberships")
    op.drop_table("home_memberships")
    op.drop_table("company_memberships")
    op.drop_table("people")
    op.drop_index("idx_homes_company_name", table_name="homes")
    op.drop_table("homes")
    op.drop_table("companies")

    bind = op.get_bind()
    for enum_name in ("training_type_enum", "manager_subrole_enum", "home_role_enum"):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
