"""Create curriculum registry tables."""

from __future__ import annotations

from typing import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261018_01"
down_revision: str | Sequence[str] | None = None
branch_labels = None
depends_on = None

PROGRAM_TABLES = ("degrees", "courses")


def _program_columns(table: str) -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("family_root_id", postgresql.UUID(as_uuid=True), sa.ForeignKey(f"{table}.id"), nullable=True),
        sa.Column("is_latest_version", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("status", sa.String(), nullable=False, server_default="draft"),
        sa.Column("department_code", sa.String(), sa.ForeignKey("departments.code"), nullable=False),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("approved_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
    ]


def _program_indexes(table: str) -> None:
    family = sa.text("coalesce(family_root_id, id)")
    op.create_index(f"ix_{table}_code", table, ["code"])
    op.create_index(f"ix_{table}_family_root_id", table, ["family_root_id"])
    op.create_index(f"uq_{table}_family_version", table, [family, "version"], unique=True)
    op.create_index(
        f"uq_{table}_family_active", table, [family], unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )
    op.create_index(
        f"uq_{table}_family_latest", table, [family], unique=True,
        postgresql_where=sa.text("is_latest_version"),
    )
    op.create_index(
        f"uq_{table}_root_code", table, ["code"], unique=True,
        postgresql_where=sa.text("family_root_id IS NULL"),
    )


def upgrade() -> None:
    op.create_table(
        "departments",
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("code"),
    )

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(), nullable=False, server_default=""),
        sa.Column("user_type", sa.String(), nullable=False, server_default="student"),
        sa.Column("department_code", sa.String(), sa.ForeignKey("departments.code"), nullable=True),
        sa.Column("is_head_of_department", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("degree_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("current_semester", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_degree_id", "users", ["degree_id"])

    op.create_table(
        "degrees",
        *_program_columns("degrees"),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("duration_years", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("courses_per_semester", sa.JSON(), nullable=True, server_default=sa.text("'{}'::json")),
    )
    op.create_table(
        "courses",
        *_program_columns("courses"),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("overview", sa.Text(), nullable=True),
        sa.Column("credits", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("semester", sa.Integer(), nullable=False),
        sa.Column("degree_code", sa.String(), nullable=False),
        sa.Column("is_elective", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("max_students", sa.Integer(), nullable=True),
        sa.Column("prerequisites", sa.JSON(), nullable=True, server_default=sa.text("'[]'::json")),
        sa.Column("faculty_details", sa.JSON(), nullable=True, server_default=sa.text("'{}'::json")),
    )
    op.create_index("ix_courses_degree_code", "courses", ["degree_code"])
    for table in PROGRAM_TABLES:
        _program_indexes(table)

    op.create_table(
        "collaborators",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("added_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "entity_type", "entity_id", name="uq_collaborator_entity"),
    )
    op.create_index("ix_collaborators_entity_id", "collaborators", ["entity_id"])

    op.create_table(
        "enrollment_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("academic_year", sa.String(), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=False),
        sa.Column("course_codes", sa.JSON(), nullable=False, server_default=sa.text("'[]'::json")),
        sa.Column("status", sa.String(), nullable=False, server_default="draft"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("hod_approved_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("hod_approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
    )
    term = ["student_id", "academic_year", "semester"]
    op.create_index(
        "uq_enrollment_requests_draft", "enrollment_requests", term, unique=True,
        postgresql_where=sa.text("status = 'draft'"),
    )
    op.create_index(
        "uq_enrollment_requests_open", "enrollment_requests", term, unique=True,
        postgresql_where=sa.text("status IN ('pending_hod_approval', 'approved')"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True, server_default=sa.text("'{}'::json")),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])

    op.create_table(
        "messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("sender_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_messages_entity_id", "messages", ["entity_id"])


def downgrade() -> None:
    op.drop_index("ix_messages_entity_id", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_audit_logs_entity_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("uq_enrollment_requests_open", table_name="enrollment_requests")
    op.drop_index("uq_enrollment_requests_draft", table_name="enrollment_requests")
    op.drop_table("enrollment_requests")
    op.drop_index("ix_collaborators_entity_id", table_name="collaborators")
    op.drop_table("collaborators")
    for table in reversed(PROGRAM_TABLES):
        for suffix in ("root_code", "family_latest", "family_active", "family_version"):
            op.drop_index(f"uq_{table}_{suffix}", table_name=table)
        op.drop_index(f"ix_{table}_family_root_id", table_name=table)
        op.drop_index(f"ix_{table}_code", table_name=table)
    op.drop_index("ix_courses_degree_code", table_name="courses")
    op.drop_table("courses")
    op.drop_table("degrees")
    op.drop_index("ix_users_degree_id", table_name="users")
    op.drop_table("users")
    op.drop_table("departments")
