import uuid
import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declared_attr, relationship
from datetime import datetime, timezone

from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


PROGRAM_STATUSES = ("draft", "pending_approval", "approved", "active", "archived")
IN_FLIGHT_STATUSES = ("draft", "pending_approval", "approved")
ENROLLMENT_STATUSES = ("draft", "pending_hod_approval", "approved", "rejected")
OPEN_ENROLLMENT_STATUSES = ("pending_hod_approval", "approved")
USER_TYPES = ("student", "faculty", "office", "admin")


class Department(Base):
    __tablename__ = "departments"
    code = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    first_name = Column(String, nullable=False, default="")
    last_name = Column(String, nullable=False, default="")
    user_type = Column(String, nullable=False, default="student")
    department_code = Column(String, ForeignKey("departments.code"))
    is_head_of_department = Column(Boolean, default=False, nullable=False)
    degree_id = Column(UUID(as_uuid=True), index=True)
    current_semester = Column(Integer)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    @property
    def full_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.email


class ProgramDefinition:
    """Columns shared by every versioned, approval-gated definition."""

    entity_type: str = ""
    # fields never copied into a new version
    VERSION_BLACKLIST = frozenset(
        {
            "id",
            "version",
            "family_root_id",
            "is_latest_version",
            "status",
            "created_by",
            "approved_by",
            "submitted_at",
            "approved_at",
            "rejection_reason",
            "created_at",
            "updated_at",
        }
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String, nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)
    is_latest_version = Column(Boolean, nullable=False, default=True)
    status = Column(String, nullable=False, default="draft")
    submitted_at = Column(DateTime(timezone=True))
    approved_at = Column(DateTime(timezone=True))
    rejection_reason = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @declared_attr
    def family_root_id(cls):
        return Column(UUID(as_uuid=True), ForeignKey(f"{cls.__tablename__}.id"), index=True)

    @declared_attr
    def department_code(cls):
        return Column(String, ForeignKey("departments.code"), nullable=False)

    @declared_attr
    def created_by(cls):
        return Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)

    @declared_attr
    def approved_by(cls):
        return Column(UUID(as_uuid=True), ForeignKey("users.id"))

    @property
    def family_id(self):
        return self.family_root_id or self.id


class Degree(ProgramDefinition, Base):
    __tablename__ = "degrees"
    entity_type = "degree"

    name = Column(String, nullable=False)
    description = Column(Text)
    duration_years = Column(Integer, nullable=False, default=4)
    # {"<semester>": {"count": int, "enrollment_start": iso, "enrollment_end": iso}}
    courses_per_semester = Column(JSON, default=dict)


class Course(ProgramDefinition, Base):
    __tablename__ = "courses"
    entity_type = "course"

    name = Column(String, nullable=False)
    overview = Column(Text)
    credits = Column(Integer, nullable=False, default=3)
    semester = Column(Integer, nullable=False)
    degree_code = Column(String, nullable=False, index=True)
    is_elective = Column(Boolean, default=False, nullable=False)
    max_students = Column(Integer)
    prerequisites = Column(JSON, default=list)
    faculty_details = Column(JSON, default=dict)


def _program_indexes(model) -> None:
    table = model.__table__
    family = sa.func.coalesce(table.c.family_root_id, table.c.id)
    name = table.name
    sa.Index(f"uq_{name}_family_version", family, table.c.version, unique=True)
    sa.Index(
        f"uq_{name}_family_active",
        family,
        unique=True,
        sqlite_where=table.c.status == "active",
        postgresql_where=table.c.status == "active",
    )
    sa.Index(
        f"uq_{name}_family_latest",
        family,
        unique=True,
        sqlite_where=table.c.is_latest_version.is_(True),
        postgresql_where=table.c.is_latest_version.is_(True),
    )
    sa.Index(
        f"uq_{name}_root_code",
        table.c.code,
        unique=True,
        sqlite_where=table.c.family_root_id.is_(None),
        postgresql_where=table.c.family_root_id.is_(None),
    )


_program_indexes(Degree)
_program_indexes(Course)

PROGRAM_MODELS = {"degree": Degree, "course": Course}


class Collaborator(Base):
    __tablename__ = "collaborators"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "entity_type", "entity_id", name="uq_collaborator_entity"),
    )
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    entity_type = Column(String, nullable=False)
    entity_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    added_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User", foreign_keys=[user_id])


class EnrollmentRequest(Base):
    __tablename__ = "enrollment_requests"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    academic_year = Column(String, nullable=False)
    semester = Column(Integer, nullable=False)
    course_codes = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, default="draft")
    submitted_at = Column(DateTime(timezone=True))
    hod_approved_by = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    hod_approved_at = Column(DateTime(timezone=True))
    rejection_reason = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    student = relationship("User", foreign_keys=[student_id])


_enrollment = EnrollmentRequest.__table__
sa.Index(
    "uq_enrollment_requests_draft",
    _enrollment.c.student_id,
    _enrollment.c.academic_year,
    _enrollment.c.semester,
    unique=True,
    sqlite_where=_enrollment.c.status == "draft",
    postgresql_where=_enrollment.c.status == "draft",
)
sa.Index(
    "uq_enrollment_requests_open",
    _enrollment.c.student_id,
    _enrollment.c.academic_year,
    _enrollment.c.semester,
    unique=True,
    sqlite_where=_enrollment.c.status.in_(OPEN_ENROLLMENT_STATUSES),
    postgresql_where=_enrollment.c.status.in_(OPEN_ENROLLMENT_STATUSES),
)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_type = Column(String, nullable=False)
    entity_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    action = Column(String, nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    description = Column(Text)
    details = Column(JSON, default=dict)
    # per-entity log order, breaks timestamp ties
    sequence = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Message(Base):
    __tablename__ = "messages"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_type = Column(String, nullable=False)
    entity_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    sender_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    body = Column(Text, nullable=False)
    sequence = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=utcnow)
