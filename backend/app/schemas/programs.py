"""Degree and course request/response schemas."""

# purpose: API contracts for program definitions, their lifecycle actions and collaborators
# status: active

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import get_settings

CODE_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_-]{1,19}$"
MAX_SEMESTER = get_settings().max_semester


class SemesterRule(BaseModel):
    """Quota and enrollment window for one semester of a degree."""

    count: int = Field(default=0, ge=0, le=20)
    enrollment_start: datetime | None = None
    enrollment_end: datetime | None = None


def _check_semester_keys(value: dict[str, SemesterRule] | None) -> dict[str, SemesterRule] | None:
    if value is None:
        return value
    for key in value:
        if not key.isdigit() or not 1 <= int(key) <= MAX_SEMESTER:
            raise ValueError(f"semester key {key!r} must be between 1 and {MAX_SEMESTER}")
    return value


class DegreeCreate(BaseModel):
    code: str = Field(pattern=CODE_PATTERN)
    name: str = Field(min_length=2, max_length=200)
    description: str | None = None
    duration_years: int = Field(default=4, ge=1, le=10)
    department_code: str | None = None
    courses_per_semester: dict[str, SemesterRule] = Field(default_factory=dict)

    _semesters = field_validator("courses_per_semester")(_check_semester_keys)


class DegreeUpdate(BaseModel):
    code: str | None = Field(default=None, pattern=CODE_PATTERN)
    name: str | None = Field(default=None, min_length=2, max_length=200)
    description: str | None = None
    duration_years: int | None = Field(default=None, ge=1, le=10)
    courses_per_semester: dict[str, SemesterRule] | None = None

    _semesters = field_validator("courses_per_semester")(_check_semester_keys)


class CourseCreate(BaseModel):
    code: str = Field(pattern=CODE_PATTERN)
    name: str = Field(min_length=2, max_length=200)
    overview: str | None = None
    credits: int = Field(default=3, ge=1, le=10)
    semester: int = Field(ge=1, le=MAX_SEMESTER)
    degree_code: str
    department_code: str | None = None
    is_elective: bool = False
    max_students: int | None = Field(default=None, ge=1)
    prerequisites: list[str] = Field(default_factory=list)
    faculty_details: dict[str, Any] = Field(default_factory=dict)


class CourseUpdate(BaseModel):
    code: str | None = Field(default=None, pattern=CODE_PATTERN)
    name: str | None = Field(default=None, min_length=2, max_length=200)
    overview: str | None = None
    credits: int | None = Field(default=None, ge=1, le=10)
    semester: int | None = Field(default=None, ge=1, le=MAX_SEMESTER)
    degree_code: str | None = None
    is_elective: bool | None = None
    max_students: int | None = Field(default=None, ge=1)
    prerequisites: list[str] | None = None
    faculty_details: dict[str, Any] | None = None


class ProgramOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    version: int
    family_root_id: UUID | None = None
    is_latest_version: bool
    status: str
    department_code: str
    created_by: UUID
    approved_by: UUID | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DegreeOut(ProgramOut):
    name: str
    description: str | None = None
    duration_years: int
    courses_per_semester: dict[str, Any] = Field(default_factory=dict)


class CourseOut(ProgramOut):
    name: str
    overview: str | None = None
    credits: int
    semester: int
    degree_code: str
    is_elective: bool
    max_students: int | None = None
    prerequisites: list[str] = Field(default_factory=list)
    faculty_details: dict[str, Any] = Field(default_factory=dict)


class SubmitRequest(BaseModel):
    note: str | None = Field(default=None, max_length=2000)


class ApproveRequest(BaseModel):
    note: str | None = Field(default=None, max_length=2000)


class RejectRequest(BaseModel):
    # length rules are enforced by the service so the error carries its bounds
    reason: str = ""


class VersionRef(BaseModel):
    id: UUID
    version: int
    status: str


class EditEligibilityOut(BaseModel):
    can_edit: bool
    reason: str | None = None
    newer_versions: list[VersionRef] = Field(default_factory=list)


class CollaboratorIn(BaseModel):
    user_id: UUID


class CollaboratorOut(BaseModel):
    user_id: UUID
    name: str
    email: str
    added_by: UUID | None = None
    added_at: datetime | None = None
