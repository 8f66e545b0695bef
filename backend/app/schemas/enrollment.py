"""Enrollment request schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class DraftIn(BaseModel):
    academic_year: str
    semester: int
    course_codes: list[str] = Field(default_factory=list)


class EnrollmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    student_id: UUID
    academic_year: str
    semester: int
    course_codes: list[str]
    status: str
    submitted_at: datetime | None = None
    hod_approved_by: UUID | None = None
    hod_approved_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class HodDecisionIn(BaseModel):
    request_ids: list[UUID]
    action: Literal["approve", "reject"]
    reason: str | None = None


class HodDecisionOut(BaseModel):
    action: str
    processed: int
    requested: int
    processed_ids: list[UUID] = Field(default_factory=list)


class OfferedCourse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    credits: int
    is_elective: bool
    version: int


class OfferingOut(BaseModel):
    degree_code: str
    semester: int
    required_count: int
    window_open: bool
    enrollment_start: datetime | None = None
    enrollment_end: datetime | None = None
    courses: list[OfferedCourse] = Field(default_factory=list)


class StudentRef(BaseModel):
    id: UUID
    name: str
    email: str


class PendingGroupOut(BaseModel):
    student: StudentRef
    academic_year: str
    semester: int
    requests: list[EnrollmentOut]
