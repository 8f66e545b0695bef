"""Student enrollment requests: draft, submit, and department-head review."""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from .. import audit, eventlog, models
from ..auth import AuthContext
from ..config import get_settings
from ..errors import Conflict, Forbidden, InvalidTransition, NotFound, ValidationFailed
from ..notify import Notifier, notify_safely
from ..repository import EnrollmentRepository, ProgramRepository, department_heads, users_by_id
from . import enrollment_windows

logger = logging.getLogger(__name__)

# purpose: drive one request per (student, academic year, semester) from draft to HOD decision
# status: active

ENTITY_TYPE = "enrollment"
ACADEMIC_YEAR = re.compile(r"^(\d{4})-(\d{4})$")
HOD_ACTIONS = ("approve", "reject")


@dataclass(slots=True)
class HodDecisionResult:
    action: str
    processed: int
    requested: int
    processed_ids: list[UUID] = field(default_factory=list)


@dataclass(slots=True)
class Offering:
    degree: models.Degree
    semester: int
    required_count: int
    window_open: bool
    rule: enrollment_windows.SemesterRule
    courses: list[models.Course]


def validate_term(academic_year: str, semester: int) -> None:
    match = ACADEMIC_YEAR.match(academic_year or "")
    if not match or int(match.group(2)) != int(match.group(1)) + 1:
        raise ValidationFailed(
            "Academic year must look like YYYY-YYYY with consecutive years",
            academic_year=academic_year,
        )
    max_semester = get_settings().max_semester
    if not isinstance(semester, int) or not 1 <= semester <= max_semester:
        raise ValidationFailed(
            f"Semester must be between 1 and {max_semester}", semester=semester, max_semester=max_semester
        )


def normalize_codes(course_codes: Iterable[str]) -> list[str]:
    return sorted({code.strip().upper() for code in course_codes if code and code.strip()})


def _student(db: Session, auth: AuthContext) -> models.User:
    if auth.role != "student":
        raise Forbidden("Only students can manage enrollment requests", role=auth.role)
    student = db.get(models.User, auth.actor_id)
    if student is None:
        raise NotFound("Student not found", id=str(auth.actor_id))
    return student


def student_degree(db: Session, student: models.User) -> models.Degree:
    """The active version of the student's degree, or the referenced row when none is active."""

    if student.degree_id is None:
        raise ValidationFailed("Student is not assigned to a degree", student_id=str(student.id))
    repo = ProgramRepository(db, models.Degree)
    degree = repo.get(student.degree_id)
    for member in repo.family_of(degree):
        if member.status == "active":
            return member
    return degree


def _window_context(rule: enrollment_windows.SemesterRule, now: datetime) -> dict:
    return {**rule.window(), "semester": rule.semester, "now": now.isoformat()}


def _require_open_window(degree: models.Degree, semester: int, now: datetime) -> enrollment_windows.SemesterRule:
    rule = enrollment_windows.semester_rule(degree, semester)
    if not enrollment_windows.is_window_open(degree, semester, now):
        logger.debug("enrollment window closed for %s semester %s at %s", degree.code, semester, now)
        raise ValidationFailed("Enrollment window is closed", **_window_context(rule, now))
    return rule


def _offered_courses(db: Session, degree: models.Degree, semester: int) -> list[models.Course]:
    return (
        ProgramRepository(db, models.Course)
        .query()
        .filter(
            models.Course.degree_code == degree.code,
            models.Course.semester == semester,
            models.Course.status == "active",
        )
        .order_by(models.Course.code.asc())
        .all()
    )


def degree_offering(
    db: Session, auth: AuthContext, semester: int, *, now: datetime | None = None
) -> Offering:
    student = _student(db, auth)
    degree = student_degree(db, student)
    now = now or models.utcnow()
    return Offering(
        degree=degree,
        semester=semester,
        required_count=enrollment_windows.required_count(degree, semester),
        window_open=enrollment_windows.is_window_open(degree, semester, now),
        rule=enrollment_windows.semester_rule(degree, semester),
        courses=_offered_courses(db, degree, semester),
    )


def get_draft(
    db: Session, auth: AuthContext, academic_year: str, semester: int
) -> models.EnrollmentRequest | None:
    """Return the student's request for the term, preferring the editable one."""

    student = _student(db, auth)
    rows = EnrollmentRepository(db).find_for_term(student.id, academic_year, semester)
    for status in ("draft", "rejected", "pending_hod_approval", "approved"):
        for row in rows:
            if row.status == status:
                return row
    return None


def list_requests(
    db: Session, auth: AuthContext, academic_year: str | None = None
) -> list[models.EnrollmentRequest]:
    """The student's own requests, newest term first."""

    student = _student(db, auth)
    return EnrollmentRepository(db).for_student(student.id, academic_year)


def save_draft(
    db: Session,
    auth: AuthContext,
    *,
    academic_year: str,
    semester: int,
    course_codes: Iterable[str],
    now: datetime | None = None,
) -> models.EnrollmentRequest:
    """Create or update the draft for a term while its window is open.

    Partial selections are accepted; the quota is only checked on submit.
    """

    student = _student(db, auth)
    validate_term(academic_year, semester)
    now = now or models.utcnow()
    degree = student_degree(db, student)
    _require_open_window(degree, semester, now)
    codes = normalize_codes(course_codes)
    offered = {course.code for course in _offered_courses(db, degree, semester)}
    unknown = [code for code in codes if code not in offered]
    if unknown:
        raise ValidationFailed(
            "Some courses are not offered for this semester",
            unknown_codes=unknown,
            offered_codes=sorted(offered),
        )
    repo = EnrollmentRepository(db)
    with repo.transaction():
        rows = repo.find_for_term(student.id, academic_year, semester)
        locked = [row for row in rows if row.status in models.OPEN_ENROLLMENT_STATUSES]
        if locked:
            raise InvalidTransition(
                "A request for this term is already pending or approved",
                current_status=locked[0].status,
                request_id=str(locked[0].id),
            )
        editable = next((row for row in rows if row.status == "draft"), None) or next(
            (row for row in rows if row.status == "rejected"), None
        )
        if editable is None:
            request = repo.create(
                student_id=student.id,
                academic_year=academic_year,
                semester=semester,
                course_codes=codes,
                status="draft",
                created_at=now,
                updated_at=now,
            )
        else:
            request = repo.update(editable, course_codes=codes, status="draft", updated_at=now)
        audit.record(
            db,
            ENTITY_TYPE,
            request.id,
            "save_draft",
            auth.actor_id,
            f"Draft saved with {len(codes)} course(s)",
            {"course_codes": codes},
            now=now,
        )
    logger.info("enrollment %s draft saved by %s (%d courses)", request.id, auth.actor_id, len(codes))
    return request


def submit(
    db: Session,
    auth: AuthContext,
    request_id: UUID,
    *,
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> models.EnrollmentRequest:
    student = _student(db, auth)
    repo = EnrollmentRepository(db)
    request = repo.get(request_id)
    if request.student_id != student.id:
        raise Forbidden("Students can only submit their own requests", request_id=str(request_id))
    if request.status != "draft":
        raise InvalidTransition(
            "Only drafts can be submitted", current_status=request.status, required_status="draft"
        )
    codes = list(request.course_codes or [])
    if not codes:
        raise ValidationFailed("Select at least one course before submitting", selected=0)
    degree = student_degree(db, student)
    required = enrollment_windows.required_count(degree, request.semester)
    if required > 0 and len(codes) != required:
        raise ValidationFailed(
            f"Semester {request.semester} requires exactly {required} courses",
            required=required,
            selected=len(codes),
        )
    now = now or models.utcnow()
    _require_open_window(degree, request.semester, now)
    with repo.transaction():
        others = repo.find_for_term(
            student.id, request.academic_year, request.semester, models.OPEN_ENROLLMENT_STATUSES
        )
        if others:
            raise Conflict(
                "Another request for this term is already pending or approved",
                existing_request=str(others[0].id),
                existing_status=others[0].status,
            )
        repo.update(
            request,
            status="pending_hod_approval",
            submitted_at=now,
            rejection_reason=None,
            hod_approved_by=None,
            hod_approved_at=None,
            updated_at=now,
        )
        audit.record(
            db,
            ENTITY_TYPE,
            request.id,
            "submit",
            auth.actor_id,
            f"Submitted {len(codes)} course(s) for review",
            {"from": "draft", "to": "pending_hod_approval"},
            now=now,
        )
    logger.info("enrollment %s draft -> pending_hod_approval by %s", request.id, auth.actor_id)
    heads = [head.email for head in department_heads(db, student.department_code or "") if head.email]
    notify_safely(
        notifier,
        "enrollment.submitted",
        {
            "academic_year": request.academic_year,
            "semester": request.semester,
            "recipients": heads,
            "message": f"{student.full_name} submitted {len(codes)} course(s): {', '.join(codes)}",
        },
    )
    return request


def hod_decision(
    db: Session,
    auth: AuthContext,
    request_ids: Iterable[UUID],
    action: str,
    reason: str | None = None,
    *,
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> HodDecisionResult:
    """Approve or reject a batch of pending requests.

    Requests outside the reviewer's department, or no longer pending, are
    skipped; the result reports how many of the requested ids were processed.
    """

    if not auth.is_head_of_department or not auth.department_code:
        raise Forbidden("Only heads of department can review enrollment requests")
    if action not in HOD_ACTIONS:
        raise ValidationFailed("Unknown action", action=action, allowed=list(HOD_ACTIONS))
    requested_ids = list(OrderedDict.fromkeys(request_ids))
    if not requested_ids:
        raise ValidationFailed("No request ids supplied", requested=0)
    cleaned = (reason or "").strip()
    if action == "reject" and not cleaned:
        raise ValidationFailed("A reason is required when requesting changes")
    now = now or models.utcnow()
    repo = EnrollmentRepository(db)
    with repo.transaction():
        matches = repo.pending_in_department(auth.department_code, requested_ids)
        for request in matches:
            if action == "approve":
                repo.update(
                    request,
                    status="approved",
                    hod_approved_by=auth.actor_id,
                    hod_approved_at=now,
                    updated_at=now,
                )
            else:
                repo.update(
                    request,
                    status="draft",
                    rejection_reason=cleaned,
                    submitted_at=None,
                    hod_approved_by=auth.actor_id,
                    hod_approved_at=now,
                    updated_at=now,
                )
                eventlog.record_message(db, ENTITY_TYPE, request.id, auth.actor_id, cleaned, now=now)
            audit.record(
                db,
                ENTITY_TYPE,
                request.id,
                f"hod_{action}",
                auth.actor_id,
                "Enrollment approved" if action == "approve" else "Enrollment changes requested",
                {"from": "pending_hod_approval", "to": "approved" if action == "approve" else "draft"},
                now=now,
            )
    result = HodDecisionResult(
        action=action,
        processed=len(matches),
        requested=len(requested_ids),
        processed_ids=[request.id for request in matches],
    )
    logger.info(
        "hod %s %s %d of %d enrollment request(s)", auth.actor_id, action, result.processed, result.requested
    )
    students = users_by_id(db, [request.student_id for request in matches])
    for request in matches:
        student = students.get(request.student_id)
        if student is None or not student.email:
            continue
        notify_safely(
            notifier,
            f"enrollment.{'approved' if action == 'approve' else 'rejected'}",
            {
                "academic_year": request.academic_year,
                "semester": request.semester,
                "recipients": [student.email],
                "message": cleaned or None,
            },
        )
    return result


def pending_for_hod(db: Session, auth: AuthContext, semester: int | None = None) -> list[dict]:
    """Pending requests of the reviewer's department grouped per student and term, oldest first."""

    if not auth.is_head_of_department or not auth.department_code:
        raise Forbidden("Only heads of department can review enrollment requests")
    rows = EnrollmentRepository(db).pending_in_department(auth.department_code, semester=semester)
    students = users_by_id(db, [row.student_id for row in rows])
    groups: "OrderedDict[tuple, dict]" = OrderedDict()
    for row in rows:
        key = (row.student_id, row.academic_year, row.semester)
        if key not in groups:
            student = students[row.student_id]
            groups[key] = {
                "student": {"id": student.id, "name": student.full_name, "email": student.email},
                "academic_year": row.academic_year,
                "semester": row.semester,
                "requests": [],
            }
        groups[key]["requests"].append(row)
    return list(groups.values())
