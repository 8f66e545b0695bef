"""Authoring of degree and course definitions before they enter review."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from .. import audit, models, rbac, schemas
from ..auth import AuthContext
from ..errors import Conflict, Forbidden, NotFound, ValidationFailed
from ..repository import ProgramRepository
from .faculty_details import dump_faculty_details, parse_faculty_details
from .program_lifecycle import require_status
from .version_family import edit_eligibility

logger = logging.getLogger(__name__)

# purpose: create program definitions and patch them while they are drafts
# status: active

DEGREE_EDITABLE = frozenset({"code", "name", "description", "duration_years", "courses_per_semester"})
COURSE_EDITABLE = frozenset(
    {
        "code",
        "name",
        "overview",
        "credits",
        "semester",
        "degree_code",
        "is_elective",
        "max_students",
        "prerequisites",
        "faculty_details",
    }
)

# JSON columns where an explicit null resets to the empty value
EMPTY_JSON = {"courses_per_semester": dict, "prerequisites": list, "faculty_details": dict}


def _owning_department(db: Session, auth: AuthContext, requested: str | None) -> str:
    if auth.role not in ("faculty", "admin"):
        raise Forbidden("Only faculty and admins can create program definitions", role=auth.role)
    department_code = (requested or auth.department_code or "").upper()
    if not department_code:
        raise ValidationFailed("department_code is required")
    if auth.role == "faculty" and department_code != (auth.department_code or "").upper():
        raise Forbidden(
            "Faculty can only create definitions in their own department",
            department_code=department_code,
            actor_department=auth.department_code,
        )
    if db.get(models.Department, department_code) is None:
        raise NotFound("Department not found", department_code=department_code)
    return department_code


def _ensure_code_free(repo: ProgramRepository, code: str, exclude_id=None) -> None:
    if repo.root_code_taken(code, exclude_id=exclude_id):
        raise Conflict(f"{repo.model.entity_type.title()} code {code} already exists", code=code)


def _degree_for_course(db: Session, degree_code: str, department_code: str) -> models.Degree:
    degrees = ProgramRepository(db, models.Degree).find_by_code(degree_code, latest_only=True)
    if not degrees:
        raise NotFound("Degree not found", degree_code=degree_code.upper())
    degree = degrees[0]
    if degree.department_code.upper() != department_code:
        raise ValidationFailed(
            "Courses must belong to a degree of the same department",
            degree_code=degree.code,
            degree_department=degree.department_code,
            department_code=department_code,
        )
    return degree


def _normalize_course_fields(values: dict[str, Any]) -> dict[str, Any]:
    if "prerequisites" in values and values["prerequisites"] is not None:
        values["prerequisites"] = sorted({code.strip().upper() for code in values["prerequisites"] if code.strip()})
    if "faculty_details" in values and values["faculty_details"] is not None:
        values["faculty_details"] = dump_faculty_details(parse_faculty_details(values["faculty_details"]))
    if values.get("degree_code"):
        values["degree_code"] = values["degree_code"].upper()
    return values


def _clear_nulls(entity: models.ProgramDefinition, values: dict[str, Any]) -> dict[str, Any]:
    columns = type(entity).__table__.columns
    for key, empty in EMPTY_JSON.items():
        if key in values and values[key] is None:
            values[key] = empty()
    required = sorted(key for key, value in values.items() if value is None and not columns[key].nullable)
    if required:
        raise ValidationFailed("These fields cannot be cleared", fields=required)
    return values

def create_degree(
    db: Session,
    auth: AuthContext,
    payload: schemas.DegreeCreate,
    *,
    now: datetime | None = None,
) -> models.Degree:
    department_code = _owning_department(db, auth, payload.department_code)
    now = now or models.utcnow()
    repo = ProgramRepository(db, models.Degree)
    code = payload.code.upper()
    with repo.transaction():
        _ensure_code_free(repo, code)
        values = payload.model_dump(mode="json", exclude={"department_code", "code"})
        degree = repo.create(
            **values,
            code=code,
            department_code=department_code,
            created_by=auth.actor_id,
            status="draft",
            version=1,
            is_latest_version=True,
            created_at=now,
            updated_at=now,
        )
        audit.record(db, "degree", degree.id, "create", auth.actor_id, f"Degree {code} created", now=now)
    logger.info("degree %s (%s) created by %s", degree.id, code, auth.actor_id)
    return degree


def create_course(
    db: Session,
    auth: AuthContext,
    payload: schemas.CourseCreate,
    *,
    now: datetime | None = None,
) -> models.Course:
    department_code = _owning_department(db, auth, payload.department_code)
    _degree_for_course(db, payload.degree_code, department_code)
    now = now or models.utcnow()
    repo = ProgramRepository(db, models.Course)
    code = payload.code.upper()
    with repo.transaction():
        _ensure_code_free(repo, code)
        values = _normalize_course_fields(payload.model_dump(exclude={"department_code", "code"}))
        course = repo.create(
            **values,
            code=code,
            department_code=department_code,
            created_by=auth.actor_id,
            status="draft",
            version=1,
            is_latest_version=True,
            created_at=now,
            updated_at=now,
        )
        audit.record(db, "course", course.id, "create", auth.actor_id, f"Course {code} created", now=now)
    logger.info("course %s (%s) created by %s", course.id, code, auth.actor_id)
    return course


def update_draft(
    db: Session,
    auth: AuthContext,
    entity: models.ProgramDefinition,
    patch: dict[str, Any],
    *,
    now: datetime | None = None,
) -> models.ProgramDefinition:
    """Apply ``patch`` to a draft; identity, status and approval fields are never patchable."""

    rbac.ensure(
        rbac.can_author(db, auth, entity),
        "Only the creator, a collaborator or an admin can edit this draft",
        entity_id=str(entity.id),
    )
    require_status(entity, "draft", "edit")
    eligibility = edit_eligibility(db, entity)
    if not eligibility.can_edit:
        raise Conflict(eligibility.reason, newer_versions=eligibility.newer_versions)
    editable = DEGREE_EDITABLE if isinstance(entity, models.Degree) else COURSE_EDITABLE
    refused = sorted(set(patch) - editable)
    if refused:
        raise ValidationFailed("These fields cannot be edited", fields=refused, editable=sorted(editable))
    values = _clear_nulls(entity, dict(patch))
    if isinstance(entity, models.Course):
        values = _normalize_course_fields(values)
        if values.get("degree_code"):
            _degree_for_course(db, values["degree_code"], entity.department_code.upper())
    now = now or models.utcnow()
    repo = ProgramRepository(db, type(entity))
    with repo.transaction():
        if "code" in values:
            code = values["code"].upper()
            if code != entity.code:
                if entity.family_root_id is not None:
                    raise ValidationFailed(
                        "Codes are shared by every version and can only change on the original draft",
                        version=entity.version,
                    )
                _ensure_code_free(repo, code, exclude_id=entity.id)
            values["code"] = code
        changed = sorted(key for key, value in values.items() if getattr(entity, key) != value)
        repo.update(entity, **values, updated_at=now)
        audit.record(
            db,
            entity.entity_type,
            entity.id,
            "update",
            auth.actor_id,
            f"{entity.entity_type.title()} {entity.code} updated",
            {"fields": changed},
            now=now,
        )
    logger.info("%s %s draft updated by %s: %s", entity.entity_type, entity.id, auth.actor_id, changed)
    return entity


def delete_draft(
    db: Session,
    auth: AuthContext,
    entity: models.ProgramDefinition,
    *,
    now: datetime | None = None,
) -> None:
    """Remove a draft; deleting the newest draft hands the latest flag back to its predecessor."""

    admin = rbac.is_admin(auth)
    rbac.ensure(
        admin or rbac.is_creator(auth, entity),
        "Only the creator or an admin can delete this draft",
        entity_id=str(entity.id),
    )
    if not admin:
        rbac.ensure(
            rbac.is_department_member(auth, entity.department_code),
            "Definitions can only be deleted from your own department",
            department_code=entity.department_code,
        )
    require_status(entity, "draft", "delete")
    repo = ProgramRepository(db, type(entity))
    is_root = entity.family_root_id is None
    siblings = [member for member in repo.family_of(entity) if member.id != entity.id]
    if is_root and siblings:
        raise Conflict(
            "Later versions still belong to this definition",
            versions=[member.version for member in siblings],
        )
    if isinstance(entity, models.Degree):
        students = db.query(models.User.id).filter(models.User.degree_id == entity.id).count()
        courses = 0
        if is_root:
            courses = db.query(models.Course.id).filter(models.Course.degree_code == entity.code).count()
        if students or courses:
            raise Conflict("Degree still has courses or enrolled students", courses=courses, students=students)

    now = now or models.utcnow()
    entity_type, entity_id, was_latest = entity.entity_type, entity.id, entity.is_latest_version
    label = f"{entity_type.title()} {entity.code} v{entity.version}"
    with repo.transaction():
        if is_root:
            db.query(models.Collaborator).filter(
                models.Collaborator.entity_type == entity_type,
                models.Collaborator.entity_id == entity_id,
            ).delete(synchronize_session=False)
        repo.delete(entity)
        if was_latest and siblings:
            repo.update(siblings[-1], is_latest_version=True)
        audit.record(db, entity_type, entity_id, "delete", auth.actor_id, f"{label} deleted", now=now)
    logger.info("%s deleted by %s", label, auth.actor_id)
