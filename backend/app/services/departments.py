"""Departments own program definitions and scope HOD authority."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from .. import models, rbac, schemas
from ..auth import AuthContext
from ..errors import Conflict, NotFound
from ..repository import transaction

logger = logging.getLogger(__name__)


def list_departments(db: Session) -> list[models.Department]:
    return db.query(models.Department).order_by(models.Department.name.asc()).all()


def get_department(db: Session, code: str) -> models.Department:
    department = db.get(models.Department, code.strip().upper())
    if department is None:
        raise NotFound("Department not found", department_code=code)
    return department


def create_department(db: Session, auth: AuthContext, payload: schemas.DepartmentCreate) -> models.Department:
    rbac.ensure(rbac.is_admin(auth), "Only admins can create departments", role=auth.role)
    code = payload.code.strip().upper()
    if db.get(models.Department, code) is not None:
        raise Conflict(f"Department {code} already exists", department_code=code)
    with transaction(db):
        department = models.Department(
            code=code,
            name=payload.name.strip(),
            description=(payload.description or "").strip() or None,
        )
        db.add(department)
    logger.info("department %s created by %s", code, auth.actor_id)
    return department


def update_department(
    db: Session, auth: AuthContext, code: str, payload: schemas.DepartmentUpdate
) -> models.Department:
    rbac.ensure(rbac.is_admin(auth), "Only admins can edit departments", role=auth.role)
    department = get_department(db, code)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    with transaction(db):
        if "name" in changes:
            department.name = changes["name"].strip()
        if "description" in changes:
            department.description = changes["description"].strip() or None
    logger.info("department %s updated by %s: %s", department.code, auth.actor_id, sorted(changes))
    return department
