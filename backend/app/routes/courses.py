"""Course definition API routes."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import AuthContext, get_auth_context
from ..database import get_db
from ..repository import ProgramRepository
from ..services import program_catalog
from ..services.faculty_details import resolve_faculty_details
from .programs import register_lifecycle_routes

router = APIRouter(prefix="/api/courses", tags=["courses"])


@router.post("", response_model=schemas.CourseOut, status_code=status.HTTP_201_CREATED)
def create_course(
    payload: schemas.CourseCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    return program_catalog.create_course(db, auth, payload)


@router.get("", response_model=list[schemas.CourseOut])
def list_courses(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
    status_filter: str | None = Query(default=None, alias="status"),
    degree_code: str | None = Query(default=None),
    semester: int | None = Query(default=None, ge=1, le=schemas.MAX_SEMESTER),
    latest_only: bool = Query(default=True),
):
    query = ProgramRepository(db, models.Course).query()
    if status_filter:
        query = query.filter(models.Course.status == status_filter)
    if degree_code:
        query = query.filter(models.Course.degree_code == degree_code.upper())
    if semester is not None:
        query = query.filter(models.Course.semester == semester)
    if latest_only:
        query = query.filter(models.Course.is_latest_version.is_(True))
    return query.order_by(models.Course.code, models.Course.version).all()


@router.get("/{entity_id}", response_model=schemas.CourseOut)
def get_course(
    entity_id: UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
    resolve_names: bool = Query(default=False),
):
    course = ProgramRepository(db, models.Course).get(entity_id)
    payload = schemas.CourseOut.model_validate(course)
    if resolve_names:
        payload.faculty_details = resolve_faculty_details(db, course.faculty_details)
    return payload


@router.put("/{entity_id}", response_model=schemas.CourseOut)
def update_course(
    entity_id: UUID,
    payload: schemas.CourseUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    course = ProgramRepository(db, models.Course).get(entity_id)
    return program_catalog.update_draft(db, auth, course, payload.model_dump(exclude_unset=True))


register_lifecycle_routes(router, models.Course, schemas.CourseOut)
