"""Degree definition API routes."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import AuthContext, get_auth_context
from ..database import get_db
from ..repository import ProgramRepository
from ..services import program_catalog
from .programs import register_lifecycle_routes

router = APIRouter(prefix="/api/degrees", tags=["degrees"])


@router.post("", response_model=schemas.DegreeOut, status_code=status.HTTP_201_CREATED)
def create_degree(
    payload: schemas.DegreeCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    return program_catalog.create_degree(db, auth, payload)


@router.get("", response_model=list[schemas.DegreeOut])
def list_degrees(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
    status_filter: str | None = Query(default=None, alias="status"),
    department_code: str | None = Query(default=None),
    latest_only: bool = Query(default=True),
):
    query = ProgramRepository(db, models.Degree).query()
    if status_filter:
        query = query.filter(models.Degree.status == status_filter)
    if department_code:
        query = query.filter(models.Degree.department_code == department_code.upper())
    if latest_only:
        query = query.filter(models.Degree.is_latest_version.is_(True))
    return query.order_by(models.Degree.code, models.Degree.version).all()


@router.get("/{entity_id}", response_model=schemas.DegreeOut)
def get_degree(
    entity_id: UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    return ProgramRepository(db, models.Degree).get(entity_id)


@router.put("/{entity_id}", response_model=schemas.DegreeOut)
def update_degree(
    entity_id: UUID,
    payload: schemas.DegreeUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    degree = ProgramRepository(db, models.Degree).get(entity_id)
    patch = payload.model_dump(mode="json", exclude_unset=True)
    return program_catalog.update_draft(db, auth, degree, patch)


register_lifecycle_routes(router, models.Degree, schemas.DegreeOut)
