"""Department API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import schemas
from ..auth import AuthContext, get_auth_context
from ..database import get_db
from ..services import departments

router = APIRouter(prefix="/api/departments", tags=["departments"])


@router.get("", response_model=list[schemas.DepartmentOut])
def list_departments(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    return departments.list_departments(db)


@router.post("", response_model=schemas.DepartmentOut, status_code=status.HTTP_201_CREATED)
def create_department(
    payload: schemas.DepartmentCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    return departments.create_department(db, auth, payload)


@router.get("/{code}", response_model=schemas.DepartmentOut)
def get_department(
    code: str,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    return departments.get_department(db, code)


@router.put("/{code}", response_model=schemas.DepartmentOut)
def update_department(
    code: str,
    payload: schemas.DepartmentUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
):
    return departments.update_department(db, auth, code, payload)
