"""Query helpers and transaction boundary for registry services."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generic, Iterable, Iterator, TypeVar
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .errors import Conflict, NotFound

logger = logging.getLogger(__name__)

ProgramT = TypeVar("ProgramT", models.Degree, models.Course)

# purpose: keep services free of ad hoc query construction and own commit/rollback
# status: active


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit everything staged inside the block or roll all of it back.

    Storage uniqueness violations surface as :class:`Conflict`; any other
    error is re-raised unchanged after rollback.
    """

    try:
        yield db
        db.flush()
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info("write rejected by storage constraint: %s", exc.orig)
        raise Conflict(
            "Concurrent change detected; reload and retry",
            constraint=_constraint_name(exc),
        ) from exc
    except Exception:
        db.rollback()
        raise


def _constraint_name(exc: IntegrityError) -> str | None:
    message = str(exc.orig)
    for name in (
        "family_active",
        "family_latest",
        "family_version",
        "root_code",
        "enrollment_requests_draft",
        "enrollment_requests_open",
        "collaborator_entity",
    ):
        if name in message:
            return name
    if "degrees.code" in message or "courses.code" in message:
        return "root_code"
    diag = getattr(exc.orig, "diag", None)
    return getattr(diag, "constraint_name", None)


class ProgramRepository(Generic[ProgramT]):
    """Degree/Course persistence keyed by id, code and family."""

    def __init__(self, db: Session, model: type[ProgramT]):
        self.db = db
        self.model = model

    def get(self, entity_id: UUID) -> ProgramT:
        entity = self.db.get(self.model, entity_id)
        if entity is None:
            raise NotFound(f"{self.model.entity_type.title()} not found", id=str(entity_id))
        return entity

    def find_by_code(
        self,
        code: str,
        *,
        status: str | Iterable[str] | None = None,
        latest_only: bool = False,
    ) -> list[ProgramT]:
        query = self.db.query(self.model).filter(self.model.code == code.upper())
        if isinstance(status, str):
            query = query.filter(self.model.status == status)
        elif status is not None:
            query = query.filter(self.model.status.in_(list(status)))
        if latest_only:
            query = query.filter(self.model.is_latest_version.is_(True))
        return query.order_by(self.model.code, self.model.version).all()

    def root_code_taken(self, code: str, *, exclude_id: UUID | None = None) -> bool:
        query = self.db.query(self.model.id).filter(
            self.model.code == code.upper(), self.model.family_root_id.is_(None)
        )
        if exclude_id is not None:
            query = query.filter(self.model.id != exclude_id)
        return query.first() is not None

    def find_family(self, root_id: UUID) -> list[ProgramT]:
        return (
            self.db.query(self.model)
            .filter(sa.or_(self.model.id == root_id, self.model.family_root_id == root_id))
            .order_by(self.model.version.asc())
            .all()
        )

    def family_of(self, entity: ProgramT) -> list[ProgramT]:
        return self.find_family(entity.family_id)

    def query(self):
        return self.db.query(self.model)

    def create(self, **fields) -> ProgramT:
        entity = self.model(**fields)
        self.db.add(entity)
        self.db.flush()
        return entity

    def update(self, entity: ProgramT, **patch) -> ProgramT:
        for key, value in patch.items():
            setattr(entity, key, value)
        self.db.add(entity)
        return entity

    def delete(self, entity: ProgramT) -> None:
        self.db.delete(entity)
        self.db.flush()

    def transaction(self):
        return transaction(self.db)


class EnrollmentRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, request_id: UUID) -> models.EnrollmentRequest:
        request = self.db.get(models.EnrollmentRequest, request_id)
        if request is None:
            raise NotFound("Enrollment request not found", id=str(request_id))
        return request

    def find_for_term(
        self,
        student_id: UUID,
        academic_year: str,
        semester: int,
        statuses: Iterable[str] | None = None,
    ) -> list[models.EnrollmentRequest]:
        query = self.db.query(models.EnrollmentRequest).filter(
            models.EnrollmentRequest.student_id == student_id,
            models.EnrollmentRequest.academic_year == academic_year,
            models.EnrollmentRequest.semester == semester,
        )
        if statuses is not None:
            query = query.filter(models.EnrollmentRequest.status.in_(list(statuses)))
        return query.order_by(models.EnrollmentRequest.updated_at.desc()).all()

    def pending_in_department(
        self,
        department_code: str,
        request_ids: Iterable[UUID] | None = None,
        semester: int | None = None,
    ) -> list[models.EnrollmentRequest]:
        query = (
            self.db.query(models.EnrollmentRequest)
            .join(models.User, models.User.id == models.EnrollmentRequest.student_id)
            .filter(
                models.EnrollmentRequest.status == "pending_hod_approval",
                sa.func.upper(models.User.department_code) == department_code.upper(),
            )
        )
        if request_ids is not None:
            query = query.filter(models.EnrollmentRequest.id.in_(list(request_ids)))
        if semester is not None:
            query = query.filter(models.EnrollmentRequest.semester == semester)
        return query.order_by(models.EnrollmentRequest.submitted_at.asc()).all()

    def for_student(self, student_id: UUID, academic_year: str | None = None) -> list[models.EnrollmentRequest]:
        query = self.db.query(models.EnrollmentRequest).filter(models.EnrollmentRequest.student_id == student_id)
        if academic_year is not None:
            query = query.filter(models.EnrollmentRequest.academic_year == academic_year)
        return query.order_by(
            models.EnrollmentRequest.academic_year.desc(),
            models.EnrollmentRequest.semester.desc(),
            models.EnrollmentRequest.created_at.desc(),
        ).all()

    def create(self, **fields) -> models.EnrollmentRequest:
        request = models.EnrollmentRequest(**fields)
        self.db.add(request)
        self.db.flush()
        return request

    def update(self, request: models.EnrollmentRequest, **patch) -> models.EnrollmentRequest:
        for key, value in patch.items():
            setattr(request, key, value)
        self.db.add(request)
        return request

    def transaction(self):
        return transaction(self.db)


def users_by_id(db: Session, user_ids: Iterable[UUID | None]) -> dict[UUID, models.User]:
    """Batched user lookup used by timeline and faculty detail resolution."""

    ids = {user_id for user_id in user_ids if user_id is not None}
    if not ids:
        return {}
    rows = db.query(models.User).filter(models.User.id.in_(list(ids))).all()
    return {row.id: row for row in rows}


def department_heads(db: Session, department_code: str) -> list[models.User]:
    return (
        db.query(models.User)
        .filter(
            models.User.is_head_of_department.is_(True),
            sa.func.upper(models.User.department_code) == department_code.upper(),
        )
        .all()
    )
