from __future__ import annotations

from sqlalchemy.orm import Session

from . import models
from .auth import AuthContext
from .errors import Forbidden

# purpose: centralize permission predicates for program definitions and enrollment review
# status: active


def _same_department(left: str | None, right: str | None) -> bool:
    return bool(left and right and left.upper() == right.upper())


def is_admin(auth: AuthContext) -> bool:
    return auth.role == "admin"


def is_creator(auth: AuthContext, entity: models.ProgramDefinition) -> bool:
    return entity.created_by == auth.actor_id


def is_collaborator(db: Session, auth: AuthContext, entity: models.ProgramDefinition) -> bool:
    return (
        db.query(models.Collaborator.id)
        .filter(
            models.Collaborator.user_id == auth.actor_id,
            models.Collaborator.entity_type == entity.entity_type,
            models.Collaborator.entity_id.in_(list({entity.id, entity.family_id})),
        )
        .first()
        is not None
    )


def is_department_member(auth: AuthContext, department_code: str | None) -> bool:
    return auth.role == "faculty" and _same_department(auth.department_code, department_code)


def is_hod_for(auth: AuthContext, department_code: str | None) -> bool:
    return auth.is_head_of_department and _same_department(auth.department_code, department_code)


def can_author(db: Session, auth: AuthContext, entity: models.ProgramDefinition) -> bool:
    """Creator, collaborator or admin: who may submit or edit a draft."""

    return is_admin(auth) or is_creator(auth, entity) or is_collaborator(db, auth, entity)


def can_share(db: Session, auth: AuthContext, entity: models.ProgramDefinition) -> bool:
    """Shared ownership after approval: authors plus faculty of the owning department."""

    return can_author(db, auth, entity) or is_department_member(auth, entity.department_code)


def ensure(allowed: bool, message: str, **context) -> None:
    if not allowed:
        raise Forbidden(message, **context)
