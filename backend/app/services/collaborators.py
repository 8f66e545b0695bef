"""Department collaborators sharing write access to a program definition."""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from .. import audit, models, rbac
from ..auth import AuthContext
from ..errors import Conflict, NotFound, ValidationFailed
from ..repository import transaction

logger = logging.getLogger(__name__)


def _ensure_manager(db: Session, auth: AuthContext, entity: models.ProgramDefinition) -> None:
    rbac.ensure(
        rbac.is_admin(auth) or auth.is_head_of_department or rbac.is_creator(auth, entity),
        "Only the creator, a head of department or an admin can manage collaborators",
        entity_id=str(entity.id),
    )


def _membership(db: Session, entity: models.ProgramDefinition, user_id: UUID):
    return (
        db.query(models.Collaborator)
        .filter(
            models.Collaborator.entity_type == entity.entity_type,
            models.Collaborator.entity_id == entity.family_id,
            models.Collaborator.user_id == user_id,
        )
        .first()
    )


def list_collaborators(db: Session, entity: models.ProgramDefinition) -> list[models.Collaborator]:
    """Collaborators are attached to the family root and cover every version."""

    return (
        db.query(models.Collaborator)
        .filter(
            models.Collaborator.entity_type == entity.entity_type,
            models.Collaborator.entity_id == entity.family_id,
        )
        .order_by(models.Collaborator.created_at.asc())
        .all()
    )


def add_collaborator(
    db: Session,
    auth: AuthContext,
    entity: models.ProgramDefinition,
    user_id: UUID,
    *,
    now: datetime | None = None,
) -> models.Collaborator:
    _ensure_manager(db, auth, entity)
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFound("User not found", user_id=str(user_id))
    if user.user_type != "faculty" or (user.department_code or "").upper() != entity.department_code.upper():
        raise ValidationFailed(
            "Collaborators must be faculty of the owning department",
            user_type=user.user_type,
            user_department=user.department_code,
            department_code=entity.department_code,
        )
    if user.id == entity.created_by:
        raise ValidationFailed("The creator already has access", user_id=str(user_id))
    if _membership(db, entity, user.id) is not None:
        raise Conflict("User is already a collaborator", user_id=str(user_id))
    now = now or models.utcnow()
    with transaction(db):
        row = models.Collaborator(
            user_id=user.id,
            entity_type=entity.entity_type,
            entity_id=entity.family_id,
            added_by=auth.actor_id,
            created_at=now,
        )
        db.add(row)
        audit.record(
            db,
            entity.entity_type,
            entity.id,
            "add_collaborator",
            auth.actor_id,
            f"{user.full_name} added as collaborator",
            {"user_id": str(user.id)},
            now=now,
        )
    logger.info("%s %s: collaborator %s added by %s", entity.entity_type, entity.id, user.id, auth.actor_id)
    return row


def remove_collaborator(
    db: Session,
    auth: AuthContext,
    entity: models.ProgramDefinition,
    user_id: UUID,
    *,
    now: datetime | None = None,
) -> None:
    _ensure_manager(db, auth, entity)
    row = _membership(db, entity, user_id)
    if row is None:
        raise NotFound("User is not a collaborator", user_id=str(user_id))
    now = now or models.utcnow()
    with transaction(db):
        db.delete(row)
        audit.record(
            db,
            entity.entity_type,
            entity.id,
            "remove_collaborator",
            auth.actor_id,
            "Collaborator removed",
            {"user_id": str(user_id)},
            now=now,
        )
    logger.info("%s %s: collaborator %s removed by %s", entity.entity_type, entity.id, user_id, auth.actor_id)
