"""Approval state machine shared by degrees and courses.

``draft -> pending_approval -> approved -> active``, with ``reject`` sending a
pending definition back to ``draft`` and ``publish`` archiving whichever
sibling in the family was active before.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from .. import audit, eventlog, models, rbac
from ..auth import AuthContext
from ..config import get_settings
from ..errors import InvalidTransition, ValidationFailed
from ..notify import Notifier, notify_safely
from ..repository import ProgramRepository, department_heads

logger = logging.getLogger(__name__)

_STATUS_HINTS = {
    ("publish", "draft"): "must be submitted and approved before publishing",
    ("publish", "pending_approval"): "is still pending approval",
    ("publish", "active"): "is already active",
    ("approve", "approved"): "has already been approved",
    ("approve", "draft"): "has not been submitted",
    ("reject", "draft"): "has not been submitted",
    ("submit", "pending_approval"): "is already awaiting approval",
}


def _label(entity: models.ProgramDefinition) -> str:
    return f"{entity.entity_type.title()} {entity.code} v{entity.version}"


def require_status(entity: models.ProgramDefinition, expected: str, operation: str) -> None:
    if entity.status == expected:
        return
    hint = _STATUS_HINTS.get((operation, entity.status), f"is {entity.status}")
    logger.debug("%s refused for %s %s: status %s", operation, entity.entity_type, entity.id, entity.status)
    raise InvalidTransition(
        f"Cannot {operation}: {_label(entity)} {hint}",
        current_status=entity.status,
        required_status=expected,
    )


def _payload(entity: models.ProgramDefinition, recipients: list[str], message: str | None = None) -> dict:
    return {
        "entity_label": entity.entity_type.title(),
        "entity_type": entity.entity_type,
        "entity_id": str(entity.id),
        "code": entity.code,
        "version": entity.version,
        "recipients": recipients,
        "message": message,
    }


def _creator_email(db: Session, entity: models.ProgramDefinition) -> list[str]:
    creator = db.get(models.User, entity.created_by)
    return [creator.email] if creator and creator.email else []


def submit(
    db: Session,
    auth: AuthContext,
    entity: models.ProgramDefinition,
    *,
    note: str | None = None,
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> models.ProgramDefinition:
    """Send a draft to the department head for review."""

    rbac.ensure(
        rbac.can_author(db, auth, entity),
        "Only the creator, a collaborator or an admin can submit for approval",
        entity_id=str(entity.id),
    )
    require_status(entity, "draft", "submit")
    now = now or models.utcnow()
    repo = ProgramRepository(db, type(entity))
    with repo.transaction():
        repo.update(entity, status="pending_approval", submitted_at=now, rejection_reason=None)
        audit.record(
            db,
            entity.entity_type,
            entity.id,
            "submit",
            auth.actor_id,
            f"{_label(entity)} submitted for approval",
            {"from": "draft", "to": "pending_approval"},
            now=now,
        )
        if note and note.strip():
            eventlog.record_message(db, entity.entity_type, entity.id, auth.actor_id, note.strip(), now=now)
    logger.info(
        "%s %s v%s draft -> pending_approval by %s", entity.entity_type, entity.id, entity.version, auth.actor_id
    )
    heads = [head.email for head in department_heads(db, entity.department_code) if head.email]
    notify_safely(notifier, "program.submitted", _payload(entity, heads, note))
    return entity


def approve(
    db: Session,
    auth: AuthContext,
    entity: models.ProgramDefinition,
    *,
    note: str | None = None,
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> models.ProgramDefinition:
    rbac.ensure(
        rbac.is_hod_for(auth, entity.department_code),
        "Only the head of the owning department can approve",
        department_code=entity.department_code,
    )
    require_status(entity, "pending_approval", "approve")
    now = now or models.utcnow()
    repo = ProgramRepository(db, type(entity))
    with repo.transaction():
        repo.update(entity, status="approved", approved_by=auth.actor_id, approved_at=now)
        audit.record(
            db,
            entity.entity_type,
            entity.id,
            "approve",
            auth.actor_id,
            f"{_label(entity)} approved",
            {"from": "pending_approval", "to": "approved"},
            now=now,
        )
        text = "Approved by HOD"
        if note and note.strip():
            text = f"{text}: {note.strip()}"
        eventlog.record_message(db, entity.entity_type, entity.id, auth.actor_id, text, now=now)
    logger.info(
        "%s %s v%s pending_approval -> approved by %s", entity.entity_type, entity.id, entity.version, auth.actor_id
    )
    notify_safely(notifier, "program.approved", _payload(entity, _creator_email(db, entity), note))
    return entity


def validate_reason(reason: str | None) -> str:
    settings = get_settings()
    cleaned = (reason or "").strip()
    if not settings.reject_reason_min <= len(cleaned) <= settings.reject_reason_max:
        raise ValidationFailed(
            f"Reason must be between {settings.reject_reason_min} and {settings.reject_reason_max} characters",
            min_length=settings.reject_reason_min,
            max_length=settings.reject_reason_max,
            length=len(cleaned),
        )
    return cleaned


def reject(
    db: Session,
    auth: AuthContext,
    entity: models.ProgramDefinition,
    reason: str,
    *,
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> models.ProgramDefinition:
    """Request changes: the definition returns to ``draft`` carrying the reason."""

    cleaned = validate_reason(reason)
    rbac.ensure(
        rbac.is_hod_for(auth, entity.department_code),
        "Only the head of the owning department can request changes",
        department_code=entity.department_code,
    )
    require_status(entity, "pending_approval", "reject")
    now = now or models.utcnow()
    repo = ProgramRepository(db, type(entity))
    with repo.transaction():
        repo.update(
            entity,
            status="draft",
            rejection_reason=cleaned,
            submitted_at=None,
            approved_by=None,
            approved_at=None,
        )
        audit.record(
            db,
            entity.entity_type,
            entity.id,
            "reject",
            auth.actor_id,
            f"Changes requested for {_label(entity)}",
            {"from": "pending_approval", "to": "draft", "reason": cleaned},
            now=now,
        )
        eventlog.record_message(
            db, entity.entity_type, entity.id, auth.actor_id, f"Change requested: {cleaned}", now=now
        )
    logger.info(
        "%s %s v%s pending_approval -> draft by %s", entity.entity_type, entity.id, entity.version, auth.actor_id
    )
    notify_safely(notifier, "program.rejected", _payload(entity, _creator_email(db, entity), cleaned))
    return entity


def publish(
    db: Session,
    auth: AuthContext,
    entity: models.ProgramDefinition,
    *,
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> models.ProgramDefinition:
    """Activate an approved version and archive the previously active sibling atomically."""

    rbac.ensure(
        rbac.can_share(db, auth, entity),
        "Only the creator, department faculty, a collaborator or an admin can publish",
        entity_id=str(entity.id),
    )
    require_status(entity, "approved", "publish")
    now = now or models.utcnow()
    repo = ProgramRepository(db, type(entity))
    archived: list[int] = []
    with repo.transaction():
        for sibling in repo.family_of(entity):
            if sibling.id == entity.id or sibling.status != "active":
                continue
            repo.update(sibling, status="archived")
            archived.append(sibling.version)
            audit.record(
                db,
                sibling.entity_type,
                sibling.id,
                "archive",
                auth.actor_id,
                f"{_label(sibling)} archived by publication of v{entity.version}",
                {"from": "active", "to": "archived", "superseded_by": str(entity.id)},
                now=now,
            )
        db.flush()
        repo.update(entity, status="active")
        audit.record(
            db,
            entity.entity_type,
            entity.id,
            "publish",
            auth.actor_id,
            f"{_label(entity)} published",
            {"from": "approved", "to": "active", "archived_versions": archived},
            now=now,
        )
    logger.info(
        "%s %s v%s approved -> active by %s (archived %s)",
        entity.entity_type,
        entity.id,
        entity.version,
        auth.actor_id,
        archived or "none",
    )
    notify_safely(notifier, "program.published", _payload(entity, _creator_email(db, entity)))
    return entity
