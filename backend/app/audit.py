"""Append-only audit ledger for program definitions and enrollment requests."""

from datetime import datetime, timezone
from uuid import UUID
from sqlalchemy.orm import Session
from sqlalchemy import func
from . import models

ACTIONS = frozenset(
    {
        "create",
        "update",
        "submit",
        "approve",
        "reject",
        "publish",
        "archive",
        "delete",
        "create_version",
        "add_collaborator",
        "remove_collaborator",
        "save_draft",
        "hod_approve",
        "hod_reject",
    }
)


def record(
    db: Session,
    entity_type: str,
    entity_id: str | UUID,
    action: str,
    actor_id: str | UUID | None,
    description: str,
    details: dict | None = None,
    *,
    now: datetime | None = None,
) -> models.AuditLog:
    """Stage one ledger row; the caller's transaction commits it with the state change."""

    if action not in ACTIONS:
        raise ValueError(f"unknown audit action {action!r}")
    target_id = UUID(str(entity_id))
    db.flush()
    latest = (
        db.query(func.max(models.AuditLog.sequence))
        .filter(models.AuditLog.entity_type == entity_type, models.AuditLog.entity_id == target_id)
        .scalar()
    )
    log = models.AuditLog(
        entity_type=entity_type,
        entity_id=target_id,
        action=action,
        user_id=UUID(str(actor_id)) if actor_id else None,
        description=description,
        details=details or {},
        sequence=(latest or 0) + 1,
        created_at=now or datetime.now(timezone.utc),
    )
    db.add(log)
    return log


def entries_for(db: Session, entity_type: str, entity_id: UUID) -> list[models.AuditLog]:
    return (
        db.query(models.AuditLog)
        .filter(models.AuditLog.entity_type == entity_type, models.AuditLog.entity_id == entity_id)
        .order_by(models.AuditLog.sequence.asc())
        .all()
    )
