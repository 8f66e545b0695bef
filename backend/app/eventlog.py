"""Utilities for recording free-text messages attached to registry entities."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models

# purpose: persist reviewer and author notes that complement the audit ledger
# inputs: SQLAlchemy session, entity scope, sender, message body
# outputs: Message rows with per-entity sequential ordering
# status: active


def record_message(
    db: Session,
    entity_type: str,
    entity_id: UUID,
    sender_id: UUID | None,
    text: str,
    *,
    now: datetime | None = None,
) -> models.Message:
    """Stage a message row inside the caller's transaction."""

    db.flush()
    latest = (
        db.query(func.max(models.Message.sequence))
        .filter(models.Message.entity_type == entity_type, models.Message.entity_id == entity_id)
        .scalar()
    )
    message = models.Message(
        entity_type=entity_type,
        entity_id=entity_id,
        sender_id=sender_id,
        body=text,
        sequence=(latest or 0) + 1,
        created_at=now or datetime.now(timezone.utc),
    )
    db.add(message)
    return message


def messages_for(db: Session, entity_type: str, entity_id: UUID) -> list[models.Message]:
    return (
        db.query(models.Message)
        .filter(models.Message.entity_type == entity_type, models.Message.entity_id == entity_id)
        .order_by(models.Message.sequence.asc())
        .all()
    )
