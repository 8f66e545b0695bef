"""Timeline aggregation helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from .. import audit, eventlog, models, schemas
from ..errors import ValidationFailed
from ..repository import users_by_id

# purpose: merge audit ledger entries and free-text messages into one ordered entity history
# status: active
# depends_on: backend.app.models.AuditLog, backend.app.models.Message

ENTITY_TYPES = ("degree", "course", "enrollment")


def _as_utc(value: datetime | None) -> datetime:
    if value is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class _EventAccumulator:
    entries: list[schemas.TimelineEvent]
    names: dict[UUID, str]

    def append(
        self,
        *,
        event_id: str,
        kind: str,
        action: str,
        text: str | None,
        actor_id: UUID | None,
        timestamp: datetime | None,
    ) -> None:
        self.entries.append(
            schemas.TimelineEvent(
                event_id=event_id,
                kind=kind,
                action=action,
                text=text,
                actor=schemas.TimelineActor(id=actor_id, name=self.names.get(actor_id) if actor_id else None),
                timestamp=_as_utc(timestamp),
            )
        )


def build_timeline(db: Session, entity_type: str, entity_id: UUID) -> schemas.TimelineResponse:
    """Return every audit entry and message for the entity, oldest first.

    The sort is stable and audit entries are collected first, so on equal
    timestamps audit entries precede messages and each log keeps its order.
    """

    if entity_type not in ENTITY_TYPES:
        raise ValidationFailed("Unknown entity type", entity_type=entity_type, allowed=list(ENTITY_TYPES))
    audit_rows = audit.entries_for(db, entity_type, entity_id)
    message_rows = eventlog.messages_for(db, entity_type, entity_id)
    users = users_by_id(
        db,
        [row.user_id for row in audit_rows] + [row.sender_id for row in message_rows],
    )
    collector = _EventAccumulator([], {user_id: user.full_name for user_id, user in users.items()})
    _collect_audit(collector, audit_rows)
    _collect_messages(collector, message_rows)
    collector.entries.sort(key=lambda entry: entry.timestamp)
    return schemas.TimelineResponse(entity_type=entity_type, entity_id=entity_id, events=collector.entries)


def _collect_audit(collector: _EventAccumulator, rows: list[models.AuditLog]) -> None:
    for row in rows:
        collector.append(
            event_id=f"audit:{row.id}",
            kind="audit",
            action=row.action,
            text=row.description,
            actor_id=row.user_id,
            timestamp=row.created_at,
        )


def _collect_messages(collector: _EventAccumulator, rows: list[models.Message]) -> None:
    for row in rows:
        collector.append(
            event_id=f"message:{row.id}",
            kind="message",
            action="message",
            text=row.body,
            actor_id=row.sender_id,
            timestamp=row.created_at,
        )
