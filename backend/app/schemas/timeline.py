"""Timeline schemas."""

# purpose: unified history entries merged from the audit ledger and entity messages
# status: active

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field


class TimelineActor(BaseModel):
    id: UUID | None = None
    name: str | None = None


class TimelineEvent(BaseModel):
    """Single history entry; ``kind`` tells which log it came from."""

    event_id: str
    kind: Literal["audit", "message"]
    action: str
    text: str | None = None
    actor: TimelineActor = Field(default_factory=TimelineActor)
    timestamp: datetime


class TimelineResponse(BaseModel):
    entity_type: str
    entity_id: UUID
    events: list[TimelineEvent] = Field(default_factory=list)
