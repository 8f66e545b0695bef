"""Entity history API routes."""

# purpose: expose the merged audit/message history of a degree, course or enrollment request
# status: active

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..auth import AuthContext, get_auth_context
from ..database import get_db
from ..services import timeline

router = APIRouter(prefix="/api/timeline", tags=["timeline"])


@router.get("/{entity_type}/{entity_id}", response_model=schemas.TimelineResponse)
def get_timeline(
    entity_type: str,
    entity_id: UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> schemas.TimelineResponse:
    """Merged audit entries and messages for one entity, oldest first."""

    return timeline.build_timeline(db, entity_type, entity_id)
