"""Lifecycle, versioning and collaborator endpoints shared by degrees and courses."""

# purpose: expose submit/approve/reject/publish, version families and collaborators per program type
# status: active

from __future__ import annotations

from typing import Callable
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import AuthContext, get_auth_context
from ..database import get_db
from ..repository import ProgramRepository, users_by_id
from ..services import collaborators, program_catalog, program_lifecycle, version_family


def register_lifecycle_routes(
    router: APIRouter,
    model: type[models.ProgramDefinition],
    out_schema: type[BaseModel],
    serialize: Callable[[Session, models.ProgramDefinition], BaseModel] | None = None,
) -> None:
    """Attach the shared lifecycle endpoints to ``router`` for ``model``."""

    def render(db: Session, entity: models.ProgramDefinition) -> BaseModel:
        if serialize is not None:
            return serialize(db, entity)
        return out_schema.model_validate(entity)

    def load(db: Session, entity_id: UUID) -> models.ProgramDefinition:
        return ProgramRepository(db, model).get(entity_id)

    @router.delete("/{entity_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_draft(
        entity_id: UUID,
        db: Session = Depends(get_db),
        auth: AuthContext = Depends(get_auth_context),
    ):
        program_catalog.delete_draft(db, auth, load(db, entity_id))
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.post("/{entity_id}/submit", response_model=out_schema)
    def submit_for_approval(
        entity_id: UUID,
        payload: schemas.SubmitRequest | None = None,
        db: Session = Depends(get_db),
        auth: AuthContext = Depends(get_auth_context),
    ):
        entity = load(db, entity_id)
        note = payload.note if payload else None
        return render(db, program_lifecycle.submit(db, auth, entity, note=note))

    @router.post("/{entity_id}/approve", response_model=out_schema)
    def approve(
        entity_id: UUID,
        payload: schemas.ApproveRequest | None = None,
        db: Session = Depends(get_db),
        auth: AuthContext = Depends(get_auth_context),
    ):
        entity = load(db, entity_id)
        note = payload.note if payload else None
        return render(db, program_lifecycle.approve(db, auth, entity, note=note))

    @router.post("/{entity_id}/reject", response_model=out_schema)
    def request_changes(
        entity_id: UUID,
        payload: schemas.RejectRequest,
        db: Session = Depends(get_db),
        auth: AuthContext = Depends(get_auth_context),
    ):
        entity = load(db, entity_id)
        return render(db, program_lifecycle.reject(db, auth, entity, payload.reason))

    @router.post("/{entity_id}/publish", response_model=out_schema)
    def publish(
        entity_id: UUID,
        db: Session = Depends(get_db),
        auth: AuthContext = Depends(get_auth_context),
    ):
        entity = load(db, entity_id)
        return render(db, program_lifecycle.publish(db, auth, entity))

    @router.post("/{entity_id}/versions", response_model=out_schema, status_code=status.HTTP_201_CREATED)
    def create_version(
        entity_id: UUID,
        db: Session = Depends(get_db),
        auth: AuthContext = Depends(get_auth_context),
    ):
        entity = load(db, entity_id)
        return render(db, version_family.create_version(db, auth, entity))

    @router.get("/{entity_id}/versions", response_model=list[out_schema])
    def list_versions(
        entity_id: UUID,
        db: Session = Depends(get_db),
        auth: AuthContext = Depends(get_auth_context),
    ):
        entity = load(db, entity_id)
        return [render(db, member) for member in ProgramRepository(db, model).family_of(entity)]

    @router.get("/{entity_id}/can-edit", response_model=schemas.EditEligibilityOut)
    def can_edit(
        entity_id: UUID,
        db: Session = Depends(get_db),
        auth: AuthContext = Depends(get_auth_context),
    ):
        eligibility = version_family.edit_eligibility(db, load(db, entity_id))
        return schemas.EditEligibilityOut(
            can_edit=eligibility.can_edit,
            reason=eligibility.reason,
            newer_versions=eligibility.newer_versions,
        )

    @router.get("/{entity_id}/collaborators", response_model=list[schemas.CollaboratorOut])
    def list_collaborators(
        entity_id: UUID,
        db: Session = Depends(get_db),
        auth: AuthContext = Depends(get_auth_context),
    ):
        rows = collaborators.list_collaborators(db, load(db, entity_id))
        return _collaborator_payload(db, rows)

    @router.post(
        "/{entity_id}/collaborators",
        response_model=schemas.CollaboratorOut,
        status_code=status.HTTP_201_CREATED,
    )
    def add_collaborator(
        entity_id: UUID,
        payload: schemas.CollaboratorIn,
        db: Session = Depends(get_db),
        auth: AuthContext = Depends(get_auth_context),
    ):
        row = collaborators.add_collaborator(db, auth, load(db, entity_id), payload.user_id)
        return _collaborator_payload(db, [row])[0]

    @router.delete("/{entity_id}/collaborators/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
    def remove_collaborator(
        entity_id: UUID,
        user_id: UUID,
        db: Session = Depends(get_db),
        auth: AuthContext = Depends(get_auth_context),
    ):
        collaborators.remove_collaborator(db, auth, load(db, entity_id), user_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)


def _collaborator_payload(db: Session, rows: list[models.Collaborator]) -> list[schemas.CollaboratorOut]:
    users = users_by_id(db, [row.user_id for row in rows])
    return [
        schemas.CollaboratorOut(
            user_id=row.user_id,
            name=users[row.user_id].full_name,
            email=users[row.user_id].email,
            added_by=row.added_by,
            added_at=row.created_at,
        )
        for row in rows
        if row.user_id in users
    ]
