"""Version families: new drafts derived from an approved or active definition."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session

from .. import audit, models, rbac
from ..auth import AuthContext
from ..errors import Conflict, InvalidTransition
from ..repository import ProgramRepository

logger = logging.getLogger(__name__)

# purpose: maintain one-latest/one-active families and monotonic version numbers
# status: active

VERSIONABLE_STATUSES = ("approved", "active")


@dataclass(slots=True)
class EditEligibility:
    can_edit: bool
    reason: str | None = None
    newer_versions: list[dict] = field(default_factory=list)


def _version_ref(entity: models.ProgramDefinition) -> dict:
    return {"id": str(entity.id), "version": entity.version, "status": entity.status}


def copy_for_version(entity: models.ProgramDefinition) -> dict:
    """Column values of ``entity`` minus identity, lifecycle and approval state."""

    mapper = sa_inspect(type(entity))
    values = {}
    for column in mapper.columns:
        if column.key in entity.VERSION_BLACKLIST:
            continue
        values[column.key] = copy.deepcopy(getattr(entity, column.key))
    return values


def create_version(
    db: Session,
    auth: AuthContext,
    source: models.ProgramDefinition,
    *,
    now: datetime | None = None,
) -> models.ProgramDefinition:
    """Create the next draft version of ``source``'s family.

    The previous latest member loses its flag in the same transaction as the
    insert, so the family always has exactly one latest version.
    """

    rbac.ensure(
        rbac.can_share(db, auth, source),
        "Only the creator, department faculty, a collaborator or an admin can create a new version",
        entity_id=str(source.id),
    )
    if source.status not in VERSIONABLE_STATUSES:
        logger.debug("create_version refused for %s %s: status %s", source.entity_type, source.id, source.status)
        raise InvalidTransition(
            f"New versions can only be created from approved or active {source.entity_type}s",
            current_status=source.status,
            allowed_statuses=list(VERSIONABLE_STATUSES),
        )
    now = now or models.utcnow()
    repo = ProgramRepository(db, type(source))
    with repo.transaction():
        family = repo.family_of(source)
        in_flight = [
            member
            for member in family
            if member.id != source.id and member.status in models.IN_FLIGHT_STATUSES
        ]
        if in_flight:
            existing = in_flight[-1]
            raise Conflict(
                f"Version {existing.version} of {source.code} is already {existing.status}; "
                "finish or discard it before creating another",
                existing_version=_version_ref(existing),
            )
        next_version = max(member.version for member in family) + 1
        for member in family:
            if member.is_latest_version:
                repo.update(member, is_latest_version=False)
        db.flush()
        values = copy_for_version(source)
        values.update(
            family_root_id=source.family_id,
            version=next_version,
            is_latest_version=True,
            status="draft",
            created_by=auth.actor_id,
            created_at=now,
            updated_at=now,
        )
        created = repo.create(**values)
        audit.record(
            db,
            created.entity_type,
            created.id,
            "create_version",
            auth.actor_id,
            f"Version {next_version} of {created.code} created from v{source.version}",
            {"source_id": str(source.id), "source_version": source.version},
            now=now,
        )
    logger.info(
        "%s %s v%s created from v%s by %s",
        created.entity_type,
        created.id,
        next_version,
        source.version,
        auth.actor_id,
    )
    return created


def edit_eligibility(db: Session, entity: models.ProgramDefinition) -> EditEligibility:
    """Report whether ``entity`` may still be edited in place."""

    repo = ProgramRepository(db, type(entity))
    newer = [
        _version_ref(member)
        for member in repo.family_of(entity)
        if member.version > entity.version and member.status in models.IN_FLIGHT_STATUSES
    ]
    if newer:
        return EditEligibility(
            can_edit=False,
            reason="A newer version of this definition is already in progress",
            newer_versions=newer,
        )
    if entity.status != "draft":
        return EditEligibility(
            can_edit=False,
            reason=f"Only drafts can be edited; create a new version of this {entity.status} {entity.entity_type}",
        )
    return EditEligibility(can_edit=True)
