"""Typed instructor references stored in ``Course.faculty_details``."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Union
from uuid import UUID

from sqlalchemy.orm import Session

from ..errors import ValidationFailed
from ..repository import users_by_id

# purpose: parse the faculty details blob into a closed set of reference shapes and resolve user ids in one query
# status: active


@dataclass(frozen=True)
class UserRef:
    user_id: UUID

    @property
    def raw(self) -> str:
        return str(self.user_id)


@dataclass(frozen=True)
class NameRef:
    name: str

    @property
    def raw(self) -> str:
        return self.name


InstructorRef = Union[UserRef, NameRef]

SINGLE_SLOTS = ("primary_instructor", "instructor")
LIST_SLOTS = ("co_instructors", "guest_lecturers", "lab_instructors")


@dataclass(frozen=True)
class StructuredInstructor:
    """One entry of the ``instructors`` list: a reference plus passthrough attributes."""

    ref: InstructorRef
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class FacultyDetails:
    singles: dict[str, InstructorRef] = field(default_factory=dict)
    lists: dict[str, list[InstructorRef]] = field(default_factory=dict)
    instructors: list[StructuredInstructor] = field(default_factory=list)
    coordinator: StructuredInstructor | None = None
    office_hours: str | None = None

    def references(self) -> Iterable[InstructorRef]:
        yield from self.singles.values()
        for refs in self.lists.values():
            yield from refs
        for entry in self.instructors:
            yield entry.ref
        if self.coordinator is not None:
            yield self.coordinator.ref


def parse_ref(value: Any, slot: str) -> InstructorRef:
    if isinstance(value, UUID):
        return UserRef(value)
    if not isinstance(value, str) or not value.strip():
        raise ValidationFailed(f"{slot} must be a user id or a name", slot=slot)
    text = value.strip()
    try:
        return UserRef(UUID(text))
    except ValueError:
        return NameRef(text)


def _parse_structured(value: Any, slot: str, id_key: str) -> StructuredInstructor:
    if not isinstance(value, dict) or not value.get(id_key):
        raise ValidationFailed(f"{slot} entries need an {id_key}", slot=slot)
    extra = {key: item for key, item in value.items() if key != id_key}
    return StructuredInstructor(ref=parse_ref(value[id_key], slot), extra=extra)


def parse_faculty_details(raw: dict | None, *, strict: bool = True) -> FacultyDetails:
    """Build :class:`FacultyDetails` from stored JSON.

    ``strict`` rejects unknown keys; stored rows are read leniently so older
    blobs keep rendering.
    """

    details = FacultyDetails()
    if not raw:
        return details
    if not isinstance(raw, dict):
        raise ValidationFailed("faculty_details must be an object")
    known = {*SINGLE_SLOTS, *LIST_SLOTS, "instructors", "coordinator", "office_hours"}
    unknown = sorted(set(raw) - known)
    if unknown and strict:
        raise ValidationFailed("Unknown faculty_details fields", fields=unknown, allowed=sorted(known))
    for slot in SINGLE_SLOTS:
        if raw.get(slot):
            details.singles[slot] = parse_ref(raw[slot], slot)
    for slot in LIST_SLOTS:
        values = raw.get(slot) or []
        if not isinstance(values, list):
            raise ValidationFailed(f"{slot} must be a list", slot=slot)
        details.lists[slot] = [parse_ref(value, slot) for value in values]
    for entry in raw.get("instructors") or []:
        details.instructors.append(_parse_structured(entry, "instructors", "instructorId"))
    if raw.get("coordinator"):
        details.coordinator = _parse_structured(raw["coordinator"], "coordinator", "coordinatorId")
    if raw.get("office_hours") is not None:
        details.office_hours = str(raw["office_hours"])
    return details


def dump_faculty_details(details: FacultyDetails) -> dict[str, Any]:
    """Serialize back to the stored JSON shape."""

    payload: dict[str, Any] = {slot: ref.raw for slot, ref in details.singles.items()}
    for slot, refs in details.lists.items():
        if refs:
            payload[slot] = [ref.raw for ref in refs]
    if details.instructors:
        payload["instructors"] = [
            {**entry.extra, "instructorId": entry.ref.raw} for entry in details.instructors
        ]
    if details.coordinator is not None:
        payload["coordinator"] = {**details.coordinator.extra, "coordinatorId": details.coordinator.ref.raw}
    if details.office_hours is not None:
        payload["office_hours"] = details.office_hours
    return payload


def resolve_faculty_details(db: Session, raw: dict | None) -> dict[str, Any]:
    """Replace user references with display names using one batched lookup.

    Unknown ids and free-text names are returned unchanged.
    """

    details = parse_faculty_details(raw, strict=False)
    user_ids = [ref.user_id for ref in details.references() if isinstance(ref, UserRef)]
    users = users_by_id(db, user_ids)

    def display(ref: InstructorRef) -> str:
        if isinstance(ref, UserRef) and ref.user_id in users:
            return users[ref.user_id].full_name
        return ref.raw

    resolved: dict[str, Any] = {slot: display(ref) for slot, ref in details.singles.items()}
    for slot, refs in details.lists.items():
        resolved[slot] = [display(ref) for ref in refs]
    if details.instructors:
        resolved["instructors"] = [
            {**entry.extra, "instructorId": display(entry.ref)} for entry in details.instructors
        ]
    if details.coordinator is not None:
        resolved["coordinator"] = {
            **details.coordinator.extra,
            "coordinatorId": display(details.coordinator.ref),
        }
    if details.office_hours is not None:
        resolved["office_hours"] = details.office_hours
    return resolved
