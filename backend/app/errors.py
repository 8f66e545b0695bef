"""Typed failures raised by registry services.

Services raise these instead of ``HTTPException`` so they can be driven from
the API, the CLI and tests alike. ``app.main`` maps each class to a status
code and renders ``context`` so callers can correct the request.
"""

from __future__ import annotations

from typing import Any


class RegistryError(Exception):
    """Base class for guard failures in the registry core."""

    code = "registry_error"
    status_code = 400

    def __init__(self, detail: str, **context: Any) -> None:
        super().__init__(detail)
        self.detail = detail
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.detail, "context": self.context}


class InvalidTransition(RegistryError):
    """The entity is not in a status that allows the requested operation."""

    code = "invalid_transition"
    status_code = 409


class Forbidden(RegistryError):
    code = "forbidden"
    status_code = 403


class ValidationFailed(RegistryError):
    code = "validation_failed"
    status_code = 422


class Conflict(RegistryError):
    """A uniqueness rule (code, in-flight version, active version) would break."""

    code = "conflict"
    status_code = 409


class NotFound(RegistryError):
    code = "not_found"
    status_code = 404
