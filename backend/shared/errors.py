"""
Domain error taxonomy.

Handlers raise these; api.middleware maps each class to an HTTP status and
a `{"error", "message", ...details}` body.
"""
from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class for client-facing errors."""

    status_code = 400
    code = "bad_request"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.details}


class NotFound(DomainError):
    status_code = 404
    code = "not_found"


class InvalidOperation(DomainError):
    """A status or state precondition was violated."""
    status_code = 400
    code = "invalid_operation"


class InvalidTransition(InvalidOperation):
    code = "invalid_transition"


class InvalidArgument(DomainError):
    """A malformed role, status, event type or reference was supplied."""
    status_code = 400
    code = "invalid_argument"


class Unauthorized(DomainError):
    status_code = 401
    code = "unauthorized"


class Forbidden(DomainError):
    status_code = 403
    code = "forbidden"


class Conflict(DomainError):
    status_code = 409
    code = "conflict"
