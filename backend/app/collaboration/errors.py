"""Typed failures raised by the collaboration core.

Every failure carries a kind so the transport layer can map it to a
protocol-specific status without inspecting messages.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Failure category."""

    validation = "validation"
    not_found = "not_found"
    permission = "permission"
    conflict = "conflict"
    internal = "internal"


class CollaborationError(Exception):
    """Base class for all collaboration failures."""

    kind: ErrorKind = ErrorKind.internal

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an error envelope."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": {key: str(value) for key, value in self.details.items()},
        }


class ValidationError(CollaborationError):
    """Missing or malformed input."""

    kind = ErrorKind.validation


class NotFoundError(CollaborationError):
    """Entity absent, or not visible within the caller's organization."""

    kind = ErrorKind.not_found

    def __init__(self, entity: str, entity_id: Any = None, **details: Any) -> None:
        message = f"{entity} not found" if entity_id is None else f"{entity} '{entity_id}' not found"
        super().__init__(message, entity=entity, **details)


class PermissionDeniedError(CollaborationError):
    """Role or ownership check failed."""

    kind = ErrorKind.permission


class ConflictError(CollaborationError):
    """Uniqueness violated (duplicate active session, duplicate version number)."""

    kind = ErrorKind.conflict


class InternalError(CollaborationError):
    """Unexpected store failure."""

    kind = ErrorKind.internal
