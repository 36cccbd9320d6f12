"""
Store error taxonomy.

Every error carries a stable, user-safe ``public_message``. The underlying
storage-engine error is logged where it is caught and chained as ``__cause__``,
but it is never part of what the command surface returns.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Machine-readable error kinds."""

    NOT_FOUND = "not_found"
    CONSTRAINT_VIOLATION = "constraint_violation"
    TRANSACTION_FAILURE = "transaction_failure"
    IO_FAILURE = "io_failure"
    UNAVAILABLE = "unavailable"


class StoreError(Exception):
    """Base exception for all store errors.

    Attributes:
        public_message: Message that is safe to show to the user
        kind: Machine-readable error kind
        details: Extra context for logs (never serialized)
    """

    kind: ErrorKind = ErrorKind.TRANSACTION_FAILURE
    http_status: int = 500
    default_message: str = "Something went wrong. Please try again."

    def __init__(self, public_message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.public_message = public_message or self.default_message
        self.details = details or {}
        super().__init__(self.public_message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON payload returned to the UI."""
        return {"error": self.public_message, "kind": self.kind.value}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.kind.name}] {self.public_message} ({detail_str})"
        return f"[{self.kind.name}] {self.public_message}"


class NotFoundError(StoreError):
    """Raised when a mutation targets an id that does not exist."""

    kind = ErrorKind.NOT_FOUND
    http_status = 404
    default_message = "The requested item no longer exists."

    def __init__(self, entity: str, entity_id: int, public_message: Optional[str] = None):
        super().__init__(
            public_message or f"{entity.capitalize()} with id {entity_id} not found",
            details={"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class ConstraintViolationError(StoreError):
    """Raised when a write breaks a foreign key or other constraint."""

    kind = ErrorKind.CONSTRAINT_VIOLATION
    http_status = 409
    default_message = "The change conflicts with existing data. Please refresh and try again."


class TransactionFailureError(StoreError):
    """Raised when a transaction cannot begin, apply or commit."""

    kind = ErrorKind.TRANSACTION_FAILURE
    http_status = 500


class IOFailureError(StoreError):
    """Raised on filesystem failures (backup copy, directory creation)."""

    kind = ErrorKind.IO_FAILURE
    http_status = 500
    default_message = "A file operation failed. Please try again."


class UnavailableError(StoreError):
    """Raised when the store cannot be reached (locked, closed, exhausted pool)."""

    kind = ErrorKind.UNAVAILABLE
    http_status = 503
    default_message = "The note store is unavailable right now. Please try again."
