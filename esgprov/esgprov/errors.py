"""
Error taxonomy and explicit operation results.

Validation and authorization failures are reported back to callers as
OperationResult values naming the exact reason. The exception classes are
still the taxonomy: a result carries the error instance it failed with, and
owning stores raise NotFoundError for unknown entity ids.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class ProvenanceError(Exception):
    """Base class for provenance engine errors."""


class ValidationError(ProvenanceError, ValueError):
    """Input rejected for content reasons (e.g. blank override justification)."""


class AuthorizationError(ProvenanceError):
    """Actor is not permitted to perform the operation."""


class NotFoundError(ProvenanceError, LookupError):
    """Unknown entity id, propagated from the owning collaborator."""


class JournalError(ProvenanceError):
    """An audit journal file could not be read back."""


@dataclass(frozen=True)
class OperationResult:
    """Outcome of an operation that may be rejected."""

    success: bool
    message: str = ""
    error: ProvenanceError | None = None

    @classmethod
    def ok(cls, message: str = "") -> OperationResult:
        return cls(success=True, message=message)

    @classmethod
    def fail(cls, error: ProvenanceError) -> OperationResult:
        return cls(success=False, message=str(error), error=error)

    @property
    def error_kind(self) -> str | None:
        """Short name of the failure class ("validation", "authorization", ...)."""
        if self.error is None:
            return None
        return {
            ValidationError: "validation",
            AuthorizationError: "authorization",
            NotFoundError: "not_found",
        }.get(type(self.error), "error")

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.error is not None:
            result["error"] = self.error_kind
        return result
