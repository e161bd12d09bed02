"""
Integrity state embedded in hash-bearing aggregates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class IntegrityStatus(str, Enum):
    """Integrity state of a hash-bearing entity.

    - VALID: stored hash matched content at last check (or no check yet)
    - WARNING: non-fatal divergence (reporting periods); admin override clears it
    - FAILED: divergence on an entity whose policy is terminal (decisions)
    """
    VALID = "valid"
    WARNING = "warning"
    FAILED = "failed"


@dataclass
class IntegrityRecord:
    """Integrity fields owned by the aggregate, maintained by the integrity service."""

    integrity_hash: str = ""
    status: IntegrityStatus = IntegrityStatus.VALID
    warning_details: str | None = None
    override_by: str | None = None
    override_justification: str | None = None

    @property
    def blocks_publication(self) -> bool:
        return self.status != IntegrityStatus.VALID

    def to_dict(self) -> dict[str, Any]:
        return {
            "integrity_hash": self.integrity_hash,
            "status": self.status.value,
            "warning_details": self.warning_details,
            "override_by": self.override_by,
            "override_justification": self.override_justification,
        }


@dataclass(frozen=True)
class VersionSnapshot:
    """Frozen prior state of a versioned aggregate.

    Captured before the live record advances its version; integrity_hash is
    the hash the record carried at that version.
    """

    version: int
    integrity_hash: str
    fields: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "integrity_hash": self.integrity_hash,
            "fields": dict(self.fields),
        }
