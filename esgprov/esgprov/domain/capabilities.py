"""
Capability contracts implemented by domain entity types.

An entity type opts into the provenance engine by implementing one or both
protocols. The engine never walks entity attributes itself: each type supplies
its own ordered canonical snapshot (for change detection and replay) and its
own hashable content (for tamper evidence).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..integrity.records import IntegrityRecord


@runtime_checkable
class Auditable(Protocol):
    """Entity whose mutations are recorded in the audit trail."""

    id: str
    entity_type: str

    def to_audit_snapshot(self) -> Mapping[str, Optional[str]]:
        """Ordered field name -> canonical string value."""
        ...


@runtime_checkable
class HashBearing(Protocol):
    """Entity that carries an embedded IntegrityRecord."""

    id: str
    entity_type: str
    integrity: IntegrityRecord

    def to_hashable_content(self) -> Mapping[str, Any]:
        """Content fields covered by the integrity hash (JSON-serializable)."""
        ...
