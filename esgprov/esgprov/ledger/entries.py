"""
Immutable audit entry types for the audit trail.

An AuditEntry records who did what to which entity, and the field-level
changes it produced. Entries are frozen: once the trail has assigned an id,
timestamp and chain hash, nothing rewrites them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from ..util import as_utc

# Action constants used by the reference collaborators
ACTION_CREATE = "create"
ACTION_UPDATE = "update"
ACTION_DELETE = "delete"
ACTION_APPROVE = "approve"
ACTION_ROLLOVER = "rollover"
ACTION_ACCESS_DENIED = "access-denied"
ACTION_INTEGRITY_FAILED = "integrity-check-failed"
ACTION_OVERRIDE = "override"

ACTIONS = frozenset({
    ACTION_CREATE,
    ACTION_UPDATE,
    ACTION_DELETE,
    ACTION_APPROVE,
    ACTION_ROLLOVER,
    ACTION_ACCESS_DENIED,
    ACTION_INTEGRITY_FAILED,
    ACTION_OVERRIDE,
})


@dataclass(frozen=True)
class FieldChange:
    """A single differing field between two canonical snapshots.

    old_value is None when the field did not exist before (entity creation).
    """

    field: str
    old_value: str | None
    new_value: str | None

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "old_value": self.old_value, "new_value": self.new_value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldChange:
        return cls(
            field=data["field"],
            old_value=data.get("old_value"),
            new_value=data.get("new_value"),
        )


@dataclass(frozen=True)
class AuditEntry:
    """
    One immutable row of the audit trail.

    id, timestamp and the chain hashes are assigned by AuditTrail.append();
    a draft built with create_entry() leaves them empty.
    """

    # What happened
    action: str
    entity_type: str
    entity_id: str

    # Who did it
    user_id: str
    user_name: str = ""

    # Field-level effects (empty for pure access/denial events)
    changes: tuple[FieldChange, ...] = field(default_factory=tuple)
    change_note: str | None = None

    # Correlation metadata for filtered views
    section_id: str | None = None
    owner_id: str | None = None

    # Assigned on append
    id: str = ""
    timestamp: datetime | None = None
    previous_entry_hash: str | None = None
    entry_hash: str = ""

    def change_for(self, field_name: str) -> FieldChange | None:
        for change in self.changes:
            if change.field == field_name:
                return change
        return None

    def hashable_content(self) -> dict[str, Any]:
        """Entry content covered by entry_hash (everything except entry_hash)."""
        data = self.to_dict()
        data.pop("entry_hash", None)
        return data

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        result: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "changes": [c.to_dict() for c in self.changes],
        }
        if self.change_note is not None:
            result["change_note"] = self.change_note
        if self.section_id is not None:
            result["section_id"] = self.section_id
        if self.owner_id is not None:
            result["owner_id"] = self.owner_id
        result["previous_entry_hash"] = self.previous_entry_hash
        result["entry_hash"] = self.entry_hash
        return result

    def to_json(self) -> str:
        """Serialize to JSON string (single line)."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditEntry:
        """Reconstruct from JSON dict."""
        timestamp = data.get("timestamp")
        return cls(
            id=data.get("id", ""),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else None,
            action=data["action"],
            entity_type=data["entity_type"],
            entity_id=data["entity_id"],
            user_id=data["user_id"],
            user_name=data.get("user_name", ""),
            changes=tuple(FieldChange.from_dict(c) for c in data.get("changes", [])),
            change_note=data.get("change_note"),
            section_id=data.get("section_id"),
            owner_id=data.get("owner_id"),
            previous_entry_hash=data.get("previous_entry_hash"),
            entry_hash=data.get("entry_hash", ""),
        )

    @classmethod
    def from_json(cls, line: str) -> AuditEntry:
        """Parse from JSON string."""
        return cls.from_dict(json.loads(line))


def create_entry(
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    user_name: str = "",
    *,
    changes: Sequence[FieldChange] = (),
    change_note: str | None = None,
    section_id: str | None = None,
    owner_id: str | None = None,
    timestamp: datetime | None = None,
) -> AuditEntry:
    """
    Factory for draft entries.

    The trail assigns id and chain hashes. A timestamp may be pinned here
    (imports, tests); otherwise the trail stamps the append time.
    """
    timestamp = as_utc(timestamp)
    return AuditEntry(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        user_name=user_name,
        changes=tuple(changes),
        change_note=change_note,
        section_id=section_id,
        owner_id=owner_id,
        timestamp=timestamp,
    )
