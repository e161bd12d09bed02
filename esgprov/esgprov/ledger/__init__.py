"""
Audit ledger for ESG disclosure provenance.

Every mutation of an audited entity becomes an immutable AuditEntry carrying
the field-level changes that produced it.

Components:
- entries: FieldChange / AuditEntry types and action names
- detector: field-level change detection between canonical snapshots
- trail: append-only, hash-chained, thread-safe audit trail
- replay: version reconstruction by folding entity history
- policy: explicit audit-worthiness table per entity type

Design principles:
- Append-only: entries are never rewritten or deleted
- Attributed: actor on every entry
- Replayable: folding the history reproduces live state
"""

from .entries import AuditEntry, FieldChange, create_entry
from .detector import build_snapshot, canonical_value, detect_changes
from .trail import AuditTrail, ChainVerification
from .replay import compare_versions, reconstruct, timeline
from .policy import AuditPolicy

__all__ = [
    "AuditEntry",
    "FieldChange",
    "create_entry",
    "build_snapshot",
    "canonical_value",
    "detect_changes",
    "AuditTrail",
    "ChainVerification",
    "compare_versions",
    "reconstruct",
    "timeline",
    "AuditPolicy",
]
