"""
Field-level change detector.

Compares two canonical snapshots (ordered field name -> string mappings built
by the owning collaborator) and emits the fields whose values differ. This is
a field diff, not a text diff: it never looks inside values and never inspects
types. Free-text narratives are compared with esgprov.diff instead.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from .entries import FieldChange

Snapshot = Mapping[str, Optional[str]]

TRUE_LITERAL = "true"
FALSE_LITERAL = "false"
JOIN_SEPARATOR = ", "


def canonical_value(value: Any) -> str | None:
    """Canonical string form used by collaborators when building snapshots.

    - None stays None (absent)
    - booleans become fixed literals
    - sequences and sets are joined in a stable order (sets are sorted)
    - everything else is str()
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return TRUE_LITERAL if value else FALSE_LITERAL
    if isinstance(value, (set, frozenset)):
        return JOIN_SEPARATOR.join(sorted(str(v) for v in value))
    if isinstance(value, (list, tuple)):
        return JOIN_SEPARATOR.join(str(v) for v in value)
    return str(value)


def build_snapshot(pairs: Iterable[tuple[str, Any]]) -> dict[str, str | None]:
    """Build an ordered canonical snapshot from (field, raw value) pairs."""
    return {name: canonical_value(value) for name, value in pairs}


def _is_empty(value: str | None) -> bool:
    return value is None or value == ""


def detect_changes(
    old_snapshot: Optional[Snapshot],
    new_snapshot: Snapshot,
) -> list[FieldChange]:
    """Return the ordered list of fields that differ between two snapshots.

    Args:
        old_snapshot: Snapshot before the mutation (None for entity creation)
        new_snapshot: Snapshot after the mutation

    Returns:
        FieldChange per differing field, in new_snapshot's field order. Fields
        present only in old_snapshot follow, in old_snapshot's order.
    """
    if old_snapshot is None:
        return [
            FieldChange(field=name, old_value=None, new_value=value)
            for name, value in new_snapshot.items()
            if not _is_empty(value)
        ]

    changes: list[FieldChange] = []
    for name, new_value in new_snapshot.items():
        old_value = old_snapshot.get(name)
        if old_value != new_value:
            changes.append(FieldChange(field=name, old_value=old_value, new_value=new_value))

    for name, old_value in old_snapshot.items():
        if name not in new_snapshot and old_value is not None:
            changes.append(FieldChange(field=name, old_value=old_value, new_value=None))

    return changes
