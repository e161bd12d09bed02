"""
Version reconstruction from audit history.

States are computed by folding an entity's entries in append order, each
FieldChange's new_value overwriting the prior value of that field. They are
projections, never stored: the trail stays the source of truth.

Soundness: folding an entity's complete history reproduces its live
to_audit_snapshot() exactly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from ..errors import NotFoundError, ValidationError
from .entries import AuditEntry

FieldState = dict[str, "str | None"]


@dataclass(frozen=True)
class FieldComparison:
    """One field touched between two points of an entity's history."""

    field: str
    from_value: str | None
    to_value: str | None

    @property
    def changed(self) -> bool:
        return self.from_value != self.to_value

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "from_value": self.from_value, "to_value": self.to_value}


@dataclass(frozen=True)
class VersionComparison:
    """Delta between two entries of the same history."""

    from_entry_id: str
    to_entry_id: str
    fields: tuple[FieldComparison, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_entry_id": self.from_entry_id,
            "to_entry_id": self.to_entry_id,
            "fields": [f.to_dict() for f in self.fields],
        }


def normalize_state(snapshot: Mapping[str, "str | None"]) -> FieldState:
    """Drop empty fields so a live snapshot compares equal to a replayed state."""
    return {name: value for name, value in snapshot.items() if value not in (None, "")}


def _check_single_entity(history: Sequence[AuditEntry]) -> None:
    if not history:
        return
    first = history[0]
    key = (first.entity_type.lower(), first.entity_id)
    if not all((e.entity_type.lower(), e.entity_id) == key for e in history):
        raise ValueError("All entries must be for the same entity")


def _position(history: Sequence[AuditEntry], entry_id: str) -> int:
    for idx, entry in enumerate(history):
        if entry.id == entry_id:
            return idx
    raise NotFoundError(f"Entry not in history: {entry_id}")


def _apply(state: FieldState, entry: AuditEntry) -> None:
    for change in entry.changes:
        state[change.field] = change.new_value


def reconstruct(history: Sequence[AuditEntry], as_of: str | None = None) -> FieldState:
    """
    Fold history (oldest first) up to and including entry `as_of`.

    Args:
        history: Chronological entries of one entity
        as_of: Entry id to stop at (None folds everything)

    Returns:
        Field name -> value at that point. Fields whose latest value is
        empty (None or "") are dropped, matching how creation is recorded.
    """
    _check_single_entity(history)
    end = len(history) if as_of is None else _position(history, as_of) + 1

    state: FieldState = {}
    for entry in history[:end]:
        _apply(state, entry)
    return normalize_state(state)


def compare_versions(
    history: Sequence[AuditEntry],
    from_entry_id: str,
    to_entry_id: str,
) -> VersionComparison:
    """
    Report every field touched after `from_entry_id` up to `to_entry_id`.

    Each touched field is paired with its value at V1 and at V2, in the order
    it was first touched.
    """
    _check_single_entity(history)
    start = _position(history, from_entry_id)
    end = _position(history, to_entry_id)
    if start > end:
        raise ValidationError("from_entry_id must not come after to_entry_id")

    state: FieldState = {}
    for entry in history[: start + 1]:
        _apply(state, entry)
    before = dict(state)

    touched: list[str] = []
    for entry in history[start + 1 : end + 1]:
        for change in entry.changes:
            if change.field not in touched:
                touched.append(change.field)
        _apply(state, entry)

    return VersionComparison(
        from_entry_id=from_entry_id,
        to_entry_id=to_entry_id,
        fields=tuple(
            FieldComparison(field=name, from_value=before.get(name), to_value=state.get(name))
            for name in touched
        ),
    )


def timeline(history: Sequence[AuditEntry]) -> list[tuple[AuditEntry, FieldState]]:
    """Pair each entry with the entity state right after it."""
    _check_single_entity(history)
    state: FieldState = {}
    result: list[tuple[AuditEntry, FieldState]] = []
    for entry in history:
        _apply(state, entry)
        result.append((entry, normalize_state(state)))
    return result
