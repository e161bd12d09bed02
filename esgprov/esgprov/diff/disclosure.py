"""
Narrative disclosure comparison across periods.

A record rolled over from a prior period carries lineage (source record and
period ids). Comparing it against its source tells whether the draft copy
has been edited since rollover.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from .text import (
    DEFAULT_MAX_ALIGNMENT_CELLS,
    DEFAULT_MAX_TEXT_LENGTH,
    ChangeType,
    DiffSegment,
    DiffSummary,
    compute_word_level_diff,
    summarize,
)


@runtime_checkable
class NarrativeRecord(Protocol):
    id: str
    period_id: str
    title: str
    content: str
    source_record_id: str | None
    source_period_id: str | None


class NarrativeLookup(Protocol):
    """Read access to narrative records, provided by the owning store."""

    def find_narrative(self, record_id: str) -> NarrativeRecord | None: ...

    def find_narrative_by_title(self, period_id: str, title: str) -> NarrativeRecord | None: ...


@dataclass(frozen=True)
class DisclosureComparison:
    current: NarrativeRecord
    previous: NarrativeRecord | None
    segments: tuple[DiffSegment, ...]
    summary: DiffSummary
    is_draft_copy: bool

    @property
    def has_been_edited(self) -> bool:
        return self.summary.has_changes

    def to_dict(self) -> dict[str, Any]:
        def _ref(record: NarrativeRecord | None) -> dict[str, Any] | None:
            if record is None:
                return None
            return {"id": record.id, "period_id": record.period_id, "title": record.title}

        return {
            "current": _ref(self.current),
            "previous": _ref(self.previous),
            "segments": [s.to_dict() for s in self.segments],
            "summary": self.summary.to_dict(),
            "is_draft_copy": self.is_draft_copy,
            "has_been_edited": self.has_been_edited,
        }


def has_lineage(record: NarrativeRecord) -> bool:
    return bool(record.source_record_id) and bool(record.source_period_id)


def compare_disclosure(
    current: NarrativeRecord,
    lookup: NarrativeLookup,
    *,
    previous_period_id: str | None = None,
    max_length: int = DEFAULT_MAX_TEXT_LENGTH,
    max_cells: int = DEFAULT_MAX_ALIGNMENT_CELLS,
) -> DisclosureComparison:
    """
    Diff a narrative against its predecessor.

    The predecessor is the same-titled record in `previous_period_id` when
    given, otherwise the rollover source. Without one, the whole current
    content is reported as added.
    """
    previous: NarrativeRecord | None = None
    if previous_period_id:
        previous = lookup.find_narrative_by_title(previous_period_id, current.title)
    elif has_lineage(current):
        previous = lookup.find_narrative(current.source_record_id)

    content = current.content or ""
    if previous is None:
        segments: list[DiffSegment] = [DiffSegment(content, ChangeType.ADDED)]
        summary = summarize(segments, "", content)
    else:
        segments = compute_word_level_diff(
            previous.content, content, max_length=max_length, max_cells=max_cells
        )
        summary = summarize(segments, previous.content, content)

    return DisclosureComparison(
        current=current,
        previous=previous,
        segments=tuple(segments),
        summary=summary,
        is_draft_copy=has_lineage(current),
    )
