"""
Word- and sentence-level text diff for disclosure narratives.

Tokens concatenate back to their input exactly, so both sides of a diff can
be reassembled from its segments:

    unchanged + removed -> old
    unchanged + added   -> new

Alignment is a longest-common-subsequence table over tokens, O(n*m) in time
and memory for the part left after the shared prefix and suffix. Two bounds
keep that affordable: `max_length` caps each input in characters and
`max_cells` caps the table itself.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Sequence

from ..errors import ValidationError

DEFAULT_MAX_TEXT_LENGTH = 20_000

# Upper bound on alignment table cells (changed old tokens x changed new tokens)
DEFAULT_MAX_ALIGNMENT_CELLS = 4_000_000

# A run of word characters, or any single other character (space, punctuation)
_WORD_TOKEN = re.compile(r"\w+|\W", re.UNICODE)

# Sentence terminator followed by whitespace or end of text; the whitespace is
# kept with the sentence it follows.
_SENTENCE_END = re.compile(r"[.!?](?=\s|\Z)\s*")


class ChangeType(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class DiffSegment:
    text: str
    change_type: ChangeType

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "change_type": self.change_type.value}


@dataclass(frozen=True)
class DiffSummary:
    total_segments: int
    added_segments: int
    removed_segments: int
    unchanged_segments: int
    old_text_length: int
    new_text_length: int

    @property
    def has_changes(self) -> bool:
        return self.added_segments > 0 or self.removed_segments > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_segments": self.total_segments,
            "added_segments": self.added_segments,
            "removed_segments": self.removed_segments,
            "unchanged_segments": self.unchanged_segments,
            "old_text_length": self.old_text_length,
            "new_text_length": self.new_text_length,
            "has_changes": self.has_changes,
        }


# =============================================================================
# Tokenization
# =============================================================================


def tokenize_words(text: str) -> list[str]:
    return _WORD_TOKEN.findall(text)


def split_sentences(text: str) -> list[str]:
    sentences: list[str] = []
    start = 0
    for match in _SENTENCE_END.finditer(text):
        sentences.append(text[start : match.end()])
        start = match.end()
    if start < len(text):
        sentences.append(text[start:])
    return sentences


# =============================================================================
# Alignment
# =============================================================================


def _lcs_operations(
    old: Sequence[str],
    new: Sequence[str],
    max_cells: int = DEFAULT_MAX_ALIGNMENT_CELLS,
) -> list[tuple[ChangeType, str]]:
    """
    Align two token sequences; returns (change_type, token) in reading order.

    The shared prefix and suffix are peeled off before building the table,
    so only the changed middle counts against `max_cells`. When backtracking,
    insertions are preferred over deletions on ties.
    """
    prefix = 0
    while prefix < len(old) and prefix < len(new) and old[prefix] == new[prefix]:
        prefix += 1
    suffix = 0
    while (
        suffix < len(old) - prefix
        and suffix < len(new) - prefix
        and old[len(old) - 1 - suffix] == new[len(new) - 1 - suffix]
    ):
        suffix += 1

    a = old[prefix : len(old) - suffix]
    b = new[prefix : len(new) - suffix]
    n, m = len(a), len(b)
    if n * m > max_cells:
        raise ValidationError(
            f"Diff needs {n * m} alignment cells ({n} x {m} changed tokens); the limit is {max_cells}"
        )

    table = [[0] * (m + 1) for _ in range(n + 1)]
    for i in range(1, n + 1):
        row, above = table[i], table[i - 1]
        token = a[i - 1]
        for j in range(1, m + 1):
            if token == b[j - 1]:
                row[j] = above[j - 1] + 1
            else:
                row[j] = max(above[j], row[j - 1])

    middle: list[tuple[ChangeType, str]] = []
    i, j = n, m
    while i > 0 or j > 0:
        if i > 0 and j > 0 and a[i - 1] == b[j - 1]:
            middle.append((ChangeType.UNCHANGED, a[i - 1]))
            i -= 1
            j -= 1
        elif j > 0 and (i == 0 or table[i][j - 1] >= table[i - 1][j]):
            middle.append((ChangeType.ADDED, b[j - 1]))
            j -= 1
        else:
            middle.append((ChangeType.REMOVED, a[i - 1]))
            i -= 1
    middle.reverse()

    ops = [(ChangeType.UNCHANGED, t) for t in old[:prefix]]
    ops.extend(middle)
    ops.extend((ChangeType.UNCHANGED, t) for t in old[len(old) - suffix :])
    return ops


def _group(ops: Iterable[tuple[ChangeType, str]]) -> list[DiffSegment]:
    segments: list[DiffSegment] = []
    current_type: ChangeType | None = None
    buffer: list[str] = []
    for change_type, token in ops:
        if change_type != current_type and buffer:
            segments.append(DiffSegment("".join(buffer), current_type))
            buffer = []
        current_type = change_type
        buffer.append(token)
    if buffer and current_type is not None:
        segments.append(DiffSegment("".join(buffer), current_type))
    return segments


def _check_length(text: str, label: str, max_length: int) -> None:
    if len(text) > max_length:
        raise ValidationError(f"{label} text is {len(text)} characters; the limit is {max_length}")


def _diff(
    old: str | None,
    new: str | None,
    splitter: Callable[[str], list[str]],
    max_length: int,
    max_cells: int,
) -> list[DiffSegment]:
    old = old or ""
    new = new or ""
    _check_length(old, "Old", max_length)
    _check_length(new, "New", max_length)
    return _group(_lcs_operations(splitter(old), splitter(new), max_cells))


# =============================================================================
# Public API
# =============================================================================


def compute_word_level_diff(
    old: str | None,
    new: str | None,
    *,
    max_length: int = DEFAULT_MAX_TEXT_LENGTH,
    max_cells: int = DEFAULT_MAX_ALIGNMENT_CELLS,
) -> list[DiffSegment]:
    """
    Diff two texts at word granularity.

    Args:
        old: Previous text (None is treated as "")
        new: Current text (None is treated as "")
        max_length: Upper bound on either input, in characters
        max_cells: Upper bound on the alignment table for the changed region

    Returns:
        Ordered segments; consecutive tokens of the same change type are merged.

    Raises:
        ValidationError: If either input exceeds `max_length`, or the
            changed region would need more than `max_cells` table cells
    """
    return _diff(old, new, tokenize_words, max_length, max_cells)


def compute_sentence_level_diff(
    old: str | None,
    new: str | None,
    *,
    max_length: int = DEFAULT_MAX_TEXT_LENGTH,
    max_cells: int = DEFAULT_MAX_ALIGNMENT_CELLS,
) -> list[DiffSegment]:
    """Same contract as compute_word_level_diff, one token per sentence."""
    return _diff(old, new, split_sentences, max_length, max_cells)


def summarize(segments: Sequence[DiffSegment], old: str | None, new: str | None) -> DiffSummary:
    counts = {t: 0 for t in ChangeType}
    for segment in segments:
        counts[segment.change_type] += 1
    return DiffSummary(
        total_segments=len(segments),
        added_segments=counts[ChangeType.ADDED],
        removed_segments=counts[ChangeType.REMOVED],
        unchanged_segments=counts[ChangeType.UNCHANGED],
        old_text_length=len(old or ""),
        new_text_length=len(new or ""),
    )


def generate_summary(
    old: str | None,
    new: str | None,
    *,
    max_length: int = DEFAULT_MAX_TEXT_LENGTH,
    max_cells: int = DEFAULT_MAX_ALIGNMENT_CELLS,
) -> DiffSummary:
    """Segment counts of the word-level diff."""
    segments = compute_word_level_diff(old, new, max_length=max_length, max_cells=max_cells)
    return summarize(segments, old, new)


def old_text(segments: Iterable[DiffSegment]) -> str:
    return "".join(s.text for s in segments if s.change_type != ChangeType.ADDED)


def new_text(segments: Iterable[DiffSegment]) -> str:
    return "".join(s.text for s in segments if s.change_type != ChangeType.REMOVED)
