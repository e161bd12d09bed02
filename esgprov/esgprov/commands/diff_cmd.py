"""Narrative diff CLI commands.

Inputs are plain text or Markdown with YAML front matter. Only the body is
diffed; `source_record_id` / `source_period_id` front-matter keys are shown
as rollover lineage.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import frontmatter
from rich.console import Console
from rich.text import Text

from ..diff.text import (
    DEFAULT_MAX_ALIGNMENT_CELLS,
    ChangeType,
    DiffSegment,
    compute_sentence_level_diff,
    compute_word_level_diff,
    summarize,
)
from ..errors import ValidationError

LINEAGE_KEYS = ("source_record_id", "source_period_id")

_STYLES = {
    ChangeType.ADDED: "bold green",
    ChangeType.REMOVED: "red strike",
    ChangeType.UNCHANGED: "",
}


def load_narrative(path: Path) -> tuple[str, dict[str, Any]]:
    """Return (body, front matter) of a narrative file."""
    post = frontmatter.load(path)
    return post.content, dict(post.metadata)


def _lineage(metadata: dict[str, Any]) -> dict[str, str]:
    return {k: str(metadata[k]) for k in LINEAGE_KEYS if metadata.get(k)}


def render_segments(segments: list[DiffSegment]) -> Text:
    text = Text()
    for s in segments:
        text.append(s.text, style=_STYLES[s.change_type])
    return text


def run_diff(
    old_path: Path,
    new_path: Path,
    *,
    level: str = "words",
    max_length: int,
    max_cells: int = DEFAULT_MAX_ALIGNMENT_CELLS,
    output_json: bool = False,
) -> int:
    err = Console(stderr=True)
    console = Console()

    old, _ = load_narrative(old_path)
    new, new_meta = load_narrative(new_path)
    compute = compute_sentence_level_diff if level == "sentences" else compute_word_level_diff

    try:
        segments = compute(old, new, max_length=max_length, max_cells=max_cells)
    except ValidationError as e:
        err.print(str(e), style="bold red")
        return 1
    summary = summarize(segments, old, new)
    lineage = _lineage(new_meta)

    if output_json:
        data = {
            "level": level,
            "segments": [s.to_dict() for s in segments],
            "summary": summary.to_dict(),
            "lineage": lineage or None,
        }
        print(json.dumps(data, indent=2))
        return 0

    for key, value in lineage.items():
        console.print(f"{key}: {value}", style="dim")
    console.print(render_segments(segments))
    console.print()
    console.print(
        f"+{summary.added_segments} -{summary.removed_segments} ={summary.unchanged_segments} "
        f"({summary.total_segments} segments)",
        style="bold" if summary.has_changes else "dim",
    )
    return 0


def run_diff_summary(
    old_path: Path,
    new_path: Path,
    *,
    max_length: int,
    max_cells: int = DEFAULT_MAX_ALIGNMENT_CELLS,
    output_json: bool = False,
) -> int:
    err = Console(stderr=True)
    console = Console()

    old, _ = load_narrative(old_path)
    new, new_meta = load_narrative(new_path)
    try:
        segments = compute_word_level_diff(old, new, max_length=max_length, max_cells=max_cells)
    except ValidationError as e:
        err.print(str(e), style="bold red")
        return 1
    summary = summarize(segments, old, new)

    if output_json:
        data = summary.to_dict()
        data["lineage"] = _lineage(new_meta) or None
        print(json.dumps(data, indent=2))
        return 0

    status = "changed" if summary.has_changes else "unchanged"
    console.print(f"{new_path.name}: {status}", style="yellow" if summary.has_changes else "green")
    console.print(f"  added: {summary.added_segments}", style="dim")
    console.print(f"  removed: {summary.removed_segments}", style="dim")
    console.print(f"  unchanged: {summary.unchanged_segments}", style="dim")
    console.print(f"  length: {summary.old_text_length} → {summary.new_text_length}", style="dim")
    return 0
