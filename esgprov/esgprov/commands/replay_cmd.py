"""Version reconstruction CLI commands."""

from __future__ import annotations

import json
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..errors import ProvenanceError
from ..ledger.replay import compare_versions, reconstruct
from .audit_cmd import load_trail


def run_replay_as_of(
    journal: Path,
    entity_type: str,
    entity_id: str,
    *,
    as_of: str | None = None,
    output_json: bool = False,
) -> int:
    err = Console(stderr=True)
    console = Console()
    history = load_trail(journal).history(entity_type, entity_id)
    if not history:
        err.print(f"No history for {entity_type}/{entity_id}", style="bold red")
        return 1

    try:
        state = reconstruct(history, as_of)
    except ProvenanceError as e:
        err.print(str(e), style="bold red")
        return 1

    if output_json:
        print(json.dumps(state, indent=2))
        return 0

    point = as_of or history[-1].id
    table = Table(title=f"{entity_type}/{entity_id} as of {point}")
    table.add_column("field", style="cyan")
    table.add_column("value")
    for name, value in state.items():
        table.add_row(name, value or "")
    console.print(table)
    return 0


def run_replay_compare(
    journal: Path,
    entity_type: str,
    entity_id: str,
    from_entry_id: str,
    to_entry_id: str,
    *,
    output_json: bool = False,
) -> int:
    err = Console(stderr=True)
    console = Console()
    history = load_trail(journal).history(entity_type, entity_id)

    try:
        comparison = compare_versions(history, from_entry_id, to_entry_id)
    except ProvenanceError as e:
        err.print(str(e), style="bold red")
        return 1

    if output_json:
        print(json.dumps(comparison.to_dict(), indent=2))
        return 0

    if not comparison.fields:
        console.print("No fields changed between these versions.", style="dim")
        return 0

    table = Table(title=f"{entity_type}/{entity_id}: {from_entry_id} → {to_entry_id}")
    table.add_column("field", style="cyan")
    table.add_column("from", style="red")
    table.add_column("to", style="green")
    for f in comparison.fields:
        table.add_row(f.field, f.from_value or "", f.to_value or "")
    console.print(table)
    return 0
