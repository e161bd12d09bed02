"""Audit trail CLI commands."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from ..errors import JournalError
from ..ledger.entries import AuditEntry
from ..ledger.trail import AuditTrail


def load_trail(journal: Path) -> AuditTrail:
    try:
        return AuditTrail(journal)
    except JournalError as e:
        raise click.ClickException(str(e)) from e


def _format_changes(entry: AuditEntry, limit: int = 3) -> str:
    parts = [f"{c.field}: {c.old_value or '∅'} → {c.new_value or '∅'}" for c in entry.changes[:limit]]
    if len(entry.changes) > limit:
        parts.append(f"(+{len(entry.changes) - limit} more)")
    return "; ".join(parts)


def run_audit_list(
    journal: Path,
    *,
    entity_type: str | None = None,
    entity_id: str | None = None,
    section_id: str | None = None,
    owner_id: str | None = None,
    action: str | None = None,
    user_id: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int | None = None,
    output_json: bool = False,
) -> int:
    console = Console()
    trail = load_trail(journal)
    entries = trail.query(
        entity_type=entity_type,
        entity_id=entity_id,
        section_id=section_id,
        owner_id=owner_id,
        action=action,
        user_id=user_id,
        since=since,
        until=until,
        limit=limit,
    )

    if output_json:
        print(json.dumps([e.to_dict() for e in entries], indent=2))
        return 0

    if not entries:
        console.print("No audit entries match.", style="dim")
        return 0

    table = Table(title=f"Audit entries ({len(entries)})")
    table.add_column("timestamp", style="dim", no_wrap=True)
    table.add_column("action", style="magenta")
    table.add_column("entity")
    table.add_column("user", style="cyan")
    table.add_column("changes")
    table.add_column("id", style="dim", no_wrap=True)

    for e in entries:
        table.add_row(
            e.timestamp.strftime("%Y-%m-%d %H:%M:%S") if e.timestamp else "",
            e.action,
            f"{e.entity_type}/{e.entity_id}",
            e.user_name or e.user_id,
            _format_changes(e),
            e.id,
        )

    console.print(table)
    return 0


def run_audit_show(journal: Path, entry_id: str, *, output_json: bool = False) -> int:
    err = Console(stderr=True)
    console = Console()
    entry = load_trail(journal).get(entry_id)
    if entry is None:
        err.print(f"Audit entry not found: {entry_id}", style="bold red")
        return 1

    if output_json:
        print(json.dumps(entry.to_dict(), indent=2))
        return 0

    console.print(f"[bold]{entry.action}[/] {entry.entity_type}/{entry.entity_id}")
    console.print(f"  id: {entry.id}", style="dim")
    console.print(f"  at: {entry.timestamp.isoformat() if entry.timestamp else '-'}", style="dim")
    console.print(f"  by: {entry.user_name or entry.user_id} ({entry.user_id})", style="dim")
    if entry.change_note:
        console.print(f"  note: {entry.change_note}")

    if entry.changes:
        table = Table(show_header=True)
        table.add_column("field", style="cyan")
        table.add_column("old", style="red")
        table.add_column("new", style="green")
        for c in entry.changes:
            table.add_row(c.field, c.old_value or "", c.new_value or "")
        console.print(table)
    return 0


def run_audit_verify_chain(journal: Path) -> int:
    err = Console(stderr=True)
    console = Console()
    result = load_trail(journal).verify_chain()
    if not result.valid:
        err.print(f"✗ {result.message}", style="bold red")
        err.print(f"  verified {result.checked} entries before the break", style="dim")
        return 1
    console.print(f"✓ {result.message} ({result.checked} entries)", style="green")
    return 0


def run_audit_export(
    journal: Path,
    *,
    requested_by: str,
    requested_by_name: str = "",
    entity_type: str | None = None,
    entity_id: str | None = None,
    user_id: str | None = None,
    action: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    out: Path | None = None,
) -> int:
    err = Console(stderr=True)
    export = load_trail(journal).tamper_evident_export(
        requested_by,
        requested_by_name,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        action=action,
        since=since,
        until=until,
    )
    text = json.dumps(export.to_dict(), indent=2)

    if out is None:
        print(text)
    else:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text + "\n", encoding="utf-8")
        err.print(f"Wrote {export.metadata.total_entries} entries to {out}", style="green")

    if not export.metadata.hash_chain_valid:
        err.print(f"✗ {export.metadata.validation_message}", style="bold red")
        return 1
    return 0


def run_audit_summary(journal: Path, *, output_json: bool = False) -> int:
    console = Console()
    summary = load_trail(journal).summary()

    if output_json:
        print(json.dumps(summary, indent=2))
        return 0

    console.print(f"Total entries: {summary['total_entries']}", style="bold")
    if not summary["total_entries"]:
        return 0

    time_range = summary["time_range"]
    console.print(f"  {time_range['earliest']} → {time_range['latest']}", style="dim")

    for title, counts in (
        ("By action", summary["action_counts"]),
        ("By entity type", summary["entity_type_counts"]),
    ):
        table = Table(title=title)
        table.add_column("name", style="cyan")
        table.add_column("count", justify="right")
        for name, count in sorted(counts.items(), key=lambda x: (-x[1], x[0])):
            table.add_row(name, str(count))
        console.print(table)

    console.print("Most active users:", style="bold")
    for user, count in summary["most_active_users"]:
        console.print(f"  {user}: {count}")
    return 0
