"""CLI entrypoint for esgprov."""

import logging
import sys
from datetime import datetime
from pathlib import Path

import click

from . import __version__
from .config import Config, find_config, load_config


def _journal(ctx: click.Context) -> Path:
    journal = ctx.obj["journal"]
    if journal is None:
        raise click.ClickException(
            "No audit journal configured. Pass --journal PATH or set [ledger] journal in esgprov.toml."
        )
    return journal


_DATETIME = click.DateTime(formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"])


@click.group()
@click.version_option(__version__, prog_name="esgprov")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to esgprov.toml (defaults to auto-detected from the current directory upward)",
)
@click.option(
    "--journal",
    "-j",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Audit journal (JSON Lines); overrides [ledger] journal",
)
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, journal: Path | None, verbose: bool) -> None:
    """esgprov - Provenance engine for ESG disclosure reporting.

    Inspect and verify audit journals, replay entity versions, and diff
    disclosure narratives.
    """
    ctx.ensure_object(dict)

    if verbose:
        from rich.logging import RichHandler

        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(show_path=False)],
        )

    if config_path is None:
        config_path = find_config(Path.cwd())
    try:
        config: Config = load_config(config_path)
    except ValueError as e:
        raise click.ClickException(f"Invalid config {config_path}: {e}") from e

    ctx.obj["config"] = config
    ctx.obj["journal"] = journal or config.ledger.journal


# -----------------------------------------------------------------------------
# audit
# -----------------------------------------------------------------------------


@cli.group()
def audit() -> None:
    """Audit trail queries, chain verification and export."""
    pass


@audit.command("list")
@click.option("--entity-type", type=str, default=None, help="Filter by entity type (case-insensitive)")
@click.option("--entity-id", type=str, default=None, help="Filter by entity id")
@click.option("--section", "section_id", type=str, default=None, help="Filter by section id")
@click.option("--owner", "owner_id", type=str, default=None, help="Filter by owner id")
@click.option("--action", type=str, default=None, help="Filter by action")
@click.option("--user", "user_id", type=str, default=None, help="Filter by acting user id")
@click.option("--since", type=_DATETIME, default=None, help="Only entries at or after this time (UTC)")
@click.option("--until", type=_DATETIME, default=None, help="Only entries at or before this time (UTC)")
@click.option("--limit", type=int, default=None, help="Max entries to show")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def audit_list(
    ctx: click.Context,
    entity_type: str | None,
    entity_id: str | None,
    section_id: str | None,
    owner_id: str | None,
    action: str | None,
    user_id: str | None,
    since: datetime | None,
    until: datetime | None,
    limit: int | None,
    output_json: bool,
) -> None:
    """List audit entries, newest first."""
    from .commands.audit_cmd import run_audit_list

    sys.exit(
        run_audit_list(
            _journal(ctx),
            entity_type=entity_type,
            entity_id=entity_id,
            section_id=section_id,
            owner_id=owner_id,
            action=action,
            user_id=user_id,
            since=since,
            until=until,
            limit=limit,
            output_json=output_json,
        )
    )


@audit.command("show")
@click.argument("entry_id", type=str)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def audit_show(ctx: click.Context, entry_id: str, output_json: bool) -> None:
    """Show one audit entry with its field changes."""
    from .commands.audit_cmd import run_audit_show

    sys.exit(run_audit_show(_journal(ctx), entry_id, output_json=output_json))


@audit.command("verify-chain")
@click.pass_context
def audit_verify_chain(ctx: click.Context) -> None:
    """Re-walk the hash chain; exit 1 if any entry was rewritten."""
    from .commands.audit_cmd import run_audit_verify_chain

    sys.exit(run_audit_verify_chain(_journal(ctx)))


@audit.command("export")
@click.option("--by", "requested_by", type=str, required=True, help="User id requesting the export")
@click.option("--by-name", "requested_by_name", type=str, default="", help="Display name of the requester")
@click.option("--entity-type", type=str, default=None)
@click.option("--entity-id", type=str, default=None)
@click.option("--user", "user_id", type=str, default=None)
@click.option("--action", type=str, default=None)
@click.option("--since", type=_DATETIME, default=None)
@click.option("--until", type=_DATETIME, default=None)
@click.option("--out", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Write JSON to file")
@click.pass_context
def audit_export(
    ctx: click.Context,
    requested_by: str,
    requested_by_name: str,
    entity_type: str | None,
    entity_id: str | None,
    user_id: str | None,
    action: str | None,
    since: datetime | None,
    until: datetime | None,
    out: Path | None,
) -> None:
    """Tamper-evident export: chronological entries, content hash, chain verdict."""
    from .commands.audit_cmd import run_audit_export

    sys.exit(
        run_audit_export(
            _journal(ctx),
            requested_by=requested_by,
            requested_by_name=requested_by_name,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            action=action,
            since=since,
            until=until,
            out=out,
        )
    )


@audit.command("summary")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def audit_summary(ctx: click.Context, output_json: bool) -> None:
    """Counts by action, entity type and user."""
    from .commands.audit_cmd import run_audit_summary

    sys.exit(run_audit_summary(_journal(ctx), output_json=output_json))


# -----------------------------------------------------------------------------
# replay
# -----------------------------------------------------------------------------


@cli.group()
def replay() -> None:
    """Reconstruct entity versions from the audit trail."""
    pass


@replay.command("as-of")
@click.argument("entity_type", type=str)
@click.argument("entity_id", type=str)
@click.option("--entry", "as_of", type=str, default=None, help="Stop at this entry id (default: latest)")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def replay_as_of(ctx: click.Context, entity_type: str, entity_id: str, as_of: str | None, output_json: bool) -> None:
    """Show an entity's fields as of an audit entry."""
    from .commands.replay_cmd import run_replay_as_of

    sys.exit(run_replay_as_of(_journal(ctx), entity_type, entity_id, as_of=as_of, output_json=output_json))


@replay.command("compare")
@click.argument("entity_type", type=str)
@click.argument("entity_id", type=str)
@click.argument("from_entry_id", type=str)
@click.argument("to_entry_id", type=str)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def replay_compare(
    ctx: click.Context,
    entity_type: str,
    entity_id: str,
    from_entry_id: str,
    to_entry_id: str,
    output_json: bool,
) -> None:
    """Fields touched between two versions, with before/after values."""
    from .commands.replay_cmd import run_replay_compare

    sys.exit(
        run_replay_compare(
            _journal(ctx), entity_type, entity_id, from_entry_id, to_entry_id, output_json=output_json
        )
    )


# -----------------------------------------------------------------------------
# diff
# -----------------------------------------------------------------------------


@cli.group()
def diff() -> None:
    """Compare disclosure narratives (text or Markdown with front matter)."""
    pass


_NARRATIVE = click.Path(exists=True, dir_okay=False, path_type=Path)


@diff.command("words")
@click.argument("old", type=_NARRATIVE)
@click.argument("new", type=_NARRATIVE)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def diff_words(ctx: click.Context, old: Path, new: Path, output_json: bool) -> None:
    """Word-level diff of two narratives."""
    from .commands.diff_cmd import run_diff

    limits = ctx.obj["config"].diff
    sys.exit(
        run_diff(
            old,
            new,
            level="words",
            max_length=limits.max_text_length,
            max_cells=limits.max_alignment_cells,
            output_json=output_json,
        )
    )


@diff.command("sentences")
@click.argument("old", type=_NARRATIVE)
@click.argument("new", type=_NARRATIVE)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def diff_sentences(ctx: click.Context, old: Path, new: Path, output_json: bool) -> None:
    """Sentence-level diff of two narratives."""
    from .commands.diff_cmd import run_diff

    limits = ctx.obj["config"].diff
    sys.exit(
        run_diff(
            old,
            new,
            level="sentences",
            max_length=limits.max_text_length,
            max_cells=limits.max_alignment_cells,
            output_json=output_json,
        )
    )


@diff.command("summary")
@click.argument("old", type=_NARRATIVE)
@click.argument("new", type=_NARRATIVE)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def diff_summary(ctx: click.Context, old: Path, new: Path, output_json: bool) -> None:
    """Segment counts of the word-level diff."""
    from .commands.diff_cmd import run_diff_summary

    limits = ctx.obj["config"].diff
    sys.exit(
        run_diff_summary(
            old,
            new,
            max_length=limits.max_text_length,
            max_cells=limits.max_alignment_cells,
            output_json=output_json,
        )
    )


if __name__ == "__main__":
    cli()
