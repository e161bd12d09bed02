from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .diff.text import DEFAULT_MAX_ALIGNMENT_CELLS, DEFAULT_MAX_TEXT_LENGTH
from .ledger.policy import AuditPolicy

CONFIG_FILENAME = "esgprov.toml"


@dataclass(frozen=True)
class LedgerConfig:
    journal: Path | None = None


@dataclass(frozen=True)
class DiffConfig:
    max_text_length: int = DEFAULT_MAX_TEXT_LENGTH
    max_alignment_cells: int = DEFAULT_MAX_ALIGNMENT_CELLS


@dataclass(frozen=True)
class Config:
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    diff: DiffConfig = field(default_factory=DiffConfig)
    policy: AuditPolicy = field(default_factory=AuditPolicy)
    source: Path | None = None


def _coerce_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _positive_int(table: dict[str, Any], key: str, default: int) -> int:
    value = table.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"diff.{key} must be a positive integer")
    return value


def find_config(start: Path) -> Path | None:
    """Find esgprov.toml by walking up from `start`."""
    start = start.resolve()
    for candidate in [start, *start.parents]:
        path = candidate / CONFIG_FILENAME
        if path.is_file():
            return path
    return None


def load_config(path: Path | None) -> Config:
    """
    Load settings from TOML. A missing file yields defaults.

    Relative journal paths resolve against the config file's directory.
    """
    import tomllib

    if path is None or not path.exists():
        return Config()

    data = tomllib.loads(path.read_text(encoding="utf-8"))

    ledger_raw = _coerce_dict(data.get("ledger"))
    journal: Path | None = None
    journal_raw = ledger_raw.get("journal")
    if isinstance(journal_raw, str) and journal_raw.strip():
        journal = Path(journal_raw.strip())
        if not journal.is_absolute():
            journal = path.parent / journal

    diff_raw = _coerce_dict(data.get("diff"))
    max_text_length = _positive_int(diff_raw, "max_text_length", DEFAULT_MAX_TEXT_LENGTH)
    max_alignment_cells = _positive_int(diff_raw, "max_alignment_cells", DEFAULT_MAX_ALIGNMENT_CELLS)

    policy = AuditPolicy.from_mapping(_coerce_dict(data.get("policy")))

    return Config(
        ledger=LedgerConfig(journal=journal),
        diff=DiffConfig(max_text_length=max_text_length, max_alignment_cells=max_alignment_cells),
        policy=policy,
        source=path,
    )
