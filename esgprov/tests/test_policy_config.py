"""Tests for the audit policy table and esgprov.toml loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from esgprov.config import Config, find_config, load_config
from esgprov.diff.text import DEFAULT_MAX_TEXT_LENGTH
from esgprov.domain.store import ReportStore
from esgprov.ledger.policy import AuditPolicy
from esgprov.ledger.trail import AuditTrail

from conftest import EDITOR


def test_default_policy_table() -> None:
    policy = AuditPolicy()

    assert policy.is_audit_worthy("ReportingPeriod", "update")
    assert policy.is_audit_worthy("Section", "access-denied")
    assert not policy.is_audit_worthy("DataPoint", "access-denied")
    assert policy.is_audit_worthy("data-point", "rollover")
    assert policy.is_audit_worthy("Assumption", "create")
    assert policy.is_audit_worthy("Gap", "create")
    assert policy.is_audit_worthy("UnknownThing", "anything")


def test_policy_from_mapping_overrides_per_action() -> None:
    policy = AuditPolicy.from_mapping({"default": False, "Section": {"update": False}, "Widget": {"create": True}})

    assert not policy.is_audit_worthy("Section", "update")
    assert policy.is_audit_worthy("Section", "create")
    assert policy.is_audit_worthy("widget", "create")
    assert not policy.is_audit_worthy("widget", "delete")
    assert not policy.is_audit_worthy("Unlisted", "create")


def test_policy_rejects_non_boolean() -> None:
    with pytest.raises(ValueError):
        AuditPolicy.from_mapping({"Section": {"update": "yes"}})


def test_store_honours_policy_suppression() -> None:
    policy = AuditPolicy.from_mapping({"Section": {"create": False}})
    store = ReportStore(AuditTrail(), policy=policy)
    period = store.create_period("2024", "2024-01-01", "2024-12-31", owner_id="o", actor_id=EDITOR)
    section = store.create_section(period.id, "Water", owner_id="o", actor_id=EDITOR)

    assert store.trail.query(entity_id=section.id) == []
    assert len(store.trail.query(entity_id=period.id)) == 1

    store.record_access_denied("DataPoint", "dp-1", "viewer", reason="not in section")
    assert store.trail.query(entity_id="dp-1") == []
    denied = store.record_access_denied("Section", section.id, "viewer", reason="not owner")
    assert denied is not None and denied.changes == ()


def test_noop_update_is_not_audited(store: ReportStore) -> None:
    period = store.create_period("2024", "2024-01-01", "2024-12-31", owner_id="o", actor_id=EDITOR)
    store.update_period(period.id, EDITOR, name="2024")
    assert [e.action for e in store.trail.query(entity_id=period.id)] == ["create"]


def test_missing_config_yields_defaults(tmp_path: Path) -> None:
    assert load_config(None) == Config()
    config = load_config(tmp_path / "esgprov.toml")
    assert config.ledger.journal is None
    assert config.diff.max_text_length == DEFAULT_MAX_TEXT_LENGTH


def test_load_config(tmp_path: Path) -> None:
    path = tmp_path / "esgprov.toml"
    path.write_text(
        """
[ledger]
journal = "data/audit.jsonl"

[diff]
max_text_length = 5000
max_alignment_cells = 250000

[policy.DataPoint]
access-denied = true
""",
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.ledger.journal == tmp_path / "data" / "audit.jsonl"
    assert config.diff.max_text_length == 5000
    assert config.diff.max_alignment_cells == 250_000
    assert config.policy.is_audit_worthy("DataPoint", "access-denied")
    assert config.source == path


def test_invalid_max_text_length(tmp_path: Path) -> None:
    path = tmp_path / "esgprov.toml"
    path.write_text("[diff]\nmax_text_length = 0\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)
    path.write_text("[diff]\nmax_alignment_cells = -1\n", encoding="utf-8")
    with pytest.raises(ValueError, match="max_alignment_cells"):
        load_config(path)


def test_find_config_walks_up(tmp_path: Path) -> None:
    (tmp_path / "esgprov.toml").write_text("", encoding="utf-8")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert find_config(nested) == (tmp_path / "esgprov.toml").resolve()
