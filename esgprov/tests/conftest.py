"""Pytest configuration and fixtures."""

from pathlib import Path

import pytest

from esgprov.domain.store import ReportStore
from esgprov.ledger.trail import AuditTrail

ADMIN = "admin-1"
EDITOR = "editor-1"


@pytest.fixture
def trail() -> AuditTrail:
    """In-memory audit trail."""
    return AuditTrail()


@pytest.fixture
def journal_path(tmp_path: Path) -> Path:
    return tmp_path / "audit" / "journal.jsonl"


@pytest.fixture
def store(trail: AuditTrail) -> ReportStore:
    """Report store where only ADMIN passes the admin predicate."""
    return ReportStore(trail, is_admin=lambda actor_id: actor_id == ADMIN)


@pytest.fixture
def populated_store(store: ReportStore) -> ReportStore:
    """Two periods; 2023 has an Energy section with a narrative and a decision."""
    p2023 = store.create_period("2023", "2023-01-01", "2023-12-31", owner_id="owner-1", actor_id=EDITOR)
    store.create_period("2024", "2024-01-01", "2024-12-31", owner_id="owner-1", actor_id=EDITOR)
    energy = store.create_section(
        p2023.id, "Energy", owner_id="owner-1", actor_id=EDITOR, catalog_code="ENV-001", category="environmental"
    )
    store.create_narrative(
        energy.id,
        "Energy consumption",
        "Total energy consumption fell by 12% compared to the prior year.",
        owner_id="owner-1",
        actor_id=EDITOR,
    )
    store.create_decision(
        energy.id,
        "Scope 2 method",
        "Two accounting methods are allowed.",
        "Report market-based Scope 2 emissions.",
        actor_id=EDITOR,
        alternatives="Location-based",
    )
    return store
