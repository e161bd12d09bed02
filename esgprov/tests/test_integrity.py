"""
Tests for integrity hashing, verification, the publish gate and override.
"""

from __future__ import annotations

import pytest

from esgprov.domain.entities import Decision, ReportingPeriod
from esgprov.domain.store import ReportStore
from esgprov.errors import AuthorizationError, NotFoundError, ValidationError
from esgprov.integrity.hasher import compute_hash, matches
from esgprov.integrity.records import IntegrityStatus
from esgprov.ledger.entries import ACTION_INTEGRITY_FAILED, ACTION_OVERRIDE

from conftest import ADMIN, EDITOR


def _period(store: ReportStore) -> ReportingPeriod:
    return next(p for p in store.periods.values() if p.name == "2023")


def _decision(store: ReportStore) -> Decision:
    return next(iter(store.decisions.values()))


def _overrides(store: ReportStore, entity_id: str) -> list:
    return store.trail.query(entity_id=entity_id, action=ACTION_OVERRIDE)


# -----------------------------------------------------------------------------
# Hashing
# -----------------------------------------------------------------------------


def test_hash_is_stable_and_excludes_integrity_metadata(populated_store: ReportStore) -> None:
    period = _period(populated_store)
    h0 = compute_hash(period)

    assert compute_hash(period) == h0
    assert period.integrity.integrity_hash == h0

    period.integrity.warning_details = "noise"
    period.integrity.status = IntegrityStatus.WARNING
    period.integrity.integrity_hash = "something-else"
    assert compute_hash(period) == h0


def test_hash_differs_for_different_content() -> None:
    a = ReportingPeriod(id="p", name="2023", start_date="2023-01-01", end_date="2023-12-31", owner_id="o")
    b = ReportingPeriod(id="p", name="2024", start_date="2023-01-01", end_date="2023-12-31", owner_id="o")
    assert compute_hash(a) != compute_hash(b)
    assert len(compute_hash(a)) == 64


def test_entity_without_stored_hash_verifies() -> None:
    period = ReportingPeriod(id="p", name="2023", start_date="2023-01-01", end_date="2023-12-31", owner_id="o")
    assert matches(period)


def test_in_band_update_rehashes_without_warning(populated_store: ReportStore) -> None:
    store = populated_store
    period = _period(store)
    h0 = period.integrity.integrity_hash

    store.update_period(period.id, EDITOR, name="FY2023")

    assert period.integrity.integrity_hash != h0
    assert store.verify_integrity(period.id)
    assert period.integrity.status == IntegrityStatus.VALID


# -----------------------------------------------------------------------------
# Tamper scenario
# -----------------------------------------------------------------------------


def test_tamper_verify_override_scenario(populated_store: ReportStore) -> None:
    store = populated_store
    period = _period(store)
    h0 = period.integrity.integrity_hash
    assert store.can_publish(period.id)

    period.name = "2023 (edited directly)"

    result = store.integrity.verify(period.id)
    assert not result.valid
    assert period.integrity.status == IntegrityStatus.WARNING
    assert period.integrity.warning_details
    assert period.integrity.integrity_hash == h0

    gate = store.integrity.can_publish(period.id)
    assert not gate.can_publish
    assert gate.failing_entity_ids == (period.id,)

    outcome = store.override_integrity(period.id, ADMIN, "fixed")
    assert outcome.success
    assert period.integrity.status == IntegrityStatus.VALID
    assert period.integrity.warning_details is None
    assert period.integrity.override_by == ADMIN
    assert period.integrity.override_justification == "fixed"
    assert store.can_publish(period.id)

    overrides = _overrides(store, period.id)
    assert len(overrides) == 1
    assert overrides[0].user_id == ADMIN
    assert overrides[0].change_note.startswith("fixed")

    # The warning stays visible in the trail after it was cleared
    failures = store.trail.query(entity_id=period.id, action=ACTION_INTEGRITY_FAILED)
    assert len(failures) == 1


def test_verify_mismatch_is_idempotent(populated_store: ReportStore) -> None:
    store = populated_store
    period = _period(store)
    period.start_date = "2022-12-01"

    store.integrity.verify(period.id)
    store.integrity.verify(period.id)
    store.integrity.verify(period.id)

    failures = store.trail.query(entity_id=period.id, action=ACTION_INTEGRITY_FAILED)
    assert len(failures) == 1
    assert period.integrity.status == IntegrityStatus.WARNING


def test_match_does_not_clear_existing_warning(populated_store: ReportStore) -> None:
    store = populated_store
    period = _period(store)
    original = period.name

    period.name = "changed"
    store.integrity.verify(period.id)
    period.name = original

    result = store.integrity.verify(period.id)
    assert result.valid
    assert period.integrity.status == IntegrityStatus.WARNING
    assert not store.can_publish(period.id)


def test_non_hash_metadata_does_not_trigger_warning(populated_store: ReportStore) -> None:
    store = populated_store
    period = _period(store)

    period.status = "closed"
    period.integrity.override_by = "someone"

    assert store.verify_integrity(period.id)
    assert period.integrity.status == IntegrityStatus.VALID


def test_tampered_decision_fails_and_blocks_its_period(populated_store: ReportStore) -> None:
    store = populated_store
    period = _period(store)
    decision = _decision(store)

    decision.decision_text = "Report location-based only."
    assert not store.verify_integrity(decision.id)
    assert decision.integrity.status == IntegrityStatus.FAILED

    gate = store.integrity.can_publish(period.id)
    assert not gate.can_publish
    assert gate.failing_entity_ids == (decision.id,)

    report = store.integrity.status_report(period.id)
    assert report.period_integrity_valid
    assert not report.period_integrity_warning
    assert report.failed_decisions == [decision.id]
    assert not report.can_publish

    other = next(p for p in store.periods.values() if p.name == "2024")
    assert store.can_publish(other.id)


def test_status_report_for_tampered_period(populated_store: ReportStore) -> None:
    store = populated_store
    period = _period(store)
    period.end_date = "2024-01-31"

    report = store.integrity.status_report(period.id)
    assert not report.period_integrity_valid
    # status_report is read-only: no transition until verify() runs
    assert not report.period_integrity_warning
    assert report.to_dict()["can_publish"] is True

    store.integrity.verify(period.id)
    assert store.integrity.status_report(period.id).period_integrity_warning


# -----------------------------------------------------------------------------
# Override rules
# -----------------------------------------------------------------------------


@pytest.fixture
def warned_period(populated_store: ReportStore) -> ReportingPeriod:
    period = _period(populated_store)
    period.name = "out of band"
    populated_store.integrity.verify(period.id)
    return period


@pytest.mark.parametrize("actor", [EDITOR, "viewer-9", ""])
def test_non_admin_override_is_rejected(populated_store: ReportStore, warned_period: ReportingPeriod, actor: str) -> None:
    result = populated_store.override_integrity(warned_period.id, actor, "looks fine")

    assert not result.success
    assert isinstance(result.error, AuthorizationError)
    assert result.error_kind == "authorization"
    assert "admin" in result.message
    assert warned_period.integrity.status == IntegrityStatus.WARNING
    assert _overrides(populated_store, warned_period.id) == []


@pytest.mark.parametrize("justification", [None, "", "   ", "\n\t"])
def test_blank_justification_is_rejected(
    populated_store: ReportStore, warned_period: ReportingPeriod, justification: str | None
) -> None:
    result = populated_store.override_integrity(warned_period.id, ADMIN, justification)

    assert not result.success
    assert isinstance(result.error, ValidationError)
    assert "justification" in result.message.lower()
    assert warned_period.integrity.status == IntegrityStatus.WARNING
    assert _overrides(populated_store, warned_period.id) == []


def test_non_admin_is_rejected_before_justification_check(
    populated_store: ReportStore, warned_period: ReportingPeriod
) -> None:
    result = populated_store.override_integrity(warned_period.id, EDITOR, "")
    assert result.error_kind == "authorization"


def test_override_without_warning_is_rejected(populated_store: ReportStore) -> None:
    period = _period(populated_store)
    result = populated_store.override_integrity(period.id, ADMIN, "just because")

    assert not result.success
    assert result.error_kind == "validation"
    assert _overrides(populated_store, period.id) == []


def test_override_clears_failed_decision(populated_store: ReportStore) -> None:
    store = populated_store
    decision = _decision(store)
    decision.title = "edited"
    store.integrity.verify(decision.id)

    result = store.override_integrity(decision.id, ADMIN, "Title fix confirmed with owner")

    assert result.success
    assert decision.integrity.status == IntegrityStatus.VALID
    assert store.can_publish(_period(store).id)
    assert len(_overrides(store, decision.id)) == 1


def test_unknown_entity_raises_not_found(populated_store: ReportStore) -> None:
    with pytest.raises(NotFoundError):
        populated_store.integrity.verify("nope")
    with pytest.raises(NotFoundError):
        populated_store.integrity.can_publish("nope")
    with pytest.raises(NotFoundError):
        populated_store.override_integrity("nope", ADMIN, "x")


# -----------------------------------------------------------------------------
# Versioned decisions
# -----------------------------------------------------------------------------


def test_decision_update_freezes_prior_version(populated_store: ReportStore) -> None:
    store = populated_store
    decision = _decision(store)
    h1 = decision.integrity.integrity_hash

    store.update_decision(decision.id, EDITOR, change_note="Expanded scope", consequences="Restated 2022")

    assert decision.version == 2
    assert len(decision.versions) == 1
    frozen = decision.versions[0]
    assert frozen.version == 1
    assert frozen.integrity_hash == h1
    assert frozen.fields["consequences"] == ""
    assert decision.integrity.integrity_hash != h1
    assert store.verify_integrity(decision.id)


def test_decision_update_requires_change_note(populated_store: ReportStore) -> None:
    decision = _decision(populated_store)
    with pytest.raises(ValidationError):
        populated_store.update_decision(decision.id, EDITOR, change_note=" ", title="x")
    assert decision.version == 1
