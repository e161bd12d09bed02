"""
Integrity verification, publication gate and admin override.

Orchestrates: seal() on write → verify() on demand → can_publish() as the
export/publish gate → override() to clear a warning.

Key invariants:
- verify() never rewrites the stored hash, only status and details
- a matching hash does not clear an existing warning; only override() does
- override() is admin-only, requires a justification, and is always audited
- the fact that a warning occurred stays visible in the audit trail
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from ..domain.capabilities import Auditable, HashBearing
from ..errors import AuthorizationError, OperationResult, ValidationError
from ..ledger.detector import detect_changes
from ..ledger.entries import (
    ACTION_INTEGRITY_FAILED,
    ACTION_OVERRIDE,
    FieldChange,
    create_entry,
)
from ..ledger.trail import AuditTrail
from .hasher import compute_hash
from .records import IntegrityStatus

logger = logging.getLogger(__name__)

STATUS_FIELD = "IntegrityStatus"

# Divergence outcome per entity type; anything else gets a warning
DEFAULT_FAILURE_STATUSES: dict[str, IntegrityStatus] = {
    "ReportingPeriod": IntegrityStatus.WARNING,
    "Decision": IntegrityStatus.FAILED,
}

Resolver = Callable[[str], HashBearing]
AdminPredicate = Callable[[str], bool]
LinkedEntities = Callable[[HashBearing], Iterable[HashBearing]]


@dataclass(frozen=True)
class VerifyResult:
    """Result of verify()."""

    entity_id: str
    entity_type: str
    valid: bool
    status: IntegrityStatus
    details: str | None = None

    @property
    def message(self) -> str:
        if self.valid:
            return "Integrity check passed."
        return f"Integrity check failed. The {self.entity_type} has been modified since it was last written."

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "entity_type": self.entity_type,
            "integrity_valid": self.valid,
            "integrity_status": self.status.value,
            "details": self.details,
            "message": self.message,
        }


@dataclass(frozen=True)
class PublishGate:
    """Result of can_publish(): blocked entities are listed for diagnosis."""

    entity_id: str
    can_publish: bool
    failing_entity_ids: tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return self.can_publish

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "can_publish": self.can_publish,
            "failing_entity_ids": list(self.failing_entity_ids),
        }


@dataclass(frozen=True)
class IntegrityStatusReport:
    """Integrity overview of a reporting period and its linked decisions."""

    period_id: str
    period_integrity_valid: bool
    period_integrity_warning: bool
    failed_decisions: list[str] = field(default_factory=list)
    can_publish: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "period_id": self.period_id,
            "period_integrity_valid": self.period_integrity_valid,
            "period_integrity_warning": self.period_integrity_warning,
            "failed_decisions": list(self.failed_decisions),
            "can_publish": self.can_publish,
        }


def _correlation(entity: HashBearing) -> dict[str, str | None]:
    return {
        "section_id": getattr(entity, "section_id", None),
        "owner_id": getattr(entity, "owner_id", None),
    }


class IntegrityService:
    def __init__(
        self,
        trail: AuditTrail,
        *,
        resolve: Resolver,
        is_admin: AdminPredicate,
        linked: LinkedEntities | None = None,
        failure_statuses: Mapping[str, IntegrityStatus] | None = None,
    ):
        """
        Args:
            trail: Audit trail receiving failure and override entries
            resolve: entity id -> hash-bearing entity (raises NotFoundError)
            is_admin: Admin predicate owned by the access-control collaborator
            linked: entity -> dependent hash-bearing entities that also gate
                its publication (a period's section decisions)
            failure_statuses: entity_type -> status set on divergence
        """
        self.trail = trail
        self._resolve = resolve
        self._is_admin = is_admin
        self._linked = linked
        self.failure_statuses = dict(failure_statuses or DEFAULT_FAILURE_STATUSES)

    # -------------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------------

    def seal(self, entity: HashBearing) -> str:
        """Store the hash of current content. Called after every in-band write."""
        digest = compute_hash(entity)
        entity.integrity.integrity_hash = digest
        return digest

    # -------------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------------

    def failure_status_for(self, entity: HashBearing) -> IntegrityStatus:
        return self.failure_statuses.get(entity.entity_type, IntegrityStatus.WARNING)

    def verify(self, entity_id: str, *, actor_id: str = "system", actor_name: str = "") -> VerifyResult:
        """
        Recompute the hash from current content and compare to the stored hash.

        On mismatch the entity moves to its failure status with details; the
        first transition is recorded in the trail, repeats are idempotent.
        """
        entity = self._resolve(entity_id)
        record = entity.integrity

        if not record.integrity_hash:
            return VerifyResult(entity_id, entity.entity_type, True, record.status)

        current = compute_hash(entity)
        if current == record.integrity_hash:
            return VerifyResult(entity_id, entity.entity_type, True, record.status, record.warning_details)

        failure_status = self.failure_status_for(entity)
        if record.status == failure_status:
            return VerifyResult(entity_id, entity.entity_type, False, record.status, record.warning_details)

        details = (
            f"Stored hash {record.integrity_hash[:12]} does not match current content "
            f"hash {current[:12]}; {entity.entity_type} {entity_id} was modified outside "
            "an audited write."
        )
        changes = self._transition(entity, failure_status, details)
        self.trail.append(
            create_entry(
                ACTION_INTEGRITY_FAILED,
                entity.entity_type,
                entity_id,
                actor_id,
                actor_name,
                changes=changes,
                change_note=details,
                **_correlation(entity),
            )
        )
        logger.warning("Integrity check failed for %s %s", entity.entity_type, entity_id)
        return VerifyResult(entity_id, entity.entity_type, False, failure_status, details)

    def _transition(
        self,
        entity: HashBearing,
        status: IntegrityStatus,
        details: str | None,
    ) -> list[FieldChange]:
        """Set status/details and return the resulting field changes."""
        record = entity.integrity
        if isinstance(entity, Auditable):
            before = dict(entity.to_audit_snapshot())
            record.status = status
            record.warning_details = details
            changes = detect_changes(before, entity.to_audit_snapshot())
            if changes:
                return changes
        old_status = record.status
        record.status = status
        record.warning_details = details
        if old_status == status:
            return []
        return [FieldChange(field=STATUS_FIELD, old_value=old_status.value, new_value=status.value)]

    # -------------------------------------------------------------------------
    # Publication gate
    # -------------------------------------------------------------------------

    def can_publish(self, entity_id: str) -> PublishGate:
        """
        False if the entity, or any entity linked to it, carries a
        warning/failed status. Does not re-verify.
        """
        entity = self._resolve(entity_id)
        failing: list[str] = []
        if entity.integrity.blocks_publication:
            failing.append(entity.id)
        if self._linked is not None:
            for dependent in self._linked(entity):
                if dependent.integrity.blocks_publication:
                    failing.append(dependent.id)
        return PublishGate(entity_id=entity_id, can_publish=not failing, failing_entity_ids=tuple(failing))

    def status_report(self, period_id: str) -> IntegrityStatusReport:
        """Read-only integrity overview for a period and its linked decisions."""
        period = self._resolve(period_id)
        stored = period.integrity.integrity_hash
        gate = self.can_publish(period_id)
        dependents = list(self._linked(period)) if self._linked is not None else []
        return IntegrityStatusReport(
            period_id=period_id,
            period_integrity_valid=(not stored) or compute_hash(period) == stored,
            period_integrity_warning=period.integrity.blocks_publication,
            failed_decisions=[d.id for d in dependents if d.integrity.blocks_publication],
            can_publish=gate.can_publish,
        )

    # -------------------------------------------------------------------------
    # Override
    # -------------------------------------------------------------------------

    def override(
        self,
        entity_id: str,
        actor_id: str,
        justification: str | None,
        *,
        actor_name: str = "",
    ) -> OperationResult:
        """
        Clear a warning/failed status. Admin-only; justification required.

        Exactly one audit entry records the override, its actor and the
        justification. The stored hash is left untouched.
        """
        entity = self._resolve(entity_id)

        if not self._is_admin(actor_id):
            logger.info("Override of %s %s denied for %s", entity.entity_type, entity_id, actor_id)
            return OperationResult.fail(
                AuthorizationError(f"Only admin users can override integrity warnings (user {actor_id}).")
            )

        if justification is None or not justification.strip():
            return OperationResult.fail(ValidationError("Justification is required to override an integrity warning."))

        record = entity.integrity
        if not record.blocks_publication:
            return OperationResult.fail(
                ValidationError(f"{entity.entity_type} {entity_id} has no integrity warning to override.")
            )

        justification = justification.strip()
        previous_details = record.warning_details
        changes = self._transition(entity, IntegrityStatus.VALID, None)
        record.override_by = actor_id
        record.override_justification = justification

        note = justification
        if previous_details:
            note = f"{justification} (cleared: {previous_details})"
        self.trail.append(
            create_entry(
                ACTION_OVERRIDE,
                entity.entity_type,
                entity_id,
                actor_id,
                actor_name,
                changes=changes,
                change_note=note,
                **_correlation(entity),
            )
        )
        logger.info("Integrity warning on %s %s overridden by %s", entity.entity_type, entity_id, actor_id)
        return OperationResult.ok("Integrity warning overridden successfully.")
