"""
In-memory report store wired to the provenance engine.

Every mutation follows the same path:

    before = entity.to_audit_snapshot()      (None on create)
    ... apply the change ...
    integrity.seal(entity)                   (hash-bearing types only)
    detect_changes(before, after) -> trail   (if the policy says so)

Entity storage itself is deliberately plain: dicts keyed by id. Unknown ids
raise NotFoundError.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable, Iterable, Mapping

from ..diff.disclosure import DisclosureComparison, compare_disclosure
from ..diff.text import DEFAULT_MAX_ALIGNMENT_CELLS, DEFAULT_MAX_TEXT_LENGTH
from ..errors import NotFoundError, OperationResult, ValidationError
from ..integrity.service import IntegrityService
from ..ledger.detector import detect_changes
from ..ledger.entries import (
    ACTION_ACCESS_DENIED,
    ACTION_APPROVE,
    ACTION_CREATE,
    ACTION_ROLLOVER,
    ACTION_UPDATE,
    AuditEntry,
    create_entry,
)
from ..ledger.policy import AuditPolicy
from ..ledger.trail import AuditTrail
from ..util import new_ulid
from .entities import Assumption, DataPoint, Decision, Gap, ReportingPeriod, Section

logger = logging.getLogger(__name__)

# Fields a caller may change through update_*; everything else is managed here
PERIOD_FIELDS = frozenset({"name", "start_date", "end_date", "reporting_mode", "report_scope", "owner_id", "status"})
SECTION_FIELDS = frozenset({"title", "catalog_code", "category", "description", "owner_id", "status", "order"})
DECISION_FIELDS = frozenset({"title", "context", "decision_text", "alternatives", "consequences", "status"})
NARRATIVE_FIELDS = frozenset({"title", "content", "owner_id", "status"})


def _require(value: str | None, label: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{label} is required")
    return value


def _check_fields(changes: Mapping[str, Any], allowed: frozenset[str], entity_type: str) -> None:
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValidationError(f"{entity_type} has no updatable field(s): {', '.join(unknown)}")


def _check_dates(start_date: str, end_date: str) -> None:
    try:
        start = date.fromisoformat(start_date)
        end = date.fromisoformat(end_date)
    except ValueError as e:
        raise ValidationError(f"Invalid period date: {e}") from e
    if start > end:
        raise ValidationError("Start date must be before or equal to end date")


class ReportStore:
    """Periods, sections, decisions and narratives with audit and integrity."""

    def __init__(
        self,
        trail: AuditTrail | None = None,
        *,
        policy: AuditPolicy | None = None,
        is_admin: Callable[[str], bool] | None = None,
        max_text_length: int = DEFAULT_MAX_TEXT_LENGTH,
        max_alignment_cells: int = DEFAULT_MAX_ALIGNMENT_CELLS,
    ):
        self.trail = trail if trail is not None else AuditTrail()
        self.policy = policy or AuditPolicy()
        self.max_text_length = max_text_length
        self.max_alignment_cells = max_alignment_cells

        self.periods: dict[str, ReportingPeriod] = {}
        self.sections: dict[str, Section] = {}
        self.decisions: dict[str, Decision] = {}
        self.narratives: dict[str, DataPoint] = {}
        self.assumptions: dict[str, Assumption] = {}
        self.gaps: dict[str, Gap] = {}

        self.integrity = IntegrityService(
            self.trail,
            resolve=self.get_hash_bearing,
            is_admin=is_admin or (lambda _actor_id: False),
            linked=self._linked_decisions,
        )

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    @staticmethod
    def _lookup(table: dict[str, Any], entity_id: str, entity_type: str) -> Any:
        try:
            return table[entity_id]
        except KeyError:
            raise NotFoundError(f"{entity_type} not found: {entity_id}") from None

    def get_period(self, period_id: str) -> ReportingPeriod:
        return self._lookup(self.periods, period_id, ReportingPeriod.entity_type)

    def get_section(self, section_id: str) -> Section:
        return self._lookup(self.sections, section_id, Section.entity_type)

    def get_decision(self, decision_id: str) -> Decision:
        return self._lookup(self.decisions, decision_id, Decision.entity_type)

    def get_narrative(self, record_id: str) -> DataPoint:
        return self._lookup(self.narratives, record_id, DataPoint.entity_type)

    def get_hash_bearing(self, entity_id: str) -> ReportingPeriod | Decision:
        if entity_id in self.periods:
            return self.periods[entity_id]
        if entity_id in self.decisions:
            return self.decisions[entity_id]
        raise NotFoundError(f"No hash-bearing entity with id {entity_id}")

    def sections_of(self, period_id: str) -> list[Section]:
        return [s for s in self.sections.values() if s.period_id == period_id]

    def _linked_decisions(self, entity: Any) -> Iterable[Decision]:
        if not isinstance(entity, ReportingPeriod):
            return []
        section_ids = {s.id for s in self.sections_of(entity.id)}
        return [d for d in self.decisions.values() if d.section_id in section_ids]

    # NarrativeLookup

    def find_narrative(self, record_id: str) -> DataPoint | None:
        return self.narratives.get(record_id)

    def find_narrative_by_title(self, period_id: str, title: str) -> DataPoint | None:
        wanted = title.strip().lower()
        for record in self.narratives.values():
            if record.period_id == period_id and record.title.strip().lower() == wanted:
                return record
        return None

    # -------------------------------------------------------------------------
    # Audit plumbing
    # -------------------------------------------------------------------------

    def _record(
        self,
        action: str,
        entity: Any,
        before: Mapping[str, str | None] | None,
        actor_id: str,
        actor_name: str = "",
        *,
        change_note: str | None = None,
        section_id: str | None = None,
        owner_id: str | None = None,
    ) -> AuditEntry | None:
        """Detect changes and append one entry if the action is audit-worthy."""
        if not self.policy.is_audit_worthy(entity.entity_type, action):
            return None
        changes = detect_changes(before, entity.to_audit_snapshot())
        if before is not None and not changes and action == ACTION_UPDATE:
            return None
        return self.trail.append(
            create_entry(
                action,
                entity.entity_type,
                entity.id,
                actor_id,
                actor_name,
                changes=changes,
                change_note=change_note,
                section_id=section_id,
                owner_id=owner_id,
            )
        )

    @staticmethod
    def _apply(entity: Any, changes: Mapping[str, Any]) -> None:
        for name, value in changes.items():
            setattr(entity, name, value)

    # -------------------------------------------------------------------------
    # Reporting periods
    # -------------------------------------------------------------------------

    def create_period(
        self,
        name: str,
        start_date: str,
        end_date: str,
        *,
        owner_id: str,
        actor_id: str,
        actor_name: str = "",
        reporting_mode: str = "simplified",
        report_scope: str = "single-company",
    ) -> ReportingPeriod:
        _require(name, "Name")
        _check_dates(start_date, end_date)
        period = ReportingPeriod(
            id=new_ulid(),
            name=name,
            start_date=start_date,
            end_date=end_date,
            owner_id=owner_id,
            reporting_mode=reporting_mode,
            report_scope=report_scope,
        )
        self.integrity.seal(period)
        self.periods[period.id] = period
        self._record(ACTION_CREATE, period, None, actor_id, actor_name, owner_id=owner_id)
        return period

    def update_period(
        self,
        period_id: str,
        actor_id: str,
        actor_name: str = "",
        *,
        change_note: str | None = None,
        **changes: Any,
    ) -> ReportingPeriod:
        period = self.get_period(period_id)
        _check_fields(changes, PERIOD_FIELDS, period.entity_type)
        if "name" in changes:
            _require(changes["name"], "Name")
        _check_dates(changes.get("start_date", period.start_date), changes.get("end_date", period.end_date))

        before = period.to_audit_snapshot()
        self._apply(period, changes)
        self.integrity.seal(period)
        self._record(
            ACTION_UPDATE, period, before, actor_id, actor_name, change_note=change_note, owner_id=period.owner_id
        )
        return period

    # -------------------------------------------------------------------------
    # Sections
    # -------------------------------------------------------------------------

    def create_section(
        self,
        period_id: str,
        title: str,
        *,
        owner_id: str,
        actor_id: str,
        actor_name: str = "",
        catalog_code: str = "",
        category: str = "",
        description: str = "",
        order: int = 0,
    ) -> Section:
        self.get_period(period_id)
        _require(title, "Title")
        section = Section(
            id=new_ulid(),
            period_id=period_id,
            title=title,
            owner_id=owner_id,
            catalog_code=catalog_code,
            category=category,
            description=description,
            order=order,
        )
        self.sections[section.id] = section
        self._record(ACTION_CREATE, section, None, actor_id, actor_name, section_id=section.id, owner_id=owner_id)
        return section

    def update_section(
        self,
        section_id: str,
        actor_id: str,
        actor_name: str = "",
        *,
        change_note: str | None = None,
        **changes: Any,
    ) -> Section:
        section = self.get_section(section_id)
        _check_fields(changes, SECTION_FIELDS, section.entity_type)
        before = section.to_audit_snapshot()
        self._apply(section, changes)
        self._record(
            ACTION_UPDATE,
            section,
            before,
            actor_id,
            actor_name,
            change_note=change_note,
            section_id=section.id,
            owner_id=section.owner_id,
        )
        return section

    def approve_section(self, section_id: str, actor_id: str, actor_name: str = "") -> Section:
        section = self.get_section(section_id)
        before = section.to_audit_snapshot()
        section.status = "approved"
        self._record(
            ACTION_APPROVE, section, before, actor_id, actor_name, section_id=section.id, owner_id=section.owner_id
        )
        return section

    def record_access_denied(
        self,
        entity_type: str,
        entity_id: str,
        actor_id: str,
        actor_name: str = "",
        *,
        reason: str,
        section_id: str | None = None,
    ) -> AuditEntry | None:
        """Record a denied access attempt (no field changes)."""
        if not self.policy.is_audit_worthy(entity_type, ACTION_ACCESS_DENIED):
            return None
        return self.trail.append(
            create_entry(
                ACTION_ACCESS_DENIED,
                entity_type,
                entity_id,
                actor_id,
                actor_name,
                change_note=reason,
                section_id=section_id,
            )
        )

    # -------------------------------------------------------------------------
    # Decisions
    # -------------------------------------------------------------------------

    def create_decision(
        self,
        section_id: str,
        title: str,
        context: str,
        decision_text: str,
        *,
        actor_id: str,
        actor_name: str = "",
        alternatives: str = "",
        consequences: str = "",
    ) -> Decision:
        self.get_section(section_id)
        _require(title, "Title")
        _require(decision_text, "Decision text")
        decision = Decision(
            id=new_ulid(),
            section_id=section_id,
            title=title,
            context=context,
            decision_text=decision_text,
            alternatives=alternatives,
            consequences=consequences,
            owner_id=actor_id,
        )
        self.integrity.seal(decision)
        self.decisions[decision.id] = decision
        self._record(ACTION_CREATE, decision, None, actor_id, actor_name, section_id=section_id, owner_id=actor_id)
        return decision

    def update_decision(
        self,
        decision_id: str,
        actor_id: str,
        actor_name: str = "",
        *,
        change_note: str,
        **changes: Any,
    ) -> Decision:
        """
        Advance a decision to a new version.

        The prior version (with the hash it carried) is frozen first; the live
        record is then changed, its version bumped and re-hashed.
        """
        decision = self.get_decision(decision_id)
        _require(change_note, "Change note")
        _check_fields(changes, DECISION_FIELDS, decision.entity_type)
        if not changes:
            raise ValidationError("No decision fields to update")

        before = decision.to_audit_snapshot()
        decision.freeze_version()
        self._apply(decision, changes)
        decision.version += 1
        self.integrity.seal(decision)
        self._record(
            ACTION_UPDATE,
            decision,
            before,
            actor_id,
            actor_name,
            change_note=change_note,
            section_id=decision.section_id,
            owner_id=decision.owner_id,
        )
        return decision

    # -------------------------------------------------------------------------
    # Narrative data points
    # -------------------------------------------------------------------------

    def create_narrative(
        self,
        section_id: str,
        title: str,
        content: str,
        *,
        owner_id: str,
        actor_id: str,
        actor_name: str = "",
    ) -> DataPoint:
        section = self.get_section(section_id)
        _require(title, "Title")
        record = DataPoint(
            id=new_ulid(),
            section_id=section_id,
            period_id=section.period_id,
            title=title,
            content=content,
            owner_id=owner_id,
        )
        self.narratives[record.id] = record
        self._record(ACTION_CREATE, record, None, actor_id, actor_name, section_id=section_id, owner_id=owner_id)
        return record

    def update_narrative(
        self,
        record_id: str,
        actor_id: str,
        actor_name: str = "",
        *,
        change_note: str | None = None,
        **changes: Any,
    ) -> DataPoint:
        record = self.get_narrative(record_id)
        _check_fields(changes, NARRATIVE_FIELDS, record.entity_type)
        before = record.to_audit_snapshot()
        self._apply(record, changes)
        self._record(
            ACTION_UPDATE,
            record,
            before,
            actor_id,
            actor_name,
            change_note=change_note,
            section_id=record.section_id,
            owner_id=record.owner_id,
        )
        return record

    def rollover(
        self,
        source_period_id: str,
        target_period_id: str,
        *,
        actor_id: str,
        actor_name: str = "",
    ) -> list[DataPoint]:
        """
        Copy every narrative of the source period into the target period.

        Sections are matched by title (created when missing); each copy
        carries lineage back to the record it was copied from.
        """
        if source_period_id == target_period_id:
            raise ValidationError("Source and target period must differ")
        self.get_period(source_period_id)
        target = self.get_period(target_period_id)

        target_sections = {s.title.lower(): s for s in self.sections_of(target_period_id)}
        copies: list[DataPoint] = []
        for source_section in self.sections_of(source_period_id):
            section = target_sections.get(source_section.title.lower())
            if section is None:
                section = self.create_section(
                    target_period_id,
                    source_section.title,
                    owner_id=source_section.owner_id,
                    actor_id=actor_id,
                    actor_name=actor_name,
                    catalog_code=source_section.catalog_code,
                    category=source_section.category,
                    description=source_section.description,
                    order=source_section.order,
                )
                target_sections[section.title.lower()] = section

            sources = [r for r in self.narratives.values() if r.section_id == source_section.id]
            for source in sources:
                copy = DataPoint(
                    id=new_ulid(),
                    section_id=section.id,
                    period_id=target.id,
                    title=source.title,
                    content=source.content,
                    owner_id=source.owner_id,
                    source_record_id=source.id,
                    source_period_id=source_period_id,
                )
                self.narratives[copy.id] = copy
                self._record(
                    ACTION_ROLLOVER,
                    copy,
                    None,
                    actor_id,
                    actor_name,
                    change_note=f"Rolled over from period {source_period_id}",
                    section_id=section.id,
                    owner_id=copy.owner_id,
                )
                copies.append(copy)

        logger.info("Rolled over %d narratives from %s to %s", len(copies), source_period_id, target_period_id)
        return copies

    def compare_narrative(self, record_id: str, previous_period_id: str | None = None) -> DisclosureComparison:
        record = self.get_narrative(record_id)
        if previous_period_id is not None:
            self.get_period(previous_period_id)
        return compare_disclosure(
            record,
            self,
            previous_period_id=previous_period_id,
            max_length=self.max_text_length,
            max_cells=self.max_alignment_cells,
        )

    # -------------------------------------------------------------------------
    # Assumptions and gaps
    # -------------------------------------------------------------------------

    def create_assumption(
        self,
        section_id: str,
        title: str,
        description: str,
        *,
        owner_id: str,
        actor_id: str,
        actor_name: str = "",
        scope: str = "",
        methodology: str = "",
    ) -> Assumption:
        self.get_section(section_id)
        _require(title, "Title")
        assumption = Assumption(
            id=new_ulid(),
            section_id=section_id,
            title=title,
            description=description,
            owner_id=owner_id,
            scope=scope,
            methodology=methodology,
        )
        self.assumptions[assumption.id] = assumption
        self._record(ACTION_CREATE, assumption, None, actor_id, actor_name, section_id=section_id, owner_id=owner_id)
        return assumption

    def create_gap(
        self,
        section_id: str,
        title: str,
        description: str,
        *,
        owner_id: str,
        actor_id: str,
        actor_name: str = "",
        impact: str = "",
    ) -> Gap:
        self.get_section(section_id)
        _require(title, "Title")
        gap = Gap(
            id=new_ulid(),
            section_id=section_id,
            title=title,
            description=description,
            owner_id=owner_id,
            impact=impact,
        )
        self.gaps[gap.id] = gap
        self._record(ACTION_CREATE, gap, None, actor_id, actor_name, section_id=section_id, owner_id=owner_id)
        return gap

    # -------------------------------------------------------------------------
    # Integrity shortcuts
    # -------------------------------------------------------------------------

    def verify_integrity(self, entity_id: str, actor_id: str = "system") -> bool:
        return self.integrity.verify(entity_id, actor_id=actor_id).valid

    def can_publish(self, entity_id: str) -> bool:
        return self.integrity.can_publish(entity_id).can_publish

    def override_integrity(self, entity_id: str, actor_id: str, justification: str | None) -> OperationResult:
        return self.integrity.override(entity_id, actor_id, justification)
