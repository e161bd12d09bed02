"""Reporting entities wired to the provenance engine.

Each type supplies its own ordered audit snapshot and, where tamper evidence
is required, its hashable content. Snapshot field names are the display names
shown in audit views.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from ..integrity.records import IntegrityRecord, VersionSnapshot
from ..ledger.detector import build_snapshot


@dataclass
class ReportingPeriod:
    """A reporting period (hash-bearing; divergence raises a warning)."""

    entity_type: ClassVar[str] = "ReportingPeriod"

    id: str
    name: str
    start_date: str
    end_date: str
    owner_id: str
    reporting_mode: str = "simplified"
    report_scope: str = "single-company"
    status: str = "active"
    integrity: IntegrityRecord = field(default_factory=IntegrityRecord)

    def to_audit_snapshot(self) -> dict[str, str | None]:
        return build_snapshot([
            ("Name", self.name),
            ("StartDate", self.start_date),
            ("EndDate", self.end_date),
            ("ReportingMode", self.reporting_mode),
            ("ReportScope", self.report_scope),
            ("OwnerId", self.owner_id),
            ("Status", self.status),
            ("IntegrityStatus", self.integrity.status.value),
        ])

    def to_hashable_content(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "reporting_mode": self.reporting_mode,
            "report_scope": self.report_scope,
            "owner_id": self.owner_id,
        }


@dataclass
class Section:
    entity_type: ClassVar[str] = "Section"

    id: str
    period_id: str
    title: str
    owner_id: str
    catalog_code: str = ""
    category: str = ""
    description: str = ""
    status: str = "draft"
    order: int = 0

    def to_audit_snapshot(self) -> dict[str, str | None]:
        return build_snapshot([
            ("Title", self.title),
            ("CatalogCode", self.catalog_code),
            ("Category", self.category),
            ("Description", self.description),
            ("OwnerId", self.owner_id),
            ("Status", self.status),
            ("Order", self.order),
        ])


@dataclass
class Decision:
    """A versioned decision record (hash-bearing; divergence fails it).

    Every update freezes the prior state into `versions` before `version`
    advances on the live record.
    """

    entity_type: ClassVar[str] = "Decision"

    id: str
    section_id: str
    title: str
    context: str
    decision_text: str
    alternatives: str = ""
    consequences: str = ""
    owner_id: str | None = None
    status: str = "active"
    version: int = 1
    versions: list[VersionSnapshot] = field(default_factory=list)
    integrity: IntegrityRecord = field(default_factory=IntegrityRecord)

    def to_audit_snapshot(self) -> dict[str, str | None]:
        return build_snapshot([
            ("Title", self.title),
            ("Context", self.context),
            ("DecisionText", self.decision_text),
            ("Alternatives", self.alternatives),
            ("Consequences", self.consequences),
            ("Status", self.status),
            ("Version", self.version),
            ("IntegrityStatus", self.integrity.status.value),
        ])

    def to_hashable_content(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "title": self.title,
            "context": self.context,
            "decision_text": self.decision_text,
            "alternatives": self.alternatives,
            "consequences": self.consequences,
        }

    def freeze_version(self) -> VersionSnapshot:
        """Capture the current version before it is advanced."""
        snapshot = VersionSnapshot(
            version=self.version,
            integrity_hash=self.integrity.integrity_hash,
            fields=self.to_hashable_content(),
        )
        self.versions.append(snapshot)
        return snapshot


@dataclass
class DataPoint:
    """A narrative disclosure; rollover copies carry source lineage."""

    entity_type: ClassVar[str] = "DataPoint"

    id: str
    section_id: str
    period_id: str
    title: str
    content: str
    owner_id: str
    status: str = "draft"
    source_record_id: str | None = None
    source_period_id: str | None = None

    def to_audit_snapshot(self) -> dict[str, str | None]:
        return build_snapshot([
            ("Title", self.title),
            ("Content", self.content),
            ("OwnerId", self.owner_id),
            ("Status", self.status),
            ("SourceRecordId", self.source_record_id),
            ("SourcePeriodId", self.source_period_id),
        ])


@dataclass
class Assumption:
    entity_type: ClassVar[str] = "Assumption"

    id: str
    section_id: str
    title: str
    description: str
    owner_id: str
    scope: str = ""
    methodology: str = ""

    def to_audit_snapshot(self) -> dict[str, str | None]:
        return build_snapshot([
            ("Title", self.title),
            ("Description", self.description),
            ("Scope", self.scope),
            ("Methodology", self.methodology),
            ("OwnerId", self.owner_id),
        ])


@dataclass
class Gap:
    entity_type: ClassVar[str] = "Gap"

    id: str
    section_id: str
    title: str
    description: str
    owner_id: str
    impact: str = ""
    resolved: bool = False

    def to_audit_snapshot(self) -> dict[str, str | None]:
        return build_snapshot([
            ("Title", self.title),
            ("Description", self.description),
            ("Impact", self.impact),
            ("OwnerId", self.owner_id),
            ("Resolved", self.resolved),
        ])
