"""
Audit-worthiness policy table.

Which business actions get an audit entry is decided by the owning
collaborators, not by the trail. The table makes that decision explicit and
uniform: (entity_type, action) -> audited. Entity types missing from the
table fall back to `default`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from .entries import (
    ACTION_ACCESS_DENIED,
    ACTION_APPROVE,
    ACTION_CREATE,
    ACTION_DELETE,
    ACTION_INTEGRITY_FAILED,
    ACTION_OVERRIDE,
    ACTION_ROLLOVER,
    ACTION_UPDATE,
)

_MUTATIONS = {
    ACTION_CREATE: True,
    ACTION_UPDATE: True,
    ACTION_DELETE: True,
}

DEFAULT_RULES: dict[str, dict[str, bool]] = {
    "reportingperiod": {
        **_MUTATIONS,
        ACTION_INTEGRITY_FAILED: True,
        ACTION_OVERRIDE: True,
    },
    "section": {
        **_MUTATIONS,
        ACTION_APPROVE: True,
        ACTION_ACCESS_DENIED: True,
    },
    "decision": {
        **_MUTATIONS,
        ACTION_INTEGRITY_FAILED: True,
        ACTION_OVERRIDE: True,
    },
    "datapoint": {
        **_MUTATIONS,
        ACTION_ROLLOVER: True,
        ACTION_ACCESS_DENIED: False,
    },
    # Assumptions and gaps are structurally alike; both creations are audited.
    "assumption": dict(_MUTATIONS),
    "gap": dict(_MUTATIONS),
}


def _key(entity_type: str) -> str:
    return entity_type.replace("-", "").replace("_", "").lower()


@dataclass(frozen=True)
class AuditPolicy:
    rules: dict[str, dict[str, bool]] = field(default_factory=lambda: {k: dict(v) for k, v in DEFAULT_RULES.items()})
    default: bool = True

    def is_audit_worthy(self, entity_type: str, action: str) -> bool:
        """True if (entity_type, action) must produce an audit entry."""
        actions = self.rules.get(_key(entity_type))
        if actions is None:
            return self.default
        return actions.get(action, self.default)

    def to_dict(self) -> dict[str, Any]:
        return {"default": self.default, "rules": {k: dict(v) for k, v in self.rules.items()}}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, base: AuditPolicy | None = None) -> AuditPolicy:
        """
        Build a policy from a `[policy]` config table.

        Scalar keys other than `default` are ignored; each sub-table maps
        action names to booleans and overrides the base policy's rules for that
        entity type action by action.
        """
        base = base or cls()
        rules = {k: dict(v) for k, v in base.rules.items()}
        default = base.default

        raw_default = data.get("default")
        if isinstance(raw_default, bool):
            default = raw_default

        for entity_type, actions in data.items():
            if not isinstance(actions, Mapping):
                continue
            merged = rules.setdefault(_key(entity_type), {})
            for action, audited in actions.items():
                if not isinstance(audited, bool):
                    raise ValueError(
                        f"policy.{entity_type}.{action} must be true or false, got {audited!r}"
                    )
                merged[str(action)] = audited

        return cls(rules=rules, default=default)
