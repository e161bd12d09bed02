"""
Content-addressed hashing for hash-bearing entities.

The digest is sha256 over a canonical JSON serialization of the entity's
content fields. Integrity metadata (the stored hash, warning status, override
attribution) is never part of the input, so storing the hash on the record it
protects cannot feed back into the hash.
"""

from __future__ import annotations

from typing import Any

from ..digest import sha256_hex
from ..domain.capabilities import HashBearing

# Keys that can never be part of hashable content
RESERVED_KEYS = frozenset({
    "integrity",
    "integrity_hash",
    "integrity_status",
    "status_details",
    "warning_details",
    "override_by",
    "override_justification",
})


def canonical_content(entity: HashBearing) -> dict[str, Any]:
    """Hashable content of an entity with reserved integrity keys stripped."""
    content = dict(entity.to_hashable_content())
    for key in RESERVED_KEYS:
        content.pop(key, None)
    return content


def compute_hash(entity: HashBearing) -> str:
    """Deterministic digest of an entity's content fields."""
    return sha256_hex(canonical_content(entity))


def matches(entity: HashBearing) -> bool:
    """True if the stored hash matches current content, or no hash is stored yet."""
    stored = entity.integrity.integrity_hash
    if not stored:
        return True
    return compute_hash(entity) == stored
