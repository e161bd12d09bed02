"""
Canonical serialization and sha256 digests.

Shared by the integrity hasher (entity content) and the audit trail
(entry hash chain).
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping


def canonical_json(content: Mapping[str, Any]) -> str:
    """Canonical JSON serialization for deterministic hashing."""
    return json.dumps(content, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256_hex(content: bytes | str | Mapping[str, Any]) -> str:
    """
    Compute sha256 hash of content.

    Args:
        content: Raw bytes, string, or mapping to hash

    Returns:
        Hex-encoded sha256 hash
    """
    if isinstance(content, Mapping):
        content = canonical_json(content)
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()
