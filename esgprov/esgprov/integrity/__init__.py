"""
Tamper evidence for hash-bearing aggregates.

- hasher: canonical content hashing (sha256)
- records: IntegrityRecord embedded in aggregates, VersionSnapshot
- service: verify / can_publish / override, audited through the trail
"""

from .hasher import compute_hash
from .records import IntegrityRecord, IntegrityStatus, VersionSnapshot
from .service import IntegrityService, IntegrityStatusReport, PublishGate, VerifyResult

__all__ = [
    "compute_hash",
    "IntegrityRecord",
    "IntegrityStatus",
    "VersionSnapshot",
    "IntegrityService",
    "IntegrityStatusReport",
    "PublishGate",
    "VerifyResult",
]
