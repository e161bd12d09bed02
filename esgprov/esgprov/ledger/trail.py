"""
Append-only audit trail.

The trail is the single source of truth for "who changed what, when".
It contains only AuditEntry rows, written once and never modified; there is
no update or delete operation anywhere in this interface. Entries are chained
by sha256 (each entry hashes its own content plus the previous entry's hash),
so a rewritten row is detectable after the fact.

Storage is in-memory by default. Passing journal_path additionally writes
every entry as one JSON line, and reloads an existing journal on startup.
A journal line that does not parse raises JournalError naming the line.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

from ..digest import sha256_hex
from ..errors import JournalError
from ..util import MonotonicUlid, as_utc, utc_now
from .entries import AuditEntry

logger = logging.getLogger(__name__)

CHAIN_OK_MESSAGE = "Hash chain verified successfully"


# -----------------------------------------------------------------------------
# Verification / Export Result Classes
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainVerification:
    """Outcome of re-walking the entry hash chain."""

    valid: bool
    message: str
    checked: int
    broken_at: str | None = None  # id of the first entry that does not verify

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "message": self.message,
            "checked": self.checked,
            "broken_at": self.broken_at,
        }


@dataclass(frozen=True)
class ExportMetadata:
    exported_at: datetime
    exported_by: str
    exported_by_name: str
    total_entries: int
    filters: dict[str, Any]
    content_hash: str
    hash_chain_valid: bool
    validation_message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "exported_at": self.exported_at.isoformat(),
            "exported_by": self.exported_by,
            "exported_by_name": self.exported_by_name,
            "total_entries": self.total_entries,
            "filters": self.filters,
            "content_hash": self.content_hash,
            "hash_chain_valid": self.hash_chain_valid,
            "validation_message": self.validation_message,
        }


@dataclass(frozen=True)
class AuditExport:
    """Tamper-evident export: chronological entries plus a content hash."""

    metadata: ExportMetadata
    entries: list[AuditEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict(),
            "entries": [e.to_dict() for e in self.entries],
        }


def export_content_hash(entries: Sequence[AuditEntry]) -> str:
    """Hash of an ordered set of exported entries."""
    return sha256_hex({"entries": [e.to_dict() for e in entries]})


def compute_entry_hash(entry: AuditEntry) -> str:
    return sha256_hex(entry.hashable_content())


class AuditTrail:
    """
    Append-only, thread-safe audit ledger.

    INVARIANT: This class NEVER modifies or removes an appended entry.
    The only write operations are append() and append_many().
    """

    def __init__(
        self,
        journal_path: Path | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the trail.

        Args:
            journal_path: Optional JSON Lines file mirroring the trail
            clock: Timestamp source (defaults to UTC now)
        """
        self.journal_path = journal_path
        self._clock = clock or utc_now
        self._lock = threading.Lock()

        self._entries: list[AuditEntry] = []
        self._by_entity_id: dict[str, list[int]] = {}
        self._by_entity_type: dict[str, list[int]] = {}  # lowercased entity_type
        self._by_action: dict[str, list[int]] = {}
        self._by_section_id: dict[str, list[int]] = {}
        self._by_owner_id: dict[str, list[int]] = {}
        self._by_id: dict[str, int] = {}
        self._next_id = MonotonicUlid()

        if journal_path is not None:
            self._load_journal(journal_path)

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------

    def _load_journal(self, journal_path: Path) -> None:
        if not journal_path.exists():
            return
        with journal_path.open("r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = AuditEntry.from_json(line)
                except (ValueError, KeyError, TypeError) as e:
                    raise JournalError(f"{journal_path}:{lineno}: unreadable audit entry ({e})") from e
                self._insert(entry)
        logger.debug("Loaded %d audit entries from %s", len(self._entries), journal_path)

    def _write_journal(self, entries: Iterable[AuditEntry]) -> None:
        """
        Append a run of entries to the journal, all or nothing.

        The run is serialized before the file is touched; a failed write is
        truncated back to the previous end of file.
        """
        assert self.journal_path is not None
        payload = memoryview("".join(entry.to_json() + "\n" for entry in entries).encode("utf-8"))
        self.journal_path.parent.mkdir(parents=True, exist_ok=True)
        with self.journal_path.open("ab", buffering=0) as f:
            start = f.seek(0, os.SEEK_END)
            try:
                while payload:
                    payload = payload[f.write(payload) :]
            except OSError:
                f.truncate(start)
                raise

    def _insert(self, entry: AuditEntry) -> None:
        """Append to memory and indexes. Caller holds the lock (or is __init__)."""
        idx = len(self._entries)
        self._entries.append(entry)
        self._by_id[entry.id] = idx
        self._next_id.advance_past(entry.id)

        self._by_entity_id.setdefault(entry.entity_id, []).append(idx)
        self._by_entity_type.setdefault(entry.entity_type.lower(), []).append(idx)
        self._by_action.setdefault(entry.action, []).append(idx)
        if entry.section_id is not None:
            self._by_section_id.setdefault(entry.section_id, []).append(idx)
        if entry.owner_id is not None:
            self._by_owner_id.setdefault(entry.owner_id, []).append(idx)

    def _new_id(self) -> str:
        entry_id = self._next_id()
        while entry_id in self._by_id:
            entry_id = self._next_id()
        return entry_id

    def _stamp(self, entry: AuditEntry, previous_hash: str | None) -> AuditEntry:
        stamped = replace(
            entry,
            id=self._new_id(),
            timestamp=entry.timestamp or self._clock(),
            previous_entry_hash=previous_hash,
            entry_hash="",
        )
        return replace(stamped, entry_hash=compute_entry_hash(stamped))

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def append(self, entry: AuditEntry) -> AuditEntry:
        """
        Append an entry to the trail.

        Assigns a unique id, a timestamp (unless one was pinned) and the chain
        hashes. Never rejects an entry for content reasons.

        Returns:
            The stored entry
        """
        return self.append_many([entry])[0]

    def append_many(self, entries: Sequence[AuditEntry]) -> list[AuditEntry]:
        """
        Append multiple entries as one contiguous run.

        No other append can interleave with the run.
        """
        if not entries:
            return []
        with self._lock:
            previous_hash = self._entries[-1].entry_hash if self._entries else None
            stamped: list[AuditEntry] = []
            for entry in entries:
                current = self._stamp(entry, previous_hash)
                stamped.append(current)
                previous_hash = current.entry_hash

            if self.journal_path is not None:
                self._write_journal(stamped)
            for current in stamped:
                self._insert(current)

        for current in stamped:
            logger.debug(
                "Audit %s %s/%s by %s (%d changes)",
                current.action,
                current.entity_type,
                current.entity_id,
                current.user_id,
                len(current.changes),
            )
        return stamped

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def entries(self) -> list[AuditEntry]:
        """All entries in append order (oldest first)."""
        with self._lock:
            return list(self._entries)

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.count()

    def get(self, entry_id: str) -> AuditEntry | None:
        with self._lock:
            idx = self._by_id.get(entry_id)
            return self._entries[idx] if idx is not None else None

    def query(
        self,
        entity_type: str | None = None,
        entity_id: str | None = None,
        section_id: str | None = None,
        owner_id: str | None = None,
        action: str | None = None,
        *,
        user_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        """
        Query entries with composable filters.

        All supplied filters must match; omitted filters match everything.
        entity_type is compared case-insensitively.
        Naive since/until values are read as UTC, like pinned timestamps.

        Returns:
            Matching entries, newest first (reverse append order). Empty list
            when nothing matches.
        """
        since = as_utc(since)
        until = as_utc(until)

        with self._lock:
            candidate_indices: set[int] | None = None

            for index, key in (
                (self._by_entity_type, entity_type.lower() if entity_type is not None else None),
                (self._by_entity_id, entity_id),
                (self._by_section_id, section_id),
                (self._by_owner_id, owner_id),
                (self._by_action, action),
            ):
                if key is None:
                    continue
                indices = set(index.get(key, []))
                candidate_indices = indices if candidate_indices is None else candidate_indices & indices

            if candidate_indices is None:
                candidate_indices = set(range(len(self._entries)))

            snapshot = [self._entries[idx] for idx in sorted(candidate_indices, reverse=True)]

        results: list[AuditEntry] = []
        for entry in snapshot:
            if user_id is not None and entry.user_id != user_id:
                continue
            if since is not None and entry.timestamp is not None and entry.timestamp < since:
                continue
            if until is not None and entry.timestamp is not None and entry.timestamp > until:
                continue
            results.append(entry)
            if limit is not None and len(results) >= limit:
                break
        return results

    def history(self, entity_type: str, entity_id: str) -> list[AuditEntry]:
        """
        Complete history of one entity, oldest first.

        This is the input the version reconstructor folds.
        """
        return list(reversed(self.query(entity_type=entity_type, entity_id=entity_id)))

    # -------------------------------------------------------------------------
    # Tamper Evidence
    # -------------------------------------------------------------------------

    def verify_chain(self) -> ChainVerification:
        """
        Re-walk the hash chain from the first entry.

        Each entry must hash to its stored entry_hash, and must point at the
        previous entry's hash.
        """
        entries = self.entries()
        previous_hash: str | None = None
        for position, entry in enumerate(entries):
            if entry.previous_entry_hash != previous_hash:
                return ChainVerification(
                    valid=False,
                    message=f"Hash chain broken at entry {entry.id}: previous hash does not link",
                    checked=position,
                    broken_at=entry.id,
                )
            if compute_entry_hash(entry) != entry.entry_hash:
                return ChainVerification(
                    valid=False,
                    message=f"Hash chain broken at entry {entry.id}: content does not match entry hash",
                    checked=position,
                    broken_at=entry.id,
                )
            previous_hash = entry.entry_hash
        return ChainVerification(valid=True, message=CHAIN_OK_MESSAGE, checked=len(entries))

    def tamper_evident_export(
        self,
        requested_by: str,
        requested_by_name: str = "",
        *,
        entity_type: str | None = None,
        entity_id: str | None = None,
        user_id: str | None = None,
        action: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> AuditExport:
        """
        Export entries chronologically with a content hash and chain verdict.

        The chain is verified over the whole trail, not just the filtered
        subset, since filtered rows do not link to each other.
        """
        since = as_utc(since)
        until = as_utc(until)
        entries = list(
            reversed(
                self.query(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    action=action,
                    user_id=user_id,
                    since=since,
                    until=until,
                )
            )
        )
        verification = self.verify_chain()
        filters = {
            key: value.isoformat() if isinstance(value, datetime) else value
            for key, value in (
                ("entity_type", entity_type),
                ("entity_id", entity_id),
                ("user_id", user_id),
                ("action", action),
                ("since", since),
                ("until", until),
            )
            if value is not None
        }
        metadata = ExportMetadata(
            exported_at=self._clock(),
            exported_by=requested_by,
            exported_by_name=requested_by_name,
            total_entries=len(entries),
            filters=filters,
            content_hash=export_content_hash(entries),
            hash_chain_valid=verification.valid,
            validation_message=verification.message,
        )
        if not verification.valid:
            logger.warning("Audit export by %s over a broken chain: %s", requested_by, verification.message)
        return AuditExport(metadata=metadata, entries=entries)

    # -------------------------------------------------------------------------
    # Summary
    # -------------------------------------------------------------------------

    def summary(self) -> dict[str, Any]:
        """
        Generate a summary of the trail.

        Returns counts by action, entity type and user.
        """
        entries = self.entries()
        if not entries:
            return {"total_entries": 0}

        action_counts: dict[str, int] = {}
        entity_type_counts: dict[str, int] = {}
        user_counts: dict[str, int] = {}
        for e in entries:
            action_counts[e.action] = action_counts.get(e.action, 0) + 1
            entity_type_counts[e.entity_type] = entity_type_counts.get(e.entity_type, 0) + 1
            user_counts[e.user_id] = user_counts.get(e.user_id, 0) + 1

        most_active = sorted(user_counts.items(), key=lambda x: -x[1])[:10]

        return {
            "total_entries": len(entries),
            "action_counts": action_counts,
            "entity_type_counts": entity_type_counts,
            "most_active_users": most_active,
            "time_range": {
                "earliest": entries[0].timestamp.isoformat() if entries[0].timestamp else None,
                "latest": entries[-1].timestamp.isoformat() if entries[-1].timestamp else None,
            },
        }
