"""
Tests for the append-only audit trail.

- append stamps id, timestamp and chain hashes
- query() with composable filters, newest first
- hash-chain verification and tamper-evident export
- JSON Lines journal persistence
- concurrent appends
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from esgprov.errors import JournalError
from esgprov.ledger.detector import detect_changes
from esgprov.ledger.entries import ACTION_CREATE, ACTION_UPDATE, AuditEntry, create_entry
from esgprov.ledger.trail import CHAIN_OK_MESSAGE, AuditTrail

BASE = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def populated_trail() -> AuditTrail:
    trail = AuditTrail()
    trail.append(create_entry(ACTION_CREATE, "Section", "sec-1", "alice", section_id="sec-1", timestamp=BASE))
    trail.append(
        create_entry(
            ACTION_UPDATE,
            "Section",
            "sec-1",
            "bob",
            section_id="sec-1",
            owner_id="owner-1",
            timestamp=BASE + timedelta(hours=1),
        )
    )
    trail.append(create_entry(ACTION_CREATE, "DataPoint", "dp-1", "alice", timestamp=BASE + timedelta(hours=2)))
    trail.append(create_entry(ACTION_UPDATE, "DataPoint", "dp-1", "carol", timestamp=BASE + timedelta(days=1)))
    return trail


def test_update_scenario_round_trips_through_query(trail: AuditTrail) -> None:
    changes = detect_changes({"Title": "Original Title"}, {"Title": "Updated Title"})
    trail.append(create_entry(ACTION_UPDATE, "Section", "sec-42", "user-1", "User One", changes=changes))

    results = trail.query(entity_id="sec-42")

    assert len(results) == 1
    assert results[0].action == "update"
    assert [c.to_dict() for c in results[0].changes] == [
        {"field": "Title", "old_value": "Original Title", "new_value": "Updated Title"}
    ]


def test_append_assigns_id_timestamp_and_chain(trail: AuditTrail) -> None:
    first = trail.append(create_entry(ACTION_CREATE, "Section", "sec-1", "alice"))
    second = trail.append(create_entry(ACTION_CREATE, "Section", "sec-2", "alice"))

    assert first.id and second.id and first.id != second.id
    assert first.timestamp is not None and first.timestamp.tzinfo is not None
    assert first.previous_entry_hash is None
    assert second.previous_entry_hash == first.entry_hash
    assert len(first.entry_hash) == 64


def test_pinned_naive_timestamp_is_utc(trail: AuditTrail) -> None:
    entry = trail.append(create_entry(ACTION_CREATE, "Gap", "gap-1", "alice", timestamp=datetime(2024, 1, 1, 12)))
    assert entry.timestamp == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)


def test_query_is_newest_first(populated_trail: AuditTrail) -> None:
    results = populated_trail.query()
    assert [e.entity_id for e in results] == ["dp-1", "dp-1", "sec-1", "sec-1"]
    assert [e.user_id for e in results] == ["carol", "alice", "bob", "alice"]


def test_query_filters_compose(populated_trail: AuditTrail) -> None:
    assert len(populated_trail.query(entity_type="section")) == 2
    assert len(populated_trail.query(entity_type="SECTION", action=ACTION_UPDATE)) == 1
    assert len(populated_trail.query(section_id="sec-1")) == 2
    assert [e.user_id for e in populated_trail.query(owner_id="owner-1")] == ["bob"]
    assert [e.entity_id for e in populated_trail.query(user_id="alice")] == ["dp-1", "sec-1"]
    assert populated_trail.query(entity_type="Section", entity_id="dp-1") == []


def test_query_time_window_and_limit(populated_trail: AuditTrail) -> None:
    window = populated_trail.query(since=BASE + timedelta(minutes=30), until=BASE + timedelta(hours=3))
    assert [e.user_id for e in window] == ["alice", "bob"]

    assert len(populated_trail.query(limit=3)) == 3


def test_history_is_oldest_first(populated_trail: AuditTrail) -> None:
    history = populated_trail.history("DataPoint", "dp-1")
    assert [e.user_id for e in history] == ["alice", "carol"]


def test_empty_trail_queries(trail: AuditTrail) -> None:
    assert trail.query(entity_id="missing") == []
    assert trail.summary() == {"total_entries": 0}
    assert trail.verify_chain().valid


def test_verify_chain_ok(populated_trail: AuditTrail) -> None:
    result = populated_trail.verify_chain()
    assert result.valid
    assert result.message == CHAIN_OK_MESSAGE
    assert result.checked == 4


def test_journal_reload_preserves_order_and_chain(journal_path: Path) -> None:
    trail = AuditTrail(journal_path)
    written = [trail.append(create_entry(ACTION_CREATE, "Section", f"sec-{i}", "alice")) for i in range(5)]

    reloaded = AuditTrail(journal_path)

    assert [e.id for e in reloaded.entries()] == [e.id for e in written]
    assert reloaded.entries() == written
    assert reloaded.verify_chain().valid

    appended = reloaded.append(create_entry(ACTION_UPDATE, "Section", "sec-0", "bob"))
    assert appended.previous_entry_hash == written[-1].entry_hash
    assert appended.id > written[-1].id


def test_rewritten_journal_row_breaks_chain(journal_path: Path) -> None:
    trail = AuditTrail(journal_path)
    for user in ("alice", "bob", "carol"):
        trail.append(create_entry(ACTION_UPDATE, "Section", "sec-1", user))

    lines = journal_path.read_text(encoding="utf-8").splitlines()
    row = json.loads(lines[1])
    row["user_id"] = "mallory"
    lines[1] = json.dumps(row)
    journal_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    result = AuditTrail(journal_path).verify_chain()

    assert not result.valid
    assert result.broken_at == row["id"]
    assert result.checked == 1


def test_tamper_evident_export(populated_trail: AuditTrail) -> None:
    export = populated_trail.tamper_evident_export("auditor-1", "Auditor", entity_type="DataPoint")

    assert [e.user_id for e in export.entries] == ["alice", "carol"]
    assert export.metadata.total_entries == 2
    assert export.metadata.hash_chain_valid
    assert export.metadata.validation_message == CHAIN_OK_MESSAGE
    assert export.metadata.filters == {"entity_type": "DataPoint"}

    again = populated_trail.tamper_evident_export("auditor-2", entity_type="DataPoint")
    assert again.metadata.content_hash == export.metadata.content_hash

    data = export.to_dict()
    assert data["metadata"]["exported_by"] == "auditor-1"
    assert len(data["entries"]) == 2


def test_summary_counts(populated_trail: AuditTrail) -> None:
    summary = populated_trail.summary()
    assert summary["total_entries"] == 4
    assert summary["action_counts"] == {"create": 2, "update": 2}
    assert summary["entity_type_counts"] == {"Section": 2, "DataPoint": 2}
    assert summary["most_active_users"][0] == ("alice", 2)


def test_concurrent_appends_keep_unique_ids_and_valid_chain(journal_path: Path) -> None:
    trail = AuditTrail(journal_path)

    def worker(n: int) -> None:
        for i in range(50):
            trail.append(create_entry(ACTION_UPDATE, "DataPoint", f"dp-{n}", f"user-{n}", change_note=str(i)))

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    entries = trail.entries()
    assert len(entries) == 400
    assert len({e.id for e in entries}) == 400
    assert trail.verify_chain().valid

    # Per-entity order follows each worker's own append order
    notes = [e.change_note for e in trail.history("DataPoint", "dp-3")]
    assert notes == [str(i) for i in range(50)]

    assert AuditTrail(journal_path).entries() == entries


def test_entry_ids_sort_in_append_order(trail: AuditTrail) -> None:
    ids = [trail.append(create_entry(ACTION_CREATE, "Gap", f"gap-{i}", "alice")).id for i in range(200)]
    assert ids == sorted(ids)
    assert len(set(ids)) == 200
    assert trail.get(ids[7]).entity_id == "gap-7"
    assert trail.get("missing") is None


def test_naive_query_bounds_are_read_as_utc(populated_trail: AuditTrail) -> None:
    naive_since = datetime(2024, 3, 1, 9, 30)
    naive_until = datetime(2024, 3, 1, 12, 0)

    window = populated_trail.query(since=naive_since, until=naive_until)
    assert [e.user_id for e in window] == ["alice", "bob"]

    export = populated_trail.tamper_evident_export("auditor-1", since=naive_since)
    assert export.metadata.total_entries == 3
    assert export.metadata.filters["since"] == "2024-03-01T09:30:00+00:00"


def test_queries_during_batch_appends_see_whole_runs(trail: AuditTrail) -> None:
    run_length = 5
    stop = threading.Event()
    errors: list[str] = []

    def writer(n: int) -> None:
        for k in range(40):
            batch = [
                create_entry(ACTION_UPDATE, "DataPoint", f"dp-{n}-{k}", f"user-{n}", change_note=str(i))
                for i in range(run_length)
            ]
            trail.append_many(batch)

    def reader() -> None:
        while not stop.is_set():
            seen: dict[str, int] = {}
            for entry in trail.query(entity_type="DataPoint"):
                if not entry.id or not entry.entry_hash:
                    errors.append(f"incomplete entry {entry!r}")
                seen[entry.entity_id] = seen.get(entry.entity_id, 0) + 1
            errors.extend(f"{eid} seen with {count} entries" for eid, count in seen.items() if count != run_length)

            history = trail.history("DataPoint", "dp-0-0")
            if len(history) not in (0, run_length):
                errors.append(f"history of dp-0-0 has {len(history)} entries")

    readers = [threading.Thread(target=reader) for _ in range(4)]
    writers = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in readers + writers:
        t.start()
    for t in writers:
        t.join()
    stop.set()
    for t in readers:
        t.join()

    assert errors == []
    assert trail.count() == 4 * 40 * run_length
    assert trail.verify_chain().valid


def test_failed_serialization_leaves_journal_untouched(journal_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    trail = AuditTrail(journal_path)
    trail.append(create_entry(ACTION_CREATE, "Section", "sec-1", "alice"))
    before = journal_path.read_text(encoding="utf-8")

    to_json = AuditEntry.to_json

    def failing_to_json(self: AuditEntry) -> str:
        if self.entity_id == "boom":
            raise TypeError("not serializable")
        return to_json(self)

    monkeypatch.setattr(AuditEntry, "to_json", failing_to_json)
    with pytest.raises(TypeError):
        trail.append_many(
            [
                create_entry(ACTION_UPDATE, "Section", "sec-1", "bob"),
                create_entry(ACTION_UPDATE, "Section", "boom", "bob"),
            ]
        )
    monkeypatch.undo()

    assert journal_path.read_text(encoding="utf-8") == before
    assert trail.count() == 1

    trail.append(create_entry(ACTION_UPDATE, "Section", "sec-1", "carol"))
    assert AuditTrail(journal_path).verify_chain().valid


class _WritesHalfThenFails:
    def __init__(self, f: Any) -> None:
        self._f = f

    def __enter__(self) -> _WritesHalfThenFails:
        return self

    def __exit__(self, *exc: Any) -> None:
        self._f.close()

    def seek(self, *args: Any) -> int:
        return self._f.seek(*args)

    def truncate(self, size: int) -> int:
        return self._f.truncate(size)

    def write(self, data: Any) -> int:
        self._f.write(bytes(data[: len(data) // 2]))
        raise OSError("No space left on device")


def test_partial_journal_write_is_rolled_back(journal_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    trail = AuditTrail(journal_path)
    trail.append(create_entry(ACTION_CREATE, "Section", "sec-1", "alice"))
    before = journal_path.read_bytes()

    real_open = Path.open

    def open_failing_appends(self: Path, mode: str = "r", *args: Any, **kwargs: Any) -> Any:
        f = real_open(self, mode, *args, **kwargs)
        return _WritesHalfThenFails(f) if mode == "ab" else f

    monkeypatch.setattr(Path, "open", open_failing_appends)
    with pytest.raises(OSError):
        trail.append_many([create_entry(ACTION_UPDATE, "Section", "sec-1", u) for u in ("bob", "carol")])
    monkeypatch.undo()

    assert journal_path.read_bytes() == before
    assert trail.count() == 1

    trail.append(create_entry(ACTION_UPDATE, "Section", "sec-1", "dave"))
    reloaded = AuditTrail(journal_path)
    assert [e.user_id for e in reloaded.entries()] == ["alice", "dave"]
    assert reloaded.verify_chain().valid


def test_unreadable_journal_line_names_the_line(journal_path: Path) -> None:
    trail = AuditTrail(journal_path)
    trail.append(create_entry(ACTION_CREATE, "Section", "sec-1", "alice"))
    with journal_path.open("a", encoding="utf-8") as f:
        f.write('{"id": "truncated\n')

    with pytest.raises(JournalError, match=r":2: unreadable audit entry"):
        AuditTrail(journal_path)
