"""Tests for the audit event log and the atomic state store."""

import json
import pytest
from datetime import datetime, timezone
from pathlib import Path

from shareledger.persistence.event_log import EventKind, EventLog, EventRecord
from shareledger.persistence.state_store import StateStore


def _now() -> datetime:
    return datetime(2026, 4, 2, 16, 45, 0, tzinfo=timezone.utc)


class TestEventLog:
    def test_record_assigns_sequential_ids(self) -> None:
        log = EventLog()
        first = log.record(EventKind.ASSET_ISSUED, "platform-operator", {"asset_id": "tower-1"}, _now())
        second = log.record(EventKind.SHARES_PURCHASED, "alice", {"share_amount": 10}, _now())
        assert first.event_id == "evt-00000001"
        assert second.event_id == "evt-00000002"
        assert first.timestamp_utc == "2026-04-02T16:45:00Z"
        assert first.event_hash.startswith("sha256:")
        assert log.count == 2
        assert log.last_event == second

    def test_filter_by_kind(self) -> None:
        log = EventLog()
        log.record(EventKind.SHARES_PURCHASED, "alice", {})
        log.record(EventKind.SHARES_SOLD, "alice", {})
        log.record(EventKind.SHARES_PURCHASED, "bob", {})
        assert [e.actor_id for e in log.events(EventKind.SHARES_PURCHASED)] == ["alice", "bob"]

    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        event = EventRecord.create("evt-x", EventKind.PLATFORM_PAUSED, "op", {}, _now())
        log.append(event)
        with pytest.raises(ValueError, match="Duplicate"):
            log.append(event)

    def test_reload_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.record(EventKind.REVENUE_DEPOSITED, "manager-1", {"amount": 1000}, _now())
        log.record(EventKind.DISTRIBUTION_CREATED, "manager-1", {"distribution_id": 1}, _now())

        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.events() == log.events()
        assert reloaded.next_event_id() == "evt-00000003"

    def test_tampered_record_detected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.record(EventKind.DISTRIBUTION_CLAIMED, "alice", {"amount": 555}, _now())

        data = json.loads(path.read_text(encoding="utf-8"))
        data["payload"]["amount"] = 5550
        path.write_text(json.dumps(data) + "\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Integrity check failed"):
            EventLog(storage_path=path)


class TestStateStore:
    def test_load_missing_returns_none(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path / "state.json")
        assert not store.exists()
        assert store.load() is None

    def test_save_and_load(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path / "nested" / "state.json")
        store.save({"paused": False, "ledger": {"assets": []}})
        assert store.exists()
        assert store.load() == {"paused": False, "ledger": {"assets": []}}

    def test_failed_save_keeps_previous_snapshot(self, tmp_path: Path) -> None:
        store = StateStore(tmp_path / "state.json")
        store.save({"version": 1})
        with pytest.raises(TypeError):
            store.save({"version": object()})
        assert store.load() == {"version": 1}
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_unknown_schema_version(self, tmp_path: Path) -> None:
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"schema_version": 99, "state": {}}), encoding="utf-8")
        with pytest.raises(ValueError, match="schema version"):
            StateStore(path).load()
