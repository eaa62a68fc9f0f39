"""Append-only audit log of every accepted ledger and distribution action.

Each accepted mutation produces one EventRecord appended to the log.
Records are immutable once written and carry a SHA-256 hash of their
canonical JSON, so the log serves as:
1. The audit trail for holders, managers and the operator.
2. Tamper evidence: a record edited on disk fails verification on load.

Invariant: no balance, supply or claim changes without an audit record.
The service appends the event right after the state commit succeeds.
"""

from __future__ import annotations

import enum
import hashlib
import json
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class EventKind(str, enum.Enum):
    """Classification of ledger events."""
    ASSET_ISSUED = "asset_issued"
    ASSET_STATUS_CHANGED = "asset_status_changed"
    SHARES_PURCHASED = "shares_purchased"
    SHARES_SOLD = "shares_sold"
    SHARES_TRANSFERRED = "shares_transferred"
    REVENUE_DEPOSITED = "revenue_deposited"
    DISTRIBUTION_CREATED = "distribution_created"
    DISTRIBUTION_CLAIMED = "distribution_claimed"
    DISTRIBUTION_BATCH_SETTLED = "distribution_batch_settled"
    DISTRIBUTION_COMPLETED = "distribution_completed"
    FEE_RATES_CHANGED = "fee_rates_changed"
    PLATFORM_PAUSED = "platform_paused"
    PLATFORM_UNPAUSED = "platform_unpaused"
    COMPLIANCE_STATUS_CHANGED = "compliance_status_changed"


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    actor_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "actor_id": actor_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable event in the audit log."""
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create a new event record with computed hash."""
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=ts_str,
            actor_id=actor_id,
            payload=payload,
            event_hash=_canonical_hash(event_id, event_kind.value, ts_str, actor_id, payload),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }


class EventLog:
    """Append-only event log with optional JSONL file persistence.

    Events can only be appended, never modified or deleted. With a
    storage path every append is flushed and fsynced before returning.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._lock = threading.Lock()
        self._events: list[EventRecord] = []
        self._event_ids: set[str] = set()
        self._storage_path = storage_path

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def next_event_id(self) -> str:
        return f"evt-{len(self._events) + 1:08d}"

    def record(
        self,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create and append an event with the next sequential id."""
        with self._lock:
            event = EventRecord.create(
                self.next_event_id(), event_kind, actor_id, payload, timestamp_utc,
            )
            self._append_locked(event)
        return event

    def append(self, event: EventRecord) -> None:
        """Append an event to the log.

        Raises ValueError if event_id is a duplicate (replay protection).
        """
        with self._lock:
            self._append_locked(event)

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        """Return events, optionally filtered by kind."""
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _append_locked(self, event: EventRecord) -> None:
        if event.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")
        if self._storage_path:
            self._append_to_file(event)
        self._events.append(event)
        self._event_ids.add(event.event_id)

    def _append_to_file(self, event: EventRecord) -> None:
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(event.to_dict(), sort_keys=True, ensure_ascii=False) + "\n")
            f.flush()
            os.fsync(f.fileno())

    def _load_from_file(self, path: Path) -> None:
        """Load events from a JSONL file with integrity verification.

        Fail-closed: rejects tampered records (hash mismatch) and
        duplicate event IDs.
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                event_id = data["event_id"]

                if event_id in self._event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event_id}"
                    )

                expected_hash = _canonical_hash(
                    data["event_id"],
                    data["event_kind"],
                    data["timestamp_utc"],
                    data["actor_id"],
                    data["payload"],
                )
                if data["event_hash"] != expected_hash:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected_hash}"
                    )

                self._events.append(EventRecord(
                    event_id=event_id,
                    event_kind=EventKind(data["event_kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    actor_id=data["actor_id"],
                    payload=data["payload"],
                    event_hash=data["event_hash"],
                ))
                self._event_ids.add(event_id)
