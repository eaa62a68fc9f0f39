"""Persistence — append-only audit log and atomic state snapshots."""

from shareledger.persistence.event_log import EventKind, EventLog, EventRecord
from shareledger.persistence.state_store import StateStore

__all__ = ["EventKind", "EventLog", "EventRecord", "StateStore"]
