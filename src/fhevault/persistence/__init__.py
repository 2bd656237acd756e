"""Event log and state snapshot persistence."""

from fhevault.persistence.event_log import EventKind, EventLog, EventRecord
from fhevault.persistence.state_store import StateStore

__all__ = ["EventKind", "EventLog", "EventRecord", "StateStore"]
