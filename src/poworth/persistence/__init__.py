"""Persistence — state store, audit event log, participant salt store."""

from poworth.persistence.event_log import EventKind, EventLog, EventRecord
from poworth.persistence.salt_store import SaltRecord, SaltStore
from poworth.persistence.state_store import StateStore, TopicTransaction

__all__ = [
    "EventKind",
    "EventLog",
    "EventRecord",
    "SaltRecord",
    "SaltStore",
    "StateStore",
    "TopicTransaction",
]
