"""Append-only event log — the audit trail of every market action.

Every committed state change produces an event record appended here.
Events are immutable once written. An event is appended only after its
enclosing transaction has committed, so nothing in the log describes a
change that did not happen.

The log can be persisted as JSONL and reloaded; reload verifies every
record's hash and rejects replayed event IDs.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class EventKind(str, enum.Enum):
    """Classification of market events."""
    TOPIC_CREATED = "topic_created"
    COMMITMENT_RECEIVED = "commitment_received"
    COMMITMENT_REVEALED = "commitment_revealed"
    TOPIC_FINALIZED = "topic_finalized"
    PAYOUT_ISSUED = "payout_issued"
    PROTOCOL_FEE_SWEPT = "protocol_fee_swept"
    TOPIC_SETTLED = "topic_settled"


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
    """A single immutable event.

    event_hash is the SHA-256 of the canonical JSON of every other field.
    """
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


class EventLog:
    """Append-only event log with optional JSONL persistence."""

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._storage_path = storage_path
        self._event_ids: set[str] = set()

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, event: EventRecord) -> None:
        """Append an event. Raises ValueError on a duplicate event_id."""
        if event.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")

        self._events.append(event)
        self._event_ids.add(event.event_id)

        if self._storage_path:
            self._append_to_file(event)

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    def events_for_topic(self, topic_id: int) -> list[EventRecord]:
        return [e for e in self._events if e.payload.get("topic_id") == topic_id]

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _append_to_file(self, event: EventRecord) -> None:
        record = {
            "event_id": event.event_id,
            "event_kind": event.event_kind.value,
            "timestamp_utc": event.timestamp_utc,
            "actor_id": event.actor_id,
            "payload": event.payload,
            "event_hash": event.event_hash,
        }
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, sort_keys=True, ensure_ascii=False) + "\n")

    def _load_from_file(self, path: Path) -> None:
        """Load events, rejecting tampered records and replayed IDs."""
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
                    event_id,
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
