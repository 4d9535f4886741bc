"""Salt store — participant-side storage of commitment secrets.

During the commit phase a participant draws a random salt and commits
to keccak(prediction || salt || participant). The salt and prediction
must survive until the reveal window opens; losing them forfeits the
stake. This store keeps them in a JSON file keyed by
"<topic_id>:<participant>".

The salt must be saved BEFORE the commitment is submitted.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List, Optional


@dataclass
class SaltRecord:
    topic_id: int
    participant: str
    salt: str  # hex-encoded 32 bytes
    prediction: int  # fixed-point
    committed_at: int
    revealed: bool = False

    @property
    def salt_bytes(self) -> bytes:
        return bytes.fromhex(self.salt)


class SaltStore:
    """JSON-file map of (topic_id, participant) → SaltRecord."""

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._records: Dict[str, SaltRecord] = {}
        self._storage_path = storage_path
        if storage_path and storage_path.exists():
            raw = json.loads(storage_path.read_text(encoding="utf-8"))
            for key, data in raw.items():
                self._records[key] = SaltRecord(**data)

    @staticmethod
    def _key(topic_id: int, participant: str) -> str:
        return f"{topic_id}:{participant}"

    def save_salt(
        self,
        topic_id: int,
        participant: str,
        salt: bytes,
        prediction: int,
        committed_at: int,
    ) -> SaltRecord:
        key = self._key(topic_id, participant)
        existing = self._records.get(key)
        if existing is not None and not existing.revealed:
            raise ValueError(f"Unrevealed salt already stored for {key}")
        record = SaltRecord(
            topic_id=topic_id,
            participant=participant,
            salt=salt.hex(),
            prediction=prediction,
            committed_at=committed_at,
        )
        self._records[key] = record
        self._save()
        return record

    def get_salt(self, topic_id: int, participant: str) -> Optional[SaltRecord]:
        return self._records.get(self._key(topic_id, participant))

    def mark_revealed(self, topic_id: int, participant: str) -> None:
        record = self._records.get(self._key(topic_id, participant))
        if record is not None:
            record.revealed = True
            self._save()

    def unrevealed_for(self, participant: str) -> List[SaltRecord]:
        return [
            r for r in self._records.values()
            if r.participant == participant and not r.revealed
        ]

    def _save(self) -> None:
        if self._storage_path:
            data = {key: asdict(r) for key, r in self._records.items()}
            self._storage_path.write_text(
                json.dumps(data, sort_keys=True, indent=2), encoding="utf-8",
            )
