"""Prediction market models — topics and commitments.

A Topic is the aggregate root: every Commitment belongs to exactly one
topic and one participant, and never outlives its topic.

Topic lifecycle: OPEN → REVEALING → FINALIZED → SETTLED
Commitment flags: revealed (false → true), settled (false → true)

All prediction and truth values are signed fixed-point integers
(scale 1e6). Stakes are non-negative integers in the ledger's base unit.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional

from poworth.errors import NotRevealed


MAX_DESCRIPTION_BYTES = 256
MAX_SYMBOL_BYTES = 32
HASH_BYTES = 32
SALT_BYTES = 32


class TopicStatus(str, enum.Enum):
    """Lifecycle state of a topic.

    State machine:
        OPEN → REVEALING   (first reveal after the commit deadline)
        OPEN → FINALIZED   (oracle publishes truth with no reveals)
        REVEALING → FINALIZED
        FINALIZED → SETTLED
    """
    OPEN = "open"
    REVEALING = "revealing"
    FINALIZED = "finalized"
    SETTLED = "settled"


# Valid topic status transitions
TOPIC_TRANSITIONS: Dict[TopicStatus, frozenset] = {
    TopicStatus.OPEN: frozenset({TopicStatus.REVEALING, TopicStatus.FINALIZED}),
    TopicStatus.REVEALING: frozenset({TopicStatus.FINALIZED}),
    TopicStatus.FINALIZED: frozenset({TopicStatus.SETTLED}),
    TopicStatus.SETTLED: frozenset(),
}


@dataclass
class Topic:
    """A prediction market instance with a truth value to be resolved.

    Mutable — aggregates and status change over the lifecycle. Status
    changes go through transition_to so no back-transition is possible.
    """
    topic_id: int
    authority: str
    oracle_authority: str
    description: str
    symbol: str
    commit_deadline: int
    reveal_deadline: int
    min_stake: int
    status: TopicStatus = TopicStatus.OPEN
    truth_value: int = 0
    total_stake: int = 0
    commitment_count: int = 0
    reveal_count: int = 0
    created_at: Optional[int] = None
    finalized_at: Optional[int] = None
    settled_at: Optional[int] = None

    def transition_to(self, new_status: TopicStatus) -> None:
        """Transition to a new status, validating the transition is legal."""
        allowed = TOPIC_TRANSITIONS.get(self.status, frozenset())
        if new_status not in allowed:
            raise ValueError(
                f"Invalid topic transition: {self.status.value} → {new_status.value}. "
                f"Allowed: {', '.join(sorted(s.value for s in allowed))}"
            )
        self.status = new_status

    @property
    def is_terminal(self) -> bool:
        return self.status == TopicStatus.SETTLED

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic_id": self.topic_id,
            "authority": self.authority,
            "oracle_authority": self.oracle_authority,
            "description": self.description,
            "symbol": self.symbol,
            "commit_deadline": self.commit_deadline,
            "reveal_deadline": self.reveal_deadline,
            "min_stake": self.min_stake,
            "status": self.status.value,
            "truth_value": self.truth_value,
            "total_stake": self.total_stake,
            "commitment_count": self.commitment_count,
            "reveal_count": self.reveal_count,
            "created_at": self.created_at,
            "finalized_at": self.finalized_at,
            "settled_at": self.settled_at,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Topic:
        return Topic(
            topic_id=int(data["topic_id"]),
            authority=data["authority"],
            oracle_authority=data["oracle_authority"],
            description=data["description"],
            symbol=data["symbol"],
            commit_deadline=int(data["commit_deadline"]),
            reveal_deadline=int(data["reveal_deadline"]),
            min_stake=int(data["min_stake"]),
            status=TopicStatus(data["status"]),
            truth_value=int(data["truth_value"]),
            total_stake=int(data["total_stake"]),
            commitment_count=int(data["commitment_count"]),
            reveal_count=int(data["reveal_count"]),
            created_at=data.get("created_at"),
            finalized_at=data.get("finalized_at"),
            settled_at=data.get("settled_at"),
        )


@dataclass
class Commitment:
    """A participant's staked, hidden prediction for a topic.

    prediction_value and salt are meaningful only once revealed.
    Once settled, the record must not change again.
    """
    topic_id: int
    participant: str
    commitment_hash: bytes
    stake_amount: int
    submit_order: int
    prediction_value: int = 0
    salt: bytes = bytes(SALT_BYTES)
    revealed: bool = False
    settled: bool = False
    committed_at: Optional[int] = None
    revealed_at: Optional[int] = None
    payout: Optional[int] = None

    def revealed_prediction(self) -> int:
        """Return the revealed prediction, or raise NotRevealed."""
        if not self.revealed:
            raise NotRevealed(f"{self.participant} on topic {self.topic_id}")
        return self.prediction_value

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic_id": self.topic_id,
            "participant": self.participant,
            "commitment_hash": self.commitment_hash.hex(),
            "stake_amount": self.stake_amount,
            "submit_order": self.submit_order,
            "prediction_value": self.prediction_value,
            "salt": self.salt.hex(),
            "revealed": self.revealed,
            "settled": self.settled,
            "committed_at": self.committed_at,
            "revealed_at": self.revealed_at,
            "payout": self.payout,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Commitment:
        return Commitment(
            topic_id=int(data["topic_id"]),
            participant=data["participant"],
            commitment_hash=bytes.fromhex(data["commitment_hash"]),
            stake_amount=int(data["stake_amount"]),
            submit_order=int(data["submit_order"]),
            prediction_value=int(data["prediction_value"]),
            salt=bytes.fromhex(data["salt"]),
            revealed=bool(data["revealed"]),
            settled=bool(data["settled"]),
            committed_at=data.get("committed_at"),
            revealed_at=data.get("revealed_at"),
            payout=data.get("payout"),
        )
