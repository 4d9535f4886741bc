"""Settlement models — scores, payout instructions, and the published report.

A settlement is computed in full before any value moves. The plan is
immutable; the service executes it as one batch and publishes the
report with the topic_settled event.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ConsensusResult:
    """Stake-weighted consensus over revealed commitments."""
    consensus: int
    revealed_stake: int
    unrevealed_stake: int
    revealed_count: int
    participant_count: int


@dataclass(frozen=True)
class ParticipantScore:
    """Score breakdown for one commitment.

    Unrevealed commitments carry zeros for every component.
    """
    participant: str
    stake: int
    submit_order: int
    revealed: bool
    edge_pct: int = 0
    alignment: int = 0
    accuracy: int = 0
    decay: int = 0
    score: int = 0


@dataclass(frozen=True)
class ScoringResult:
    """Output of the reward scorer for a whole topic."""
    consensus: int
    truth_edge_pct: int
    scores: list[ParticipantScore]
    total_score: int


@dataclass(frozen=True)
class PayoutInstruction:
    """One transfer from the vault, possibly zero.

    gross_payout is before shortfall scaling; payout is the amount to
    send.
    """
    participant: str
    stake: int
    score: int
    gross_payout: int
    payout: int


@dataclass(frozen=True)
class SettlementPlan:
    """Complete, validated settlement for a topic, ready to execute."""
    topic_id: int
    truth_value: int
    consensus: int
    truth_edge_pct: int
    total_score: int
    loser_pool: int
    vault_balance: int
    reserve: int
    distributable: int
    total_gross_payout: int
    scaled: bool
    instructions: list[PayoutInstruction] = field(default_factory=list)

    @property
    def total_payout(self) -> int:
        return sum(i.payout for i in self.instructions)


@dataclass(frozen=True)
class SettlementReport:
    """What actually happened when a plan was executed."""
    topic_id: int
    consensus: int
    truth_value: int
    loser_pool: int
    reserve: int
    scaled: bool
    payouts: dict[str, int]
    protocol_fee: int
    fee_recipient: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "topic_id": self.topic_id,
            "consensus": self.consensus,
            "truth_value": self.truth_value,
            "loser_pool": self.loser_pool,
            "reserve": self.reserve,
            "scaled": self.scaled,
            "payouts": dict(self.payouts),
            "protocol_fee": self.protocol_fee,
            "fee_recipient": self.fee_recipient,
        }
