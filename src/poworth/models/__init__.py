"""Core data models for PoWorth."""

from poworth.models.topic import (
    Commitment,
    Topic,
    TopicStatus,
)
from poworth.models.settlement import (
    ConsensusResult,
    ParticipantScore,
    PayoutInstruction,
    ScoringResult,
    SettlementPlan,
    SettlementReport,
)

__all__ = [
    "Commitment",
    "Topic",
    "TopicStatus",
    "ConsensusResult",
    "ParticipantScore",
    "PayoutInstruction",
    "ScoringResult",
    "SettlementPlan",
    "SettlementReport",
]
