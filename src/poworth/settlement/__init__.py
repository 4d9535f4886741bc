"""Settlement subsystem — consensus, reward scoring, payout distribution."""

from poworth.settlement.consensus import ConsensusEngine
from poworth.settlement.distributor import PayoutDistributor
from poworth.settlement.engine import SettlementEngine
from poworth.settlement.scorer import RewardScorer

__all__ = [
    "ConsensusEngine",
    "PayoutDistributor",
    "RewardScorer",
    "SettlementEngine",
]
