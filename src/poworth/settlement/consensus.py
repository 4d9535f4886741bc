"""Consensus engine — stake-weighted mean of revealed predictions.

    consensus = Σ(prediction_i × stake_i) / Σ(stake_i)    over revealed i

Integer division truncating toward zero. With no reveals the consensus
is 0. Input order does not matter.
"""

from __future__ import annotations

from typing import Iterable

from poworth.fixed_point import checked_i128, checked_u64, div_trunc
from poworth.models.settlement import ConsensusResult
from poworth.models.topic import Commitment


class ConsensusEngine:
    """Computes the stake-weighted consensus for a topic's commitments."""

    @staticmethod
    def compute(commitments: Iterable[Commitment]) -> ConsensusResult:
        weighted_sum = 0
        revealed_stake = 0
        unrevealed_stake = 0
        revealed_count = 0
        participant_count = 0

        for c in commitments:
            participant_count += 1
            if c.revealed:
                product = checked_i128(c.prediction_value * c.stake_amount)
                weighted_sum = checked_i128(weighted_sum + product)
                revealed_stake = checked_u64(revealed_stake + c.stake_amount)
                revealed_count += 1
            else:
                unrevealed_stake = checked_u64(unrevealed_stake + c.stake_amount)

        consensus = div_trunc(weighted_sum, revealed_stake) if revealed_stake > 0 else 0

        return ConsensusResult(
            consensus=consensus,
            revealed_stake=revealed_stake,
            unrevealed_stake=unrevealed_stake,
            revealed_count=revealed_count,
            participant_count=participant_count,
        )
