"""Reward scorer — consensus-deviation-weighted, time-decayed scores.

Rewards predictions that deviate from consensus in the direction the
truth moved, not mere closeness to the truth:

    edge_pct_i     = clamp((pred_i − μ) × P / max(|μ|, 1), ±MAX_PCT)
    truth_edge_pct = clamp((truth − μ) × P / max(|μ|, 1), ±MAX_PCT)
    alignment_i    = edge_pct_i × truth_edge_pct
    accuracy_i     = P² / (|truth − pred_i| + 1)
    decay_i        = P² / ln_approx(submit_order_i)
    score_i        = (alignment_i × accuracy_i / P) × decay_i / P   if alignment_i > 0
                   = 0                                               otherwise

where μ is the consensus and P = PRECISION.

Consequences:
- On-consensus predictions (edge 0) and wrong-direction predictions
  (alignment < 0) score zero.
- If truth == consensus, every alignment is zero and nobody scores.
- decay follows the ln table, which peaks and then declines, so the
  time preference is not monotone in submit order.

Unrevealed commitments always score zero.
"""

from __future__ import annotations

from typing import Iterable

from poworth.fixed_point import (
    PRECISION,
    PRECISION_SQUARED,
    checked_i128,
    checked_u128,
    ln_approx,
    percent_deviation,
)
from poworth.models.settlement import ParticipantScore, ScoringResult
from poworth.models.topic import Commitment


class RewardScorer:
    """Scores every commitment of a topic against consensus and truth.

    Usage:
        consensus = ConsensusEngine.compute(commitments)
        result = RewardScorer.score(commitments, consensus.consensus, truth)
    """

    @staticmethod
    def truth_edge_pct(truth: int, consensus: int) -> int:
        return percent_deviation(truth, consensus)

    @staticmethod
    def score_one(
        commitment: Commitment,
        consensus: int,
        truth: int,
        truth_edge_pct: int,
    ) -> ParticipantScore:
        """Score a single commitment. Unrevealed commitments score zero."""
        if not commitment.revealed:
            return ParticipantScore(
                participant=commitment.participant,
                stake=commitment.stake_amount,
                submit_order=commitment.submit_order,
                revealed=False,
            )

        prediction = commitment.prediction_value
        edge_pct = percent_deviation(prediction, consensus)
        alignment = checked_i128(edge_pct * truth_edge_pct)

        if alignment <= 0:
            return ParticipantScore(
                participant=commitment.participant,
                stake=commitment.stake_amount,
                submit_order=commitment.submit_order,
                revealed=True,
                edge_pct=edge_pct,
                alignment=alignment,
            )

        error = abs(checked_i128(truth - prediction))
        accuracy = PRECISION_SQUARED // checked_u128(error + 1)
        decay = PRECISION_SQUARED // ln_approx(commitment.submit_order)

        step = checked_u128(alignment * accuracy) // PRECISION
        score = checked_u128(step * decay) // PRECISION

        return ParticipantScore(
            participant=commitment.participant,
            stake=commitment.stake_amount,
            submit_order=commitment.submit_order,
            revealed=True,
            edge_pct=edge_pct,
            alignment=alignment,
            accuracy=accuracy,
            decay=decay,
            score=score,
        )

    @staticmethod
    def score(
        commitments: Iterable[Commitment],
        consensus: int,
        truth: int,
    ) -> ScoringResult:
        truth_edge = RewardScorer.truth_edge_pct(truth, consensus)
        scores: list[ParticipantScore] = []
        total = 0
        for c in commitments:
            scored = RewardScorer.score_one(c, consensus, truth, truth_edge)
            total = checked_u128(total + scored.score)
            scores.append(scored)
        return ScoringResult(
            consensus=consensus,
            truth_edge_pct=truth_edge,
            scores=scores,
            total_score=total,
        )
