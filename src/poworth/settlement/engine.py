"""Settlement engine — consensus, scoring and payout planning in one pass.

Consumes the full commitment set of a finalized topic and produces an
immutable SettlementPlan. Every overflow check happens here, before any
value moves, so an arithmetic failure aborts settlement with nothing
changed.

The participant set must be complete and well-formed: non-empty, every
commitment belonging to the topic, one per participant, none already
settled, and exactly topic.commitment_count of them.
"""

from __future__ import annotations

from typing import Iterable

from poworth.errors import AlreadySettled, NoRevealedCommitments
from poworth.models.settlement import SettlementPlan
from poworth.models.topic import Commitment, Topic
from poworth.settlement.consensus import ConsensusEngine
from poworth.settlement.distributor import PayoutDistributor
from poworth.settlement.scorer import RewardScorer


class SettlementEngine:
    """Plans the settlement of one topic.

    Usage:
        plan = SettlementEngine.plan(topic, commitments,
                                     vault_balance=ledger.balance(vault),
                                     reserve=reserve_minimum())
    """

    @staticmethod
    def validate_participants(topic: Topic, commitments: list[Commitment]) -> None:
        if not commitments:
            raise NoRevealedCommitments(f"topic {topic.topic_id} has no commitments")

        seen: set[str] = set()
        for c in commitments:
            if c.topic_id != topic.topic_id:
                raise NoRevealedCommitments(
                    f"commitment of {c.participant} belongs to topic {c.topic_id}"
                )
            if c.participant in seen:
                raise NoRevealedCommitments(f"duplicate participant {c.participant}")
            if c.settled:
                raise AlreadySettled(f"commitment of {c.participant}")
            seen.add(c.participant)

        if len(commitments) != topic.commitment_count:
            raise NoRevealedCommitments(
                f"expected {topic.commitment_count} commitments, got {len(commitments)}"
            )

    @staticmethod
    def plan(
        topic: Topic,
        commitments: Iterable[Commitment],
        vault_balance: int,
        reserve: int,
    ) -> SettlementPlan:
        ordered = sorted(commitments, key=lambda c: c.submit_order)
        SettlementEngine.validate_participants(topic, ordered)

        consensus = ConsensusEngine.compute(ordered)
        scoring = RewardScorer.score(ordered, consensus.consensus, topic.truth_value)
        return PayoutDistributor.plan(
            topic_id=topic.topic_id,
            truth_value=topic.truth_value,
            consensus=consensus,
            scoring=scoring,
            vault_balance=vault_balance,
            reserve=reserve,
        )
