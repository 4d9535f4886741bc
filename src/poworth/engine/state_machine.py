"""Topic state machine — phase transitions and deadline gating.

Topic lifecycle:
    OPEN → REVEALING → FINALIZED → SETTLED

State semantics:
- OPEN: accepting commitments until commit_deadline.
- REVEALING: entered implicitly by the first successful reveal, which
  can only happen in [commit_deadline, reveal_deadline).
- FINALIZED: oracle published the truth at or after reveal_deadline.
- SETTLED: terminal — rewards distributed, nothing mutates again.

Fail-closed: every check runs before any field is written, so a
rejected operation leaves the topic and commitment exactly as they were.

Pure computation: no transfers, no persistence, no events. Those are
handled by the service layer inside its transaction.
"""

from __future__ import annotations

from typing import Optional

from poworth.crypto.commitment import verify_commitment
from poworth.errors import (
    AlreadyFinalized,
    AlreadyRevealed,
    CommitPhaseEnded,
    CommitPhaseNotEnded,
    DescriptionTooLong,
    DuplicateCommitment,
    InvalidDeadlines,
    InvalidSalt,
    InvalidTopicState,
    RevealPhaseEnded,
    RevealPhaseNotEnded,
    StakeTooLow,
    SymbolTooLong,
    UnauthorizedAuthority,
    UnauthorizedOracle,
    ZeroStake,
)
from poworth.fixed_point import checked_i64, checked_u64
from poworth.models.topic import (
    HASH_BYTES,
    MAX_DESCRIPTION_BYTES,
    MAX_SYMBOL_BYTES,
    Commitment,
    Topic,
    TopicStatus,
)


_REVEALABLE = (TopicStatus.OPEN, TopicStatus.REVEALING)


def is_authorized(caller: str, *authorities: str) -> bool:
    """Capability check: caller must equal one of the stored authorities."""
    return any(caller == authority for authority in authorities)


class TopicStateMachine:
    """Validates and applies topic lifecycle operations.

    Usage:
        topic = TopicStateMachine.create(
            topic_id=1, description="AAPL close", symbol="AAPL",
            commit_deadline=now + 60, reveal_deadline=now + 120,
            min_stake=10, authority="alice", oracle_authority="oracle",
            now=now,
        )
        commitment = TopicStateMachine.commit(topic, "bob", digest, 25, now)
    """

    @staticmethod
    def create(
        topic_id: int,
        description: str,
        symbol: str,
        commit_deadline: int,
        reveal_deadline: int,
        min_stake: int,
        authority: str,
        oracle_authority: str,
        now: int,
    ) -> Topic:
        """Create a new topic in OPEN status with zero aggregates."""
        if len(description.encode("utf-8")) > MAX_DESCRIPTION_BYTES:
            raise DescriptionTooLong()
        if len(symbol.encode("utf-8")) > MAX_SYMBOL_BYTES:
            raise SymbolTooLong()
        if commit_deadline <= now:
            raise InvalidDeadlines("commit deadline must be in the future")
        if reveal_deadline <= commit_deadline:
            raise InvalidDeadlines("reveal deadline must follow commit deadline")
        checked_u64(min_stake)

        return Topic(
            topic_id=topic_id,
            authority=authority,
            oracle_authority=oracle_authority,
            description=description,
            symbol=symbol,
            commit_deadline=commit_deadline,
            reveal_deadline=reveal_deadline,
            min_stake=min_stake,
            status=TopicStatus.OPEN,
            created_at=now,
        )

    @staticmethod
    def commit(
        topic: Topic,
        participant: str,
        commitment_hash: bytes,
        stake: int,
        now: int,
        existing: Optional[Commitment] = None,
    ) -> Commitment:
        """Record a sealed prediction and update the topic aggregates.

        Returns the new Commitment. The caller moves the stake.
        """
        if topic.status != TopicStatus.OPEN:
            raise InvalidTopicState(f"commit requires open, topic is {topic.status.value}")
        if now >= topic.commit_deadline:
            raise CommitPhaseEnded()
        if stake <= 0:
            raise ZeroStake()
        if stake < topic.min_stake:
            raise StakeTooLow(f"{stake} < {topic.min_stake}")
        if existing is not None:
            raise DuplicateCommitment(f"{participant} on topic {topic.topic_id}")
        if len(commitment_hash) != HASH_BYTES:
            raise InvalidSalt(f"commitment hash is {len(commitment_hash)} bytes")

        checked_u64(stake)
        new_total = checked_u64(topic.total_stake + stake)

        commitment = Commitment(
            topic_id=topic.topic_id,
            participant=participant,
            commitment_hash=bytes(commitment_hash),
            stake_amount=stake,
            submit_order=topic.commitment_count,
            committed_at=now,
        )
        topic.commitment_count += 1
        topic.total_stake = new_total
        return commitment

    @staticmethod
    def reveal(
        topic: Topic,
        commitment: Commitment,
        prediction: int,
        salt: bytes,
        now: int,
    ) -> None:
        """Open a commitment after verifying its hash.

        The first reveal moves the topic from OPEN to REVEALING.
        """
        if topic.status not in _REVEALABLE:
            raise InvalidTopicState(f"reveal requires open or revealing, topic is {topic.status.value}")
        if now < topic.commit_deadline:
            raise CommitPhaseNotEnded()
        if now >= topic.reveal_deadline:
            raise RevealPhaseEnded()
        if commitment.revealed:
            raise AlreadyRevealed(commitment.participant)

        verify_commitment(
            commitment.commitment_hash, prediction, salt, commitment.participant,
        )

        commitment.prediction_value = prediction
        commitment.salt = bytes(salt)
        commitment.revealed = True
        commitment.revealed_at = now
        topic.reveal_count += 1
        if topic.status == TopicStatus.OPEN:
            topic.transition_to(TopicStatus.REVEALING)

    @staticmethod
    def finalize(
        topic: Topic,
        oracle: str,
        truth_value: int,
        now: int,
    ) -> None:
        """Publish the truth value. Legal with zero reveals."""
        if not is_authorized(oracle, topic.oracle_authority):
            raise UnauthorizedOracle(oracle)
        if topic.status not in _REVEALABLE:
            raise AlreadyFinalized(f"topic is {topic.status.value}")
        if now < topic.reveal_deadline:
            raise RevealPhaseNotEnded()
        checked_i64(truth_value)

        topic.truth_value = truth_value
        topic.finalized_at = now
        topic.transition_to(TopicStatus.FINALIZED)

    @staticmethod
    def check_settle(topic: Topic, caller: str) -> None:
        """Raise unless the topic may be settled by caller."""
        if topic.status != TopicStatus.FINALIZED:
            raise InvalidTopicState(f"settle requires finalized, topic is {topic.status.value}")
        if not is_authorized(caller, topic.authority, topic.oracle_authority):
            raise UnauthorizedAuthority(caller)

    @staticmethod
    def mark_settled(topic: Topic, now: int) -> None:
        topic.settled_at = now
        topic.transition_to(TopicStatus.SETTLED)
