"""PoWorth service — unified facade for the prediction market.

This is the primary interface for programmatic access. It orchestrates:
- Topic lifecycle (create, commit, reveal, finalize, settle)
- Stake custody through the ValueTransfer ledger (one vault per topic)
- Settlement planning and execution
- Audit events

Every operation is one transaction: the topic lock is taken first,
working copies are mutated, transfers go through a TransferBatch nested
inside the lock, and records are published as the last step inside the
batch. A failure anywhere, including the publish, reverses the transfers
before the lock is released. Events are appended only afterwards. A failed
operation leaves store, ledger and event log exactly as they were and
returns a ServiceResult carrying the error.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from poworth.config import MarketConfig
from poworth.engine.state_machine import TopicStateMachine
from poworth.errors import MarketError, UnknownCommitment
from poworth.ledger.clock import Clock, SystemClock
from poworth.ledger.transfer import TransferBatch, ValueTransfer
from poworth.models.settlement import SettlementReport
from poworth.models.topic import Commitment, Topic, TopicStatus
from poworth.persistence.event_log import EventKind, EventLog, EventRecord
from poworth.persistence.state_store import StateStore
from poworth.settlement.distributor import PayoutDistributor
from poworth.settlement.engine import SettlementEngine


logger = logging.getLogger("poworth.service")


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class PredictionMarketService:
    """Commit-reveal prediction market facade.

    Usage:
        service = PredictionMarketService(config, ledger, clock=clock)
        service.create_topic(1, "AAPL close", "AAPL", t + 60, t + 120,
                             authority="alice", oracle_authority="oracle")
        service.commit(1, "bob", commitment_hash, stake=25)
        # ... commit deadline passes ...
        service.reveal(1, "bob", prediction, salt)
        # ... reveal deadline passes ...
        service.finalize(1, "oracle", truth_value)
        result = service.settle(1, "alice")
    """

    def __init__(
        self,
        config: MarketConfig,
        ledger: ValueTransfer,
        clock: Optional[Clock] = None,
        store: Optional[StateStore] = None,
        event_log: Optional[EventLog] = None,
        reserve_minimum: Optional[Callable[[], int]] = None,
    ) -> None:
        self._config = config
        self._ledger = ledger
        self._clock = clock or SystemClock()
        self._store = store or StateStore()
        self._event_log = event_log or EventLog()
        self._reserve_minimum = reserve_minimum or (lambda: config.reserve_minimum)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_topic(
        self,
        topic_id: int,
        description: str,
        symbol: str,
        commit_deadline: int,
        reveal_deadline: int,
        authority: str,
        oracle_authority: str,
        min_stake: Optional[int] = None,
    ) -> ServiceResult:
        """Create a topic in OPEN status."""
        if min_stake is None:
            min_stake = self._config.default_min_stake
        now = self._clock.now()
        try:
            with self._store.transaction(topic_id) as txn:
                topic = TopicStateMachine.create(
                    topic_id=topic_id,
                    description=description,
                    symbol=symbol,
                    commit_deadline=commit_deadline,
                    reveal_deadline=reveal_deadline,
                    min_stake=min_stake,
                    authority=authority,
                    oracle_authority=oracle_authority,
                    now=now,
                )
                txn.create_topic(topic)
        except MarketError as exc:
            return self._failure("create_topic", topic_id, exc)

        self._record(EventKind.TOPIC_CREATED, authority, now, {
            "topic_id": topic_id,
            "symbol": symbol,
            "oracle_authority": oracle_authority,
            "commit_deadline": commit_deadline,
            "reveal_deadline": reveal_deadline,
            "min_stake": min_stake,
        })
        logger.info("Topic created: id=%s symbol=%s", topic_id, symbol)
        return ServiceResult(success=True, data=topic.to_dict())

    def commit(
        self,
        topic_id: int,
        participant: str,
        commitment_hash: bytes,
        stake: int,
    ) -> ServiceResult:
        """Submit a sealed prediction and move the stake into the topic vault."""
        now = self._clock.now()
        vault = self._config.vault_account(topic_id)
        try:
            with self._store.transaction(topic_id) as txn, \
                    TransferBatch(self._ledger) as batch:
                commitment = TopicStateMachine.commit(
                    txn.topic,
                    participant,
                    commitment_hash,
                    stake,
                    now,
                    existing=txn.get_commitment(participant),
                )
                batch.send(participant, vault, stake)
                txn.add_commitment(commitment)
                txn.commit()
        except MarketError as exc:
            return self._failure("commit", topic_id, exc)

        self._record(EventKind.COMMITMENT_RECEIVED, participant, now, {
            "topic_id": topic_id,
            "participant": participant,
            "commitment_hash": commitment.commitment_hash.hex(),
            "stake_amount": stake,
            "submit_order": commitment.submit_order,
        })
        logger.info(
            "Commitment #%s received: topic=%s stake=%s",
            commitment.submit_order, topic_id, stake,
        )
        return ServiceResult(success=True, data={
            "topic_id": topic_id,
            "participant": participant,
            "submit_order": commitment.submit_order,
            "stake_amount": stake,
        })

    def reveal(
        self,
        topic_id: int,
        participant: str,
        prediction: int,
        salt: bytes,
    ) -> ServiceResult:
        """Open a commitment. The hash is verified before anything changes."""
        now = self._clock.now()
        try:
            with self._store.transaction(topic_id) as txn:
                topic = txn.topic
                commitment = txn.get_commitment(participant)
                if commitment is None:
                    raise UnknownCommitment(f"{participant} on topic {topic_id}")
                TopicStateMachine.reveal(topic, commitment, prediction, salt, now)
        except MarketError as exc:
            return self._failure("reveal", topic_id, exc)

        self._record(EventKind.COMMITMENT_REVEALED, participant, now, {
            "topic_id": topic_id,
            "participant": participant,
            "prediction_value": prediction,
        })
        logger.info("Commitment revealed: topic=%s participant=%s", topic_id, participant)
        return ServiceResult(success=True, data={
            "topic_id": topic_id,
            "participant": participant,
            "prediction_value": prediction,
            "status": topic.status.value,
            "reveal_count": topic.reveal_count,
        })

    def finalize(self, topic_id: int, oracle: str, truth_value: int) -> ServiceResult:
        """Oracle publishes the truth value after the reveal deadline."""
        now = self._clock.now()
        try:
            with self._store.transaction(topic_id) as txn:
                topic = txn.topic
                TopicStateMachine.finalize(topic, oracle, truth_value, now)
        except MarketError as exc:
            return self._failure("finalize", topic_id, exc)

        self._record(EventKind.TOPIC_FINALIZED, oracle, now, {
            "topic_id": topic_id,
            "truth_value": truth_value,
            "reveal_count": topic.reveal_count,
        })
        logger.info("Topic finalized: id=%s truth=%s", topic_id, truth_value)
        return ServiceResult(success=True, data={
            "topic_id": topic_id,
            "truth_value": truth_value,
            "status": topic.status.value,
        })

    def settle(self, topic_id: int, caller: str) -> ServiceResult:
        """Score, pay out, sweep the fee and mark the topic SETTLED.

        All-or-nothing: the plan is computed before any transfer, and a
        failure during execution reverses every transfer and discards
        all record changes. The FINALIZED → SETTLED check inside the
        topic lock makes a second settlement fail instead of paying twice.
        """
        now = self._clock.now()
        vault = self._config.vault_account(topic_id)
        try:
            with self._store.transaction(topic_id) as txn, \
                    TransferBatch(self._ledger) as batch:
                topic = txn.topic
                TopicStateMachine.check_settle(topic, caller)
                commitments = txn.commitments()
                plan = SettlementEngine.plan(
                    topic,
                    commitments,
                    vault_balance=self._ledger.balance(vault),
                    reserve=self._reserve_minimum(),
                )
                report = PayoutDistributor.execute(
                    plan, self._ledger, vault, topic.authority, batch=batch,
                )
                for c in commitments:
                    c.payout = report.payouts.get(c.participant, 0)
                    c.settled = True
                TopicStateMachine.mark_settled(topic, now)
                txn.commit()
        except MarketError as exc:
            return self._failure("settle", topic_id, exc)

        self._record_settlement(report, caller, now)
        logger.info(
            "Topic settled: id=%s truth=%s consensus=%s participants=%s loser_pool=%s",
            topic_id, report.truth_value, report.consensus,
            len(report.payouts), report.loser_pool,
        )
        return ServiceResult(success=True, data=report.to_payload())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_topic(self, topic_id: int) -> Optional[Topic]:
        return self._store.get_topic(topic_id)

    def get_commitment(self, topic_id: int, participant: str) -> Optional[Commitment]:
        return self._store.get_commitment(topic_id, participant)

    def list_commitments(self, topic_id: int) -> list[Commitment]:
        return self._store.list_commitments(topic_id)

    def revealed_prediction(self, topic_id: int, participant: str) -> ServiceResult:
        commitment = self._store.get_commitment(topic_id, participant)
        try:
            if commitment is None:
                raise UnknownCommitment(f"{participant} on topic {topic_id}")
            value = commitment.revealed_prediction()
        except MarketError as exc:
            return self._failure("revealed_prediction", topic_id, exc)
        return ServiceResult(success=True, data={"prediction_value": value})

    def topics_awaiting_finalization(self, oracle: str) -> list[Topic]:
        """Topics this oracle may finalize right now."""
        now = self._clock.now()
        return [
            t for t in self._store.topics()
            if t.oracle_authority == oracle
            and t.status in (TopicStatus.OPEN, TopicStatus.REVEALING)
            and now >= t.reveal_deadline
        ]

    def vault_balance(self, topic_id: int) -> int:
        return self._ledger.balance(self._config.vault_account(topic_id))

    def status(self) -> dict[str, Any]:
        topics = self._store.topics()
        by_status = {s.value: 0 for s in TopicStatus}
        for t in topics:
            by_status[t.status.value] += 1
        return {
            "protocol_version": self._config.protocol_version,
            "topics": len(topics),
            "by_status": by_status,
            "total_stake": sum(t.total_stake for t in topics),
            "events": self._event_log.count,
            "reserve_minimum": self._reserve_minimum(),
        }

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _failure(self, operation: str, topic_id: int, exc: MarketError) -> ServiceResult:
        logger.warning("%s failed for topic %s: %s", operation, topic_id, exc)
        return ServiceResult(
            success=False,
            errors=[str(exc)],
            data={"code": exc.code, "topic_id": topic_id},
        )

    def _record(
        self,
        kind: EventKind,
        actor_id: str,
        now: int,
        payload: dict[str, Any],
    ) -> EventRecord:
        event = EventRecord.create(
            event_id=f"evt_{uuid.uuid4().hex}",
            event_kind=kind,
            actor_id=actor_id,
            payload=payload,
            timestamp_utc=datetime.fromtimestamp(now, tz=timezone.utc),
        )
        self._event_log.append(event)
        return event

    def _record_settlement(self, report: SettlementReport, caller: str, now: int) -> None:
        for participant, amount in report.payouts.items():
            self._record(EventKind.PAYOUT_ISSUED, caller, now, {
                "topic_id": report.topic_id,
                "participant": participant,
                "amount": amount,
            })
        if report.protocol_fee > 0:
            self._record(EventKind.PROTOCOL_FEE_SWEPT, caller, now, {
                "topic_id": report.topic_id,
                "recipient": report.fee_recipient,
                "amount": report.protocol_fee,
            })
        self._record(EventKind.TOPIC_SETTLED, caller, now, report.to_payload())
