"""Tests for PredictionMarketService — proves the facade orchestrates correctly."""

import threading

import pytest

from conftest import COMMIT_DEADLINE, REVEAL_DEADLINE, START, salt_for, sealed
from poworth.config import MarketConfig
from poworth.crypto.commitment import compute_commitment
from poworth.ledger.clock import ManualClock
from poworth.ledger.transfer import InMemoryLedger
from poworth.models.topic import TopicStatus
from poworth.persistence.event_log import EventKind
from poworth.persistence.state_store import StateStore
from poworth.service import PredictionMarketService


def _commit_all(service: PredictionMarketService, entries: list[tuple[str, int, int]]) -> None:
    for participant, prediction, stake in entries:
        result = service.commit(1, participant, sealed(prediction, participant), stake)
        assert result.success, result.errors


def _reveal(service: PredictionMarketService, participant: str, prediction: int):
    return service.reveal(1, participant, prediction, salt_for(participant))


def _run_scenario(service: PredictionMarketService, clock: ManualClock, truth: int = 20) -> None:
    """Three revealed at stake 10 (5, 15, 10), one unrevealed at stake 5."""
    _commit_all(service, [("p1", 5, 10), ("p2", 15, 10), ("p3", 10, 10), ("p4", 99, 5)])
    clock.set(COMMIT_DEADLINE)
    for participant, prediction in (("p1", 5), ("p2", 15), ("p3", 10)):
        assert _reveal(service, participant, prediction).success
    clock.set(REVEAL_DEADLINE)
    assert service.finalize(1, "oracle", truth).success


class TestCreateTopic:
    def test_create_and_lookup(self, service: PredictionMarketService, open_topic: int) -> None:
        topic = service.get_topic(open_topic)
        assert topic is not None
        assert topic.status == TopicStatus.OPEN
        assert topic.total_stake == 0
        assert service.event_log.count == 1

    def test_duplicate_id_fails(self, service: PredictionMarketService, open_topic: int) -> None:
        result = service.create_topic(1, "again", "X", COMMIT_DEADLINE, REVEAL_DEADLINE, "a", "o")
        assert not result.success
        assert result.data["code"] == "topic_exists"

    def test_default_min_stake_from_config(self, ledger: InMemoryLedger, clock: ManualClock) -> None:
        service = PredictionMarketService(
            MarketConfig(reserve_minimum=0, default_min_stake=7), ledger, clock=clock,
        )
        service.create_topic(3, "d", "S", COMMIT_DEADLINE, REVEAL_DEADLINE, "a", "o")
        assert service.get_topic(3).min_stake == 7

    def test_invalid_deadlines(self, service: PredictionMarketService) -> None:
        result = service.create_topic(2, "d", "S", START, REVEAL_DEADLINE, "a", "o")
        assert not result.success
        assert result.data["code"] == "invalid_deadlines"
        assert service.get_topic(2) is None
        assert service.event_log.count == 0


class TestCommit:
    def test_stake_moves_to_vault(
        self, service: PredictionMarketService, ledger: InMemoryLedger, open_topic: int,
    ) -> None:
        _commit_all(service, [("p1", 5, 10)])
        assert ledger.balance("p1") == 90
        assert service.vault_balance(1) == 10
        topic = service.get_topic(1)
        assert topic.total_stake == 10
        assert topic.commitment_count == 1

    def test_insufficient_funds_rolls_back(
        self, service: PredictionMarketService, ledger: InMemoryLedger, open_topic: int,
    ) -> None:
        result = service.commit(1, "p1", sealed(5, "p1"), 1_000)
        assert not result.success
        assert result.data["code"] == "insufficient_funds"
        assert service.get_topic(1).commitment_count == 0
        assert service.get_commitment(1, "p1") is None
        assert ledger.balance("p1") == 100

    def test_duplicate_commit_rejected(
        self, service: PredictionMarketService, ledger: InMemoryLedger, open_topic: int,
    ) -> None:
        _commit_all(service, [("p1", 5, 10)])
        result = service.commit(1, "p1", sealed(6, "p1"), 10)
        assert result.data["code"] == "duplicate_commitment"
        assert ledger.balance("p1") == 90
        assert service.get_topic(1).total_stake == 10

    def test_after_deadline(
        self, service: PredictionMarketService, clock: ManualClock, open_topic: int,
    ) -> None:
        clock.set(COMMIT_DEADLINE)
        result = service.commit(1, "p1", sealed(5, "p1"), 10)
        assert result.data["code"] == "commit_phase_ended"

    def test_unknown_topic(self, service: PredictionMarketService) -> None:
        result = service.commit(42, "p1", sealed(5, "p1"), 10)
        assert result.data["code"] == "unknown_topic"

    def test_concurrent_commits_keep_aggregates(
        self, service: PredictionMarketService, ledger: InMemoryLedger, open_topic: int,
    ) -> None:
        names = [f"c{i}" for i in range(20)]
        for name in names:
            ledger.deposit(name, 10)

        def worker(name: str) -> None:
            service.commit(1, name, sealed(1, name), 3)

        threads = [threading.Thread(target=worker, args=(n,)) for n in names]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        topic = service.get_topic(1)
        assert topic.commitment_count == 20
        assert topic.total_stake == 60
        orders = sorted(c.submit_order for c in service.list_commitments(1))
        assert orders == list(range(20))

    def test_failed_state_write_refunds_stake(
        self, config: MarketConfig, ledger: InMemoryLedger, clock: ManualClock,
        tmp_path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        path = tmp_path / "state.json"
        store = StateStore(storage_path=path)
        service = PredictionMarketService(config, ledger, clock=clock, store=store)
        assert service.create_topic(
            1, "d", "S", COMMIT_DEADLINE, REVEAL_DEADLINE, "alice", "oracle",
        ).success
        on_disk = path.read_bytes()

        def disk_full(topics, commitments) -> None:
            raise OSError("disk full")

        monkeypatch.setattr(store, "_write_to_file", disk_full)
        with pytest.raises(OSError):
            service.commit(1, "p1", sealed(5, "p1"), 10)

        topic = service.get_topic(1)
        assert topic.commitment_count == 0
        assert topic.total_stake == 0
        assert service.get_commitment(1, "p1") is None
        assert ledger.balance("p1") == 100
        assert service.vault_balance(1) == 0
        assert path.read_bytes() == on_disk


class TestReveal:
    def test_reveal_then_query(
        self, service: PredictionMarketService, clock: ManualClock, open_topic: int,
    ) -> None:
        _commit_all(service, [("p1", 5, 10)])
        assert not service.revealed_prediction(1, "p1").success
        clock.set(COMMIT_DEADLINE)
        result = _reveal(service, "p1", 5)
        assert result.success
        assert result.data["status"] == "revealing"
        assert service.revealed_prediction(1, "p1").data["prediction_value"] == 5

    def test_wrong_prediction_leaves_state(
        self, service: PredictionMarketService, clock: ManualClock, open_topic: int,
    ) -> None:
        _commit_all(service, [("p1", 5, 10)])
        clock.set(COMMIT_DEADLINE)
        result = _reveal(service, "p1", 6)
        assert result.data["code"] == "hash_mismatch"
        assert service.get_topic(1).status == TopicStatus.OPEN
        assert not service.get_commitment(1, "p1").revealed

    def test_not_committed(
        self, service: PredictionMarketService, clock: ManualClock, open_topic: int,
    ) -> None:
        clock.set(COMMIT_DEADLINE)
        assert _reveal(service, "p1", 5).data["code"] == "unknown_commitment"


class TestFinalize:
    def test_oracle_queue(
        self, service: PredictionMarketService, clock: ManualClock, open_topic: int,
    ) -> None:
        assert service.topics_awaiting_finalization("oracle") == []
        clock.set(REVEAL_DEADLINE)
        assert [t.topic_id for t in service.topics_awaiting_finalization("oracle")] == [1]
        assert service.topics_awaiting_finalization("someone") == []
        assert service.finalize(1, "oracle", 3).success
        assert service.topics_awaiting_finalization("oracle") == []

    def test_wrong_oracle(
        self, service: PredictionMarketService, clock: ManualClock, open_topic: int,
    ) -> None:
        clock.set(REVEAL_DEADLINE)
        assert service.finalize(1, "alice", 3).data["code"] == "unauthorized_oracle"


class TestSettle:
    def test_concrete_scenario(
        self, service: PredictionMarketService, ledger: InMemoryLedger,
        clock: ManualClock, open_topic: int,
    ) -> None:
        _run_scenario(service, clock)
        result = service.settle(1, "alice")
        assert result.success, result.errors
        assert result.data["consensus"] == 10
        assert result.data["loser_pool"] == 5
        assert result.data["payouts"] == {"p1": 10, "p2": 15, "p3": 10, "p4": 0}
        assert ledger.balance("p1") == 100
        assert ledger.balance("p2") == 105
        assert ledger.balance("p3") == 100
        assert ledger.balance("p4") == 95
        assert service.vault_balance(1) == 0

        topic = service.get_topic(1)
        assert topic.status == TopicStatus.SETTLED
        assert all(c.settled for c in service.list_commitments(1))
        assert service.get_commitment(1, "p2").payout == 15

    def test_haircut_with_reserve(
        self, ledger: InMemoryLedger, clock: ManualClock,
    ) -> None:
        service = PredictionMarketService(
            MarketConfig(reserve_minimum=7, default_min_stake=1), ledger, clock=clock,
        )
        service.create_topic(1, "d", "S", COMMIT_DEADLINE, REVEAL_DEADLINE, "alice", "oracle")
        _run_scenario(service, clock)
        result = service.settle(1, "oracle")
        assert result.data["scaled"] is True
        assert result.data["payouts"] == {"p1": 8, "p2": 12, "p3": 8, "p4": 0}
        assert service.vault_balance(1) == 7
        assert result.data["protocol_fee"] == 0

    def test_second_settle_fails_and_changes_nothing(
        self, service: PredictionMarketService, ledger: InMemoryLedger,
        clock: ManualClock, open_topic: int,
    ) -> None:
        _run_scenario(service, clock)
        assert service.settle(1, "alice").success
        balances = ledger.balances()
        events = service.event_log.count
        result = service.settle(1, "alice")
        assert not result.success
        assert result.data["code"] == "invalid_topic_state"
        assert ledger.balances() == balances
        assert service.event_log.count == events

    def test_truth_equals_consensus_refunds(
        self, service: PredictionMarketService, ledger: InMemoryLedger,
        clock: ManualClock, open_topic: int,
    ) -> None:
        _run_scenario(service, clock, truth=10)
        result = service.settle(1, "alice")
        assert result.data["payouts"] == {"p1": 10, "p2": 10, "p3": 10, "p4": 0}
        assert result.data["protocol_fee"] == 5
        assert ledger.balance("alice") == 5

    def test_unauthorized_caller(
        self, service: PredictionMarketService, clock: ManualClock, open_topic: int,
    ) -> None:
        _run_scenario(service, clock)
        result = service.settle(1, "p1")
        assert result.data["code"] == "unauthorized_authority"
        assert service.get_topic(1).status == TopicStatus.FINALIZED

    def test_no_commitments(
        self, service: PredictionMarketService, clock: ManualClock, open_topic: int,
    ) -> None:
        clock.set(REVEAL_DEADLINE)
        service.finalize(1, "oracle", 1)
        result = service.settle(1, "alice")
        assert result.data["code"] == "no_revealed_commitments"
        assert service.get_topic(1).status == TopicStatus.FINALIZED

    def test_failed_transfer_rolls_back(
        self, service: PredictionMarketService, ledger: InMemoryLedger,
        clock: ManualClock, open_topic: int, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        _run_scenario(service, clock)
        before = ledger.balances()
        real_transfer = ledger.transfer

        def flaky(source: str, destination: str, amount: int) -> bool:
            if destination == "p3":
                return False
            return real_transfer(source, destination, amount)

        monkeypatch.setattr(ledger, "transfer", flaky)
        result = service.settle(1, "alice")
        assert result.data["code"] == "insufficient_funds"
        assert ledger.balances() == before
        assert service.get_topic(1).status == TopicStatus.FINALIZED
        assert not any(c.settled for c in service.list_commitments(1))

    def test_resettle_waits_for_rollback(
        self, service: PredictionMarketService, ledger: InMemoryLedger,
        clock: ManualClock, open_topic: int, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        _run_scenario(service, clock)
        real_transfer = ledger.transfer
        state = {"refuse": True, "thread": None}
        results: list = []
        blocked: list[bool] = []

        def flaky(source: str, destination: str, amount: int) -> bool:
            if destination == "p3" and state["refuse"]:
                return False
            if destination == "vault:1" and state["thread"] is None:
                # First reversal of the failed settlement: race a second one.
                state["refuse"] = False
                t = threading.Thread(target=lambda: results.append(service.settle(1, "oracle")))
                state["thread"] = t
                t.start()
                t.join(timeout=0.2)
                blocked.append(t.is_alive())
            return real_transfer(source, destination, amount)

        monkeypatch.setattr(ledger, "transfer", flaky)
        first = service.settle(1, "alice")
        assert first.data["code"] == "insufficient_funds"
        state["thread"].join(timeout=5)

        assert blocked == [True]
        assert len(results) == 1
        assert results[0].success, results[0].errors
        assert results[0].data["payouts"] == {"p1": 10, "p2": 15, "p3": 10, "p4": 0}
        assert service.vault_balance(1) == 0
        assert ledger.balance("p2") == 105
        assert service.get_topic(1).status == TopicStatus.SETTLED

    def test_overflow_aborts_before_any_transfer(
        self, service: PredictionMarketService, ledger: InMemoryLedger,
        clock: ManualClock, open_topic: int,
    ) -> None:
        ledger.deposit("p2", 1_000)
        ledger.deposit("p3", 10 ** 17)
        _commit_all(service, [("p1", 1_000, 1), ("p2", 0, 1_000), ("p3", 5, 10 ** 17)])
        clock.set(COMMIT_DEADLINE)
        assert _reveal(service, "p1", 1_000).success
        assert _reveal(service, "p2", 0).success
        clock.set(REVEAL_DEADLINE)
        assert service.finalize(1, "oracle", 1_000).success
        before = ledger.balances()
        events = service.event_log.count

        result = service.settle(1, "alice")
        assert not result.success
        assert result.data["code"] == "arithmetic_overflow"
        assert service.get_topic(1).status == TopicStatus.FINALIZED
        assert not any(c.settled for c in service.list_commitments(1))
        assert ledger.balances() == before
        assert service.event_log.count == events

    def test_settlement_events(
        self, service: PredictionMarketService, clock: ManualClock, open_topic: int,
    ) -> None:
        _run_scenario(service, clock, truth=10)
        service.settle(1, "alice")
        log = service.event_log
        assert len(log.events(EventKind.PAYOUT_ISSUED)) == 4
        assert len(log.events(EventKind.PROTOCOL_FEE_SWEPT)) == 1
        settled = log.events(EventKind.TOPIC_SETTLED)
        assert settled[0].payload["fee_recipient"] == "alice"
        assert log.last_event.event_kind == EventKind.TOPIC_SETTLED


class TestStatus:
    def test_counts(
        self, service: PredictionMarketService, clock: ManualClock, open_topic: int,
    ) -> None:
        _commit_all(service, [("p1", 5, 10)])
        status = service.status()
        assert status["topics"] == 1
        assert status["by_status"]["open"] == 1
        assert status["total_stake"] == 10
        assert status["events"] == 2

    def test_custom_reserve_callable(self, ledger: InMemoryLedger, clock: ManualClock) -> None:
        service = PredictionMarketService(
            MarketConfig(), ledger, clock=clock, reserve_minimum=lambda: 3,
        )
        assert service.status()["reserve_minimum"] == 3
