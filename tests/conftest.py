"""Shared fixtures — a service on a manual clock and an in-memory ledger."""

import pytest

from poworth.config import MarketConfig
from poworth.crypto.commitment import compute_commitment
from poworth.ledger.clock import ManualClock
from poworth.ledger.transfer import InMemoryLedger
from poworth.service import PredictionMarketService


START = 1_700_000_000
COMMIT_DEADLINE = START + 60
REVEAL_DEADLINE = START + 120


def salt_for(name: str) -> bytes:
    """Deterministic 32-byte salt per participant."""
    return name.encode("utf-8").ljust(32, b"\x00")[:32]


def sealed(prediction: int, participant: str) -> bytes:
    return compute_commitment(prediction, salt_for(participant), participant)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def ledger() -> InMemoryLedger:
    ledger = InMemoryLedger()
    for name in ("p1", "p2", "p3", "p4"):
        ledger.deposit(name, 100)
    return ledger


@pytest.fixture
def config() -> MarketConfig:
    return MarketConfig(reserve_minimum=0, default_min_stake=1)


@pytest.fixture
def service(
    config: MarketConfig, ledger: InMemoryLedger, clock: ManualClock,
) -> PredictionMarketService:
    return PredictionMarketService(config, ledger, clock=clock)


@pytest.fixture
def open_topic(service: PredictionMarketService) -> int:
    result = service.create_topic(
        topic_id=1,
        description="Closing price",
        symbol="AAPL",
        commit_deadline=COMMIT_DEADLINE,
        reveal_deadline=REVEAL_DEADLINE,
        authority="alice",
        oracle_authority="oracle",
        min_stake=1,
    )
    assert result.success
    return 1
