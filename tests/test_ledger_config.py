"""Tests for the ledger, transfer batches, clocks and market configuration."""

import json
import os
from pathlib import Path

import pytest

from poworth.config import MarketConfig
from poworth.errors import InsufficientFunds
from poworth.ledger.clock import Clock, ManualClock, SystemClock
from poworth.ledger.transfer import InMemoryLedger, TransferBatch, ValueTransfer


class TestInMemoryLedger:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryLedger(), ValueTransfer)

    def test_transfer(self) -> None:
        ledger = InMemoryLedger()
        ledger.deposit("a", 10)
        assert ledger.transfer("a", "b", 4)
        assert ledger.balance("a") == 6
        assert ledger.balance("b") == 4

    def test_insufficient_returns_false(self) -> None:
        ledger = InMemoryLedger()
        ledger.deposit("a", 3)
        assert not ledger.transfer("a", "b", 4)
        assert ledger.balances() == {"a": 3}

    def test_bad_amounts(self) -> None:
        ledger = InMemoryLedger()
        with pytest.raises(ValueError):
            ledger.deposit("a", 0)
        with pytest.raises(ValueError):
            ledger.transfer("a", "b", -1)

    def test_persistence(self, tmp_path: Path) -> None:
        path = tmp_path / "ledger.json"
        InMemoryLedger(storage_path=path).deposit("a", 10)
        assert InMemoryLedger(storage_path=path).balance("a") == 10

    def test_corrupt_file(self, tmp_path: Path) -> None:
        path = tmp_path / "ledger.json"
        path.write_text(json.dumps({"a": -5}))
        with pytest.raises(ValueError):
            InMemoryLedger(storage_path=path)


class TestTransferBatch:
    def test_rollback_on_exception(self) -> None:
        ledger = InMemoryLedger()
        ledger.deposit("a", 10)
        with pytest.raises(InsufficientFunds):
            with TransferBatch(ledger) as batch:
                batch.send("a", "b", 6)
                batch.send("a", "c", 6)
        assert ledger.balances() == {"a": 10, "b": 0}

    def test_zero_amount_is_skipped(self) -> None:
        batch = TransferBatch(InMemoryLedger())
        batch.send("a", "b", 0)
        assert batch.transfers == []

    def test_clean_exit_keeps_transfers(self) -> None:
        ledger = InMemoryLedger()
        ledger.deposit("a", 10)
        with TransferBatch(ledger) as batch:
            batch.send("a", "b", 6)
        assert batch.transfers == [("a", "b", 6)]
        assert ledger.balance("b") == 6


class TestClock:
    def test_manual_clock(self) -> None:
        clock = ManualClock(100)
        assert isinstance(clock, Clock)
        assert clock.advance(5) == 105
        with pytest.raises(ValueError):
            clock.set(104)

    def test_system_clock(self) -> None:
        assert SystemClock().now() > 1_600_000_000


class TestMarketConfig:
    def test_defaults(self) -> None:
        config = MarketConfig()
        assert config.reserve_minimum == 890_880
        assert config.vault_account(7) == "vault:7"

    def test_from_config_dir(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("POWORTH_RESERVE_MINIMUM", raising=False)
        monkeypatch.delenv("POWORTH_DEFAULT_MIN_STAKE", raising=False)
        monkeypatch.delenv("POWORTH_VAULT_PREFIX", raising=False)
        (tmp_path / "market_params.json").write_text(json.dumps({"reserve_minimum": 5}))
        config = MarketConfig.from_config_dir(tmp_path)
        assert config.reserve_minimum == 5
        assert config.default_min_stake == 10_000_000

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "market_params.json").write_text(json.dumps({"reserve_minimum": 5}))
        monkeypatch.setenv("POWORTH_RESERVE_MINIMUM", "11")
        assert MarketConfig.from_config_dir(tmp_path).reserve_minimum == 11

    def test_dotenv_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        environ = {k: v for k, v in os.environ.items() if not k.startswith("POWORTH_")}
        monkeypatch.setattr(os, "environ", environ)
        (tmp_path / ".env").write_text("POWORTH_VAULT_PREFIX=pool\n")
        config = MarketConfig.from_config_dir(tmp_path)
        assert environ["POWORTH_VAULT_PREFIX"] == "pool"
        assert config.vault_account(1) == "pool:1"

    def test_unknown_key(self) -> None:
        with pytest.raises(ValueError):
            MarketConfig.from_dict({"reserve": 1})

    def test_negative_reserve(self) -> None:
        with pytest.raises(ValueError):
            MarketConfig(reserve_minimum=-1)

    def test_repo_config_loads(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("POWORTH_RESERVE_MINIMUM", raising=False)
        config_dir = Path(__file__).resolve().parents[1] / "config"
        assert MarketConfig.from_config_dir(config_dir).reserve_minimum == 890_880
