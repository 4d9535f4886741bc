"""Value transfer abstraction — the ledger the market moves stakes through.

The market never touches balances directly. It talks to any object
satisfying the ValueTransfer protocol:

    transfer(source, destination, amount) -> bool   (False = insufficient funds)
    balance(account) -> int

A failed transfer is fatal to the enclosing transaction and is never
retried automatically. TransferBatch gives a group of transfers
all-or-nothing behaviour by reversing, newest first, everything it
already sent.

InMemoryLedger is the bundled implementation, with optional JSON file
persistence for the CLI.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple, runtime_checkable

from poworth.errors import InsufficientFunds


@runtime_checkable
class ValueTransfer(Protocol):
    """Abstract contract for moving stake value between accounts."""

    def transfer(self, source: str, destination: str, amount: int) -> bool:
        """Move amount from source to destination. False if source lacks funds."""
        ...

    def balance(self, account: str) -> int:
        """Current balance of account (0 if unknown)."""
        ...


class InMemoryLedger:
    """Integer balance ledger with optional JSON persistence.

    Usage:
        ledger = InMemoryLedger()
        ledger.deposit("alice", 100)
        ledger.transfer("alice", "vault:1", 25)
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._balances: Dict[str, int] = {}
        self._storage_path = storage_path
        self._lock = threading.Lock()
        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def deposit(self, account: str, amount: int) -> None:
        """Credit an account from outside the market (funding)."""
        if amount <= 0:
            raise ValueError("Deposit amount must be positive")
        with self._lock:
            self._balances[account] = self._balances.get(account, 0) + amount
            self._persist()

    def transfer(self, source: str, destination: str, amount: int) -> bool:
        if amount < 0:
            raise ValueError("Transfer amount must be non-negative")
        with self._lock:
            if self._balances.get(source, 0) < amount:
                return False
            self._balances[source] = self._balances.get(source, 0) - amount
            self._balances[destination] = self._balances.get(destination, 0) + amount
            self._persist()
        return True

    def balance(self, account: str) -> int:
        return self._balances.get(account, 0)

    def balances(self) -> Dict[str, int]:
        return dict(self._balances)

    def _persist(self) -> None:
        if self._storage_path:
            self._storage_path.write_text(
                json.dumps(self._balances, sort_keys=True, indent=2),
                encoding="utf-8",
            )

    def _load_from_file(self, path: Path) -> None:
        data = json.loads(path.read_text(encoding="utf-8"))
        for account, amount in data.items():
            if not isinstance(amount, int) or amount < 0:
                raise ValueError(f"Corrupt ledger balance for {account}: {amount!r}")
            self._balances[account] = amount


class TransferBatch:
    """All-or-nothing group of transfers.

    send() raises InsufficientFunds when the ledger refuses. rollback()
    reverses every completed transfer, newest first. Used as a context
    manager, a failure inside the block rolls back automatically.
    """

    def __init__(self, ledger: ValueTransfer) -> None:
        self._ledger = ledger
        self._sent: List[Tuple[str, str, int]] = []

    def send(self, source: str, destination: str, amount: int) -> None:
        if amount == 0:
            return
        if not self._ledger.transfer(source, destination, amount):
            raise InsufficientFunds(f"{source} → {destination}: {amount}")
        self._sent.append((source, destination, amount))

    @property
    def transfers(self) -> List[Tuple[str, str, int]]:
        return list(self._sent)

    def rollback(self) -> None:
        while self._sent:
            source, destination, amount = self._sent.pop()
            if not self._ledger.transfer(destination, source, amount):
                raise RuntimeError(
                    f"Rollback failed: cannot return {amount} from {destination} to {source}"
                )

    def __enter__(self) -> TransferBatch:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self.rollback()
        return False
