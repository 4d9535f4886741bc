"""External collaborators — value transfer and clock."""

from poworth.ledger.clock import Clock, ManualClock, SystemClock
from poworth.ledger.transfer import InMemoryLedger, TransferBatch, ValueTransfer

__all__ = [
    "Clock",
    "InMemoryLedger",
    "ManualClock",
    "SystemClock",
    "TransferBatch",
    "ValueTransfer",
]
