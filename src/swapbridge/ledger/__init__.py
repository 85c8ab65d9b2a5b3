"""Ledger module: L1 and L2 state machines and their persistence."""

from swapbridge.ledger.base import Event, Ledger, ManualClock, Payment, Receipt, SystemClock
from swapbridge.ledger.database import LedgerDatabase
from swapbridge.ledger.l1 import L1Ledger
from swapbridge.ledger.l2 import L2Ledger
from swapbridge.ledger.models import (
    Balance,
    LedgerEvent,
    LedgerState,
    Swap,
    SwapStatus,
)
from swapbridge.ledger.repository import LedgerRepository

__all__ = [
    # Ledgers
    "Ledger",
    "L1Ledger",
    "L2Ledger",
    # Runtime
    "Event",
    "Receipt",
    "Payment",
    "ManualClock",
    "SystemClock",
    # Models
    "Balance",
    "LedgerEvent",
    "LedgerState",
    "Swap",
    # Enums
    "SwapStatus",
    # Database
    "LedgerDatabase",
    "LedgerRepository",
]
