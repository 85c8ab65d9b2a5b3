"""Utility modules."""

from swapbridge.utils.locks import LedgerLock, LockTimeoutError, call_guard

__all__ = ["LedgerLock", "LockTimeoutError", "call_guard"]
