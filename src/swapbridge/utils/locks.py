"""Concurrency control for ledger calls.

Provides per-ledger serialization (one logical writer at a time) and the
call-depth guard that rejects reentrant calls into a ledger.
"""

import asyncio
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Optional

from swapbridge.errors import ReentrancyError

logger = logging.getLogger(__name__)

# Ledgers with a call in flight in the current execution context. Receive
# hooks run inside the paying call and inherit this context.
_active_calls: ContextVar[frozenset[str]] = ContextVar("active_ledger_calls", default=frozenset())


class LedgerLock:
    """Serializes calls on one ledger.

    Example:
        lock = LedgerLock(address)
        async with lock.hold("deposit"):
            ...
    """

    def __init__(self, ledger: str, timeout: Optional[float] = 30.0):
        """Initialize the lock.

        Args:
            ledger: Address of the ledger being serialized
            timeout: Maximum time to wait for lock (None = wait forever)
        """
        self.ledger = ledger
        self.timeout = timeout
        self._lock = asyncio.Lock()

    def locked(self) -> bool:
        return self._lock.locked()

    def hold(self, operation: str = "call") -> "_HeldLock":
        return _HeldLock(self, operation)


class _HeldLock:
    def __init__(self, owner: LedgerLock, operation: str):
        self.owner = owner
        self.operation = operation
        self._acquired = False

    async def __aenter__(self) -> "_HeldLock":
        """Acquire the lock."""
        lock = self.owner._lock
        try:
            if self.owner.timeout:
                self._acquired = await asyncio.wait_for(lock.acquire(), timeout=self.owner.timeout)
            else:
                await lock.acquire()
                self._acquired = True

            logger.debug(f"Lock acquired for ledger {self.owner.ledger}: {self.operation}")
            return self

        except asyncio.TimeoutError:
            logger.warning(
                f"Lock timeout for ledger {self.owner.ledger} after {self.owner.timeout}s: "
                f"{self.operation}"
            )
            raise LockTimeoutError(
                f"Could not acquire lock for ledger {self.owner.ledger} within {self.owner.timeout}s"
            )

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Release the lock."""
        if self._acquired:
            self.owner._lock.release()
            logger.debug(f"Lock released for ledger {self.owner.ledger}: {self.operation}")
        return False


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


def in_call(ledger: str) -> bool:
    """Check whether the current context is inside a call on the ledger."""
    return ledger in _active_calls.get()


@contextmanager
def call_guard(ledger: str, operation: str = "call"):
    """Mark the current context as inside a call on the ledger.

    Raises:
        ReentrancyError: If the context is already inside a call on it
    """
    active = _active_calls.get()
    if ledger in active:
        logger.warning(f"Reentrant call rejected on ledger {ledger}: {operation}")
        raise ReentrancyError(f"Reentrant call to {operation}")

    token = _active_calls.set(active | {ledger})
    try:
        yield
    finally:
        _active_calls.reset(token)
