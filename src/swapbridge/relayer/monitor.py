"""L1 event monitor.

Watches the L1 ledger's Deposit and RequestSwap events and caches the
messages still to be relayed. The cache holds no authoritative state:
replaying the L1 event log from sequence 0 rebuilds it.
"""

import asyncio
import logging
import threading
from typing import Optional

from swapbridge.codec import DepositMessage, SwapRequestMessage
from swapbridge.ledger.base import Event
from swapbridge.ledger.l1 import L1Ledger

logger = logging.getLogger(__name__)

WATCHED_EVENTS = ("Deposit", "RequestSwap")


class Monitor:
    """Read-only cache of L1 messages pending relay to L2."""

    def __init__(self, l1: L1Ledger, interval: float = 0.5, batch_size: int = 500):
        """Initialize the monitor.

        Args:
            l1: Ledger whose events are watched
            interval: Seconds between event polls
            batch_size: Maximum events fetched per poll
        """
        self.l1 = l1
        self.interval = interval
        self.batch_size = batch_size
        self.cursor = 0
        self._lock = threading.Lock()
        self._pending_deposits: dict[str, DepositMessage] = {}
        self._pending_swaps: dict[str, SwapRequestMessage] = {}
        self._unfilled: dict[str, SwapRequestMessage] = {}
        self._running = False

    def observe(self, event: Event) -> bool:
        """Cache the message carried by an L1 event.

        Returns:
            True if the event added a new pending message
        """
        if event.name == "Deposit":
            message = DepositMessage.from_event(event.args)
        elif event.name == "RequestSwap":
            message = SwapRequestMessage.from_event(event.args)
        else:
            return False

        message_hash = message.message_hash
        if event.message_hash and event.message_hash != message_hash:
            logger.error(
                f"Hash mismatch for {event.name} in block {event.block_number}: "
                f"ledger {event.message_hash}, local {message_hash}"
            )
            return False

        with self._lock:
            if isinstance(message, DepositMessage):
                if message_hash in self._pending_deposits:
                    return False
                self._pending_deposits[message_hash] = message
            else:
                if message_hash in self._pending_swaps or message_hash in self._unfilled:
                    return False
                self._pending_swaps[message_hash] = message
                self._unfilled[message_hash] = message

        logger.info(f"Observed {event.name} {message_hash}")
        return True

    def drain_pending_deposits(self) -> list[tuple[str, DepositMessage]]:
        """Return and clear the pending deposits."""
        with self._lock:
            drained = list(self._pending_deposits.items())
            self._pending_deposits.clear()
        return drained

    def drain_pending_swaps(self) -> list[tuple[str, SwapRequestMessage]]:
        """Return and clear the pending swap requests."""
        with self._lock:
            drained = list(self._pending_swaps.items())
            self._pending_swaps.clear()
        return drained

    def peek_unfilled_swaps(self) -> list[tuple[str, SwapRequestMessage]]:
        with self._lock:
            return list(self._unfilled.items())

    def remove_unfilled_swap(self, message_hash: str) -> bool:
        """Forget an unfilled swap. Removing an unknown hash is a no-op."""
        with self._lock:
            removed = self._unfilled.pop(message_hash, None)
        if removed is not None:
            logger.debug(f"Removed {message_hash} from unfilled swaps")
        return removed is not None

    def expired_swaps(self, now: int) -> list[tuple[str, SwapRequestMessage]]:
        """Unfilled swaps whose expiry is strictly before `now`."""
        with self._lock:
            return [(h, swap) for h, swap in self._unfilled.items() if swap.is_expired(now)]

    def stats(self) -> dict:
        with self._lock:
            return {
                "cursor": self.cursor,
                "pending_deposits": len(self._pending_deposits),
                "pending_swaps": len(self._pending_swaps),
                "unfilled_swaps": len(self._unfilled),
            }

    async def poll_once(self) -> int:
        """Fetch L1 events after the cursor and observe them.

        Returns:
            Number of new pending messages
        """
        events = await self.l1.get_events(
            names=WATCHED_EVENTS, after=self.cursor, limit=self.batch_size
        )
        added = 0
        for event in events:
            try:
                if self.observe(event):
                    added += 1
            except Exception as e:
                logger.error(f"Failed to decode {event.name} event {event.sequence}: {e}")
            self.cursor = event.sequence
        return added

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Poll continuously until stopped."""
        logger.info(f"Starting L1 monitor (interval: {self.interval}s)")
        self._running = True
        while self._running and not (stop_event and stop_event.is_set()):
            try:
                added = await self.poll_once()
                if added:
                    logger.info(f"Monitor queued {added} new messages")
            except Exception as e:
                logger.error(f"Monitor error: {e}")
            await asyncio.sleep(self.interval)

    def stop(self) -> None:
        self._running = False
