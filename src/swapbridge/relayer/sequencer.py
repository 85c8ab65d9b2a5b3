"""Sequencer: relays monitored L1 messages to the L2 ledger.

Each tick, in order:
1. Pending deposits: preconfirm the hash, then complete_deposit with the amount attached
2. Pending swaps: preconfirm the hash, then complete_request_swap with the ETH attached
3. Unfilled swaps past expiry: cancel_expired_swap, then forget them

A separate loop watches L2 for SwapFilled and SwapCancelled events and
prunes the unfilled set. A failed item is logged and dropped unless its swap
is already open on L2; the ledger rejects duplicate submissions, so
re-relaying is always safe.
"""

import asyncio
import logging
from typing import Optional

from swapbridge.codec import DepositMessage, SwapRequestMessage
from swapbridge.errors import BridgeError, StateError
from swapbridge.ledger.base import Receipt
from swapbridge.ledger.l2 import L2Ledger
from swapbridge.ledger.models import SwapStatus
from swapbridge.relayer.monitor import Monitor
from swapbridge.signing.base import SignerBackend, SigningError

logger = logging.getLogger(__name__)

RESOLUTION_EVENTS = ("SwapFilled", "SwapCancelled")


class Sequencer:
    """Drives L2 block production from the monitor's queues."""

    def __init__(
        self,
        l2: L2Ledger,
        monitor: Monitor,
        signer: SignerBackend,
        interval: float = 1.0,
        fill_watch_interval: float = 0.5,
    ):
        self.l2 = l2
        self.monitor = monitor
        self.signer = signer
        self.interval = interval
        self.fill_watch_interval = fill_watch_interval
        self.fill_cursor = 0
        self._tick_lock = asyncio.Lock()
        self._running = False

    @property
    def address(self) -> str:
        return self.signer.address

    async def preconfirm(self, message_hash: str) -> Receipt:
        """Sign and submit a single-hash preconfirmation batch."""
        result = await self.signer.sign_preconfirmation(message_hash)
        if not result.success:
            raise SigningError(f"Could not sign {message_hash}: {result.error}")
        return await self.l2.preconfirm(self.address, [message_hash], [result.signature])

    async def relay_deposit(self, message_hash: str, deposit: DepositMessage) -> bool:
        try:
            await self.preconfirm(message_hash)
            receipt = await self.l2.complete_deposit(
                self.address,
                deposit.amount,
                user=deposit.user,
                amount=deposit.amount,
                nonce=deposit.nonce,
            )
        except (BridgeError, SigningError) as e:
            logger.error(f"Dropping deposit {message_hash}: {e}")
            return False
        except Exception as e:
            logger.exception(f"Unexpected error relaying deposit {message_hash}: {e}")
            return False

        if receipt.find("DepositCompleted") is None:
            logger.warning(f"Deposit {message_hash} committed without DepositCompleted event")
            return False

        logger.info(f"Relayed deposit {message_hash}: {deposit.amount} to {deposit.user}")
        return True

    async def relay_swap(self, message_hash: str, swap: SwapRequestMessage) -> bool:
        try:
            await self.preconfirm(message_hash)
            receipt = await self.l2.complete_request_swap(
                self.address, swap.eth_amount, **swap.as_call_args()
            )
        except (BridgeError, SigningError) as e:
            await self._forget_unless_open(message_hash, f"Swap request {message_hash} not relayed: {e}")
            return False
        except Exception as e:
            logger.exception(f"Unexpected error relaying swap request {message_hash}: {e}")
            await self._forget_unless_open(message_hash, f"Swap request {message_hash} not relayed")
            return False

        if receipt.find("RequestSwapCompleted") is None:
            logger.warning(f"Swap {message_hash} committed without RequestSwapCompleted event")
            return False

        logger.info(f"Relayed swap request {message_hash}, open until {swap.expiry}")
        return True

    async def _forget_unless_open(self, message_hash: str, reason: str) -> None:
        """Drop a swap from the unfilled set unless L2 already holds it open.

        A replayed L1 history re-queues swaps relayed before a restart; those
        fail as already processed but still need cancelling after expiry.
        """
        try:
            status = await self.l2.swap_status(message_hash)
        except Exception as e:
            logger.exception(f"Could not read status of swap {message_hash}: {e}")
            return

        if status == SwapStatus.OPEN:
            logger.info(f"{reason}; swap is open on L2, keeping it for expiry")
            return
        logger.error(f"{reason}; dropping (status: {status.value})")
        self.monitor.remove_unfilled_swap(message_hash)

    async def cancel_swap(self, message_hash: str, swap: SwapRequestMessage) -> bool:
        try:
            receipt = await self.l2.cancel_expired_swap(self.address, **swap.as_call_args())
        except StateError as e:
            status = await self.l2.swap_status(message_hash)
            if status != SwapStatus.OPEN:
                logger.info(f"Swap {message_hash} is {status.value}, nothing to cancel")
                self.monitor.remove_unfilled_swap(message_hash)
            else:
                logger.warning(f"Could not cancel swap {message_hash}: {e}")
            return False
        except BridgeError as e:
            logger.error(f"Could not cancel swap {message_hash}: {e}")
            return False
        except Exception as e:
            logger.exception(f"Unexpected error cancelling swap {message_hash}: {e}")
            return False

        if receipt.find("SwapCancelled") is None:
            return False

        self.monitor.remove_unfilled_swap(message_hash)
        logger.info(f"Cancelled expired swap {message_hash}")
        return True

    async def produce_block(self) -> dict[str, int]:
        """Run one relay cycle.

        Returns:
            Counts of relayed deposits, relayed swaps and cancelled swaps
        """
        counts = {"deposits": 0, "swaps": 0, "cancelled": 0}

        for message_hash, deposit in self.monitor.drain_pending_deposits():
            if await self.relay_deposit(message_hash, deposit):
                counts["deposits"] += 1

        for message_hash, swap in self.monitor.drain_pending_swaps():
            if await self.relay_swap(message_hash, swap):
                counts["swaps"] += 1

        now = await self.l2.current_time()
        for message_hash, swap in self.monitor.expired_swaps(now):
            if await self.cancel_swap(message_hash, swap):
                counts["cancelled"] += 1

        return counts

    async def tick(self) -> Optional[dict[str, int]]:
        """Run a cycle unless the previous one is still running."""
        if self._tick_lock.locked():
            logger.warning("Previous sequencer tick still running, skipping")
            return None
        async with self._tick_lock:
            return await self.produce_block()

    async def watch_fills_once(self) -> int:
        """Prune swaps resolved on L2 since the last poll."""
        events = await self.l2.get_events(names=RESOLUTION_EVENTS, after=self.fill_cursor)
        pruned = 0
        for event in events:
            self.fill_cursor = event.sequence
            if event.message_hash and self.monitor.remove_unfilled_swap(event.message_hash):
                pruned += 1
        return pruned

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Tick on a fixed cadence until stopped."""
        logger.info(f"Starting sequencer {self.address} (interval: {self.interval}s)")
        self._running = True
        while self._running and not (stop_event and stop_event.is_set()):
            try:
                counts = await self.tick()
                if counts and any(counts.values()):
                    logger.info(
                        f"Sequencer tick: {counts['deposits']} deposits, "
                        f"{counts['swaps']} swaps, {counts['cancelled']} cancellations"
                    )
            except Exception as e:
                logger.error(f"Sequencer error: {e}")
            await asyncio.sleep(self.interval)

    async def run_fill_watcher(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Watch L2 resolutions independently of the tick."""
        self._running = True
        while self._running and not (stop_event and stop_event.is_set()):
            try:
                await self.watch_fills_once()
            except Exception as e:
                logger.error(f"Fill watcher error: {e}")
            await asyncio.sleep(self.fill_watch_interval)

    def stop(self) -> None:
        self._running = False
