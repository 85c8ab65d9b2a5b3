"""Withdrawal prover.

Collects Withdraw events from the L2 ledger and registers them on the L1
ledger with `prove`, so their users can claim with `complete_withdraw`.
"""

import asyncio
import logging
from typing import Optional

from eth_account import Account

from swapbridge.errors import BridgeError
from swapbridge.ledger.base import Receipt
from swapbridge.ledger.l1 import L1Ledger
from swapbridge.ledger.l2 import L2Ledger
from swapbridge.proofs import build_attestation

logger = logging.getLogger(__name__)


class WithdrawalProver:
    """Proves batches of L2 withdrawals on L1."""

    def __init__(
        self,
        l1: L1Ledger,
        l2: L2Ledger,
        attester_private_key: Optional[str] = None,
        caller: Optional[str] = None,
        interval: float = 5.0,
        batch_size: int = 100,
    ):
        """Initialize the prover.

        Args:
            l1: Ledger receiving the proofs
            l2: Ledger whose Withdraw events are proven
            attester_private_key: Key signing attestations (None submits empty proofs)
            caller: Account submitting `prove` (defaults to the attester)
            interval: Seconds between proving rounds
            batch_size: Maximum withdrawals per proof
        """
        self.l1 = l1
        self.l2 = l2
        self.interval = interval
        self.batch_size = batch_size
        self.cursor = 0
        self._private_key: Optional[str] = None
        self._running = False

        if attester_private_key:
            from swapbridge.crypto import decrypt_secret

            self._private_key = decrypt_secret(attester_private_key)
            caller = caller or Account.from_key(self._private_key).address

        if not caller:
            raise ValueError("WithdrawalProver needs a caller or an attester key")
        self.caller = caller

    def build_proof(self, message_hashes: list[str]) -> bytes:
        if self._private_key is None:
            return b""
        return build_attestation(message_hashes, self._private_key)

    async def prove_once(self) -> Optional[Receipt]:
        """Prove the next batch of unproven withdrawals.

        Returns:
            Receipt of the prove call, or None if there was nothing to prove
        """
        events = await self.l2.get_events(names=["Withdraw"], after=self.cursor, limit=self.batch_size)
        if not events:
            return None

        hashes = []
        for event in events:
            if not await self.l1.is_verified(event.message_hash):
                hashes.append(event.message_hash)

        last_sequence = events[-1].sequence
        if not hashes:
            self.cursor = last_sequence
            return None

        try:
            receipt = await self.l1.prove(self.caller, self.build_proof(hashes), hashes)
        except BridgeError as e:
            logger.error(f"Proving {len(hashes)} withdrawals failed: {e}")
            return None

        self.cursor = last_sequence
        logger.info(f"Proved {len(hashes)} withdrawals on L1 in block {receipt.block_number}")
        return receipt

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        logger.info(f"Starting withdrawal prover (interval: {self.interval}s)")
        self._running = True
        while self._running and not (stop_event and stop_event.is_set()):
            try:
                await self.prove_once()
            except Exception as e:
                logger.error(f"Prover error: {e}")
            await asyncio.sleep(self.interval)

    def stop(self) -> None:
        self._running = False
