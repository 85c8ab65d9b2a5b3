"""Bridge relayer runner.

Runs the L1 monitor, the sequencer (with its fill watcher) and the
withdrawal prover against the configured ledgers.

Usage:
    python -m swapbridge.relayer.runner --interval 1

Environment variables:
    SEQUENCER_PRIVATE_KEY: Key holding the L2 sequencer role (hex, or Fernet encrypted)
    ATTESTER_PRIVATE_KEY: Key signing withdrawal attestations (optional)
    L1_DATABASE_URL / L2_DATABASE_URL: Ledger databases
"""

import argparse
import asyncio
import logging
import signal
from typing import Optional

from swapbridge.config import Settings, get_settings
from swapbridge.ledger.database import LedgerDatabase
from swapbridge.ledger.l1 import L1Ledger
from swapbridge.ledger.l2 import L2Ledger
from swapbridge.proofs import get_verifier
from swapbridge.relayer.monitor import Monitor
from swapbridge.relayer.prover import WithdrawalProver
from swapbridge.relayer.sequencer import Sequencer
from swapbridge.signing.factory import get_signer, get_signer_info

logger = logging.getLogger(__name__)


class Relayer:
    """Wires both ledgers and the relayer loops from settings."""

    def __init__(self, settings: Optional[Settings] = None, interval: Optional[float] = None):
        self.settings = settings or get_settings()
        self.signer = get_signer()
        self.l1 = L1Ledger(
            LedgerDatabase(self.settings.l1_database_url, echo=self.settings.debug),
            self.settings.l1_ledger_address,
            verifier=get_verifier(
                self.settings.proof_verifier,
                self.settings.attester_address,
                self.settings.is_production,
            ),
        )
        self.l2 = L2Ledger(
            LedgerDatabase(self.settings.l2_database_url, echo=self.settings.debug),
            self.settings.l2_ledger_address,
            l1_ledger=self.settings.l1_ledger_address,
            sequencer=self.signer.address,
            chain_id=self.settings.chain_id,
            domain_name=self.settings.domain_name,
            domain_version=self.settings.domain_version,
            enforce_relay_caller=self.settings.enforce_relay_caller,
        )
        self.monitor = Monitor(self.l1, interval=self.settings.monitor_interval)
        self.sequencer = Sequencer(
            self.l2,
            self.monitor,
            self.signer,
            interval=interval or self.settings.tick_interval,
            fill_watch_interval=self.settings.fill_watch_interval,
        )
        self.prover = WithdrawalProver(
            self.l1,
            self.l2,
            attester_private_key=self.settings.attester_private_key,
            caller=self.signer.address,
            interval=self.settings.prover_interval,
        )
        self._shutdown_event = asyncio.Event()

    async def init(self) -> None:
        await self.l1.init()
        await self.l2.init()
        logger.info(f"Signer: {await get_signer_info()}")

        sequencer = await self.l2.sequencer()
        if sequencer != self.signer.address:
            logger.warning(
                f"L2 sequencer role is held by {sequencer}, not this relayer ({self.signer.address})"
            )

    async def run_once(self) -> dict[str, int]:
        """Poll L1, relay one block, prune resolved swaps, prove withdrawals."""
        await self.monitor.poll_once()
        counts = await self.sequencer.produce_block()
        counts["pruned"] = await self.sequencer.watch_fills_once()
        receipt = await self.prover.prove_once()
        counts["proved"] = len(receipt.events_named("WithdrawalVerified")) if receipt else 0
        return counts

    async def start(self) -> None:
        """Run all loops until shutdown is requested."""
        logger.info("Starting bridge relayer...")
        logger.info(f"Environment: {self.settings.environment}")
        logger.debug(f"Settings: {self.settings.get_safe_dict()}")

        await self.init()

        tasks = [
            asyncio.create_task(self.monitor.run(self._shutdown_event)),
            asyncio.create_task(self.sequencer.run(self._shutdown_event)),
            asyncio.create_task(self.sequencer.run_fill_watcher(self._shutdown_event)),
            asyncio.create_task(self.prover.run(self._shutdown_event)),
        ]

        await self._shutdown_event.wait()

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        await self.close()

    async def close(self) -> None:
        logger.info("Cleaning up...")
        await self.l1.close()
        await self.l2.close()
        logger.info("Cleanup complete")

    def shutdown(self) -> None:
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()


async def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Run the bridge relayer")
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between sequencer ticks (default: TICK_INTERVAL)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one relay cycle and exit",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    relayer = Relayer(settings, interval=args.interval)

    if args.once:
        await relayer.init()
        try:
            counts = await relayer.run_once()
        finally:
            await relayer.close()
        print(
            f"Relayed {counts['deposits']} deposits, {counts['swaps']} swaps; "
            f"cancelled {counts['cancelled']} swaps; proved {counts['proved']} withdrawals"
        )
        return

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, relayer.shutdown)
    await relayer.start()


def cli() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
