"""Off-ledger relayer: L1 monitor, L2 sequencer and withdrawal prover."""

from swapbridge.relayer.monitor import Monitor
from swapbridge.relayer.prover import WithdrawalProver
from swapbridge.relayer.sequencer import Sequencer

__all__ = ["Monitor", "Sequencer", "WithdrawalProver"]
