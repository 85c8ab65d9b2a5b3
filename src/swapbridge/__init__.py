"""Two-ledger message-passing bridge with sequencer preconfirmations."""

__version__ = "0.1.0"
