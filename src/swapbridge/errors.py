"""Ledger error taxonomy.

Every failing ledger call raises one of these and leaves the ledger exactly
as it was before the call.
"""


class BridgeError(Exception):
    """Base class for all ledger call failures."""

    category = "bridge"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(BridgeError):
    """Zero amounts, zero addresses, self-swaps, bad expiry, length mismatches."""

    category = "validation"


class ReplayError(BridgeError):
    """Message already processed or withdrawal already claimed."""

    category = "replay"


class AuthorizationError(BridgeError):
    """Wrong counterparty, wrong signer, wrong sequencer, rejected proof."""

    category = "authorization"


class StateError(BridgeError):
    """Requested transition is not valid from the current state."""

    category = "state"


class ReentrancyError(StateError):
    """A ledger was called again from inside one of its own calls."""


class TransferError(BridgeError):
    """Underlying value or token movement failed."""

    category = "transfer"
