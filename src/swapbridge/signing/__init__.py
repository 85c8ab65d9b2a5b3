"""Preconfirmation signing services.

- LocalSigner: sequencer key held in memory
- typed_data: EIP-712 payload construction and signer recovery
"""

from swapbridge.signing.base import (
    KeyNotFoundError,
    SignatureResult,
    SignerBackend,
    SigningError,
)
from swapbridge.signing.factory import get_signer
from swapbridge.signing.local import LocalSigner
from swapbridge.signing.typed_data import (
    SigningDomain,
    recover_preconfirmation_signer,
)

__all__ = [
    "KeyNotFoundError",
    "SignatureResult",
    "SignerBackend",
    "SigningError",
    "SigningDomain",
    "LocalSigner",
    "get_signer",
    "recover_preconfirmation_signer",
]
