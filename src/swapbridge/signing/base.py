"""Base interfaces for preconfirmation signing.

Signing flow:
1. Sequencer derives the message hash of a pending L1 message
2. Signer produces an EIP-712 signature over it (key never leaves the backend)
3. Sequencer submits (hash, signature) to the L2 ledger's preconfirm
4. L2 ledger recovers the signer and checks it holds the sequencer role
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from swapbridge.signing.typed_data import SigningDomain

logger = logging.getLogger(__name__)


class SignerType(str, Enum):
    """Type of signing backend."""
    LOCAL = "local"           # Private key in memory


@dataclass
class SignatureResult:
    """Result of signing operation.

    Attributes:
        success: Whether signing succeeded
        signature: 65-byte r || s || v signature as 0x-prefixed hex
        v: Recovery parameter
        r: R component of signature (hex)
        s: S component of signature (hex)
        signer: Address that produced the signature
        error: Error message if signing failed
    """
    success: bool
    signature: Optional[str] = None
    v: Optional[int] = None
    r: Optional[str] = None
    s: Optional[str] = None
    signer: Optional[str] = None
    error: Optional[str] = None


class SignerBackend(ABC):
    """Abstract base class for preconfirmation signing backends.

    Implementations should NEVER expose raw private keys.
    """

    def __init__(self, signer_type: SignerType, domain: SigningDomain):
        self.signer_type = signer_type
        self.domain = domain

    @property
    @abstractmethod
    def address(self) -> str:
        """Address whose signatures this backend produces."""
        pass

    @abstractmethod
    async def sign_preconfirmation(self, message_hash: str) -> SignatureResult:
        """Sign a preconfirmation for one message hash.

        Args:
            message_hash: 32-byte message hash as 0x-prefixed hex

        Returns:
            SignatureResult with signature components
        """
        pass

    async def health_check(self) -> bool:
        """Check if the signing backend is available."""
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.signer_type.value})"


class SigningError(Exception):
    """Exception raised when signing fails."""
    pass


class KeyNotFoundError(SigningError):
    """Exception raised when signing key is not found."""
    pass
