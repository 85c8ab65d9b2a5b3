"""Local signing backend.

Uses an in-memory private key for signing. Suitable for:
- Development/testing
- A single sequencer process holding its own key

WARNING: The private key is stored in memory.
"""

import logging
from typing import Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount

from swapbridge.signing.base import (
    KeyNotFoundError,
    SignatureResult,
    SignerBackend,
    SignerType,
)
from swapbridge.signing.typed_data import SigningDomain, encode_preconfirmation

logger = logging.getLogger(__name__)


class LocalSigner(SignerBackend):
    """Local signing backend using an in-memory private key.

    The key may be given Fernet-encrypted; it is decrypted with MASTER_KEY.
    """

    def __init__(self, private_key: Optional[str], domain: SigningDomain):
        super().__init__(SignerType.LOCAL, domain)
        self._account: Optional[LocalAccount] = None
        if private_key:
            self._load_key(private_key)

    def _load_key(self, private_key: str) -> None:
        from swapbridge.crypto import decrypt_secret

        self._account = Account.from_key(decrypt_secret(private_key))
        logger.info(f"Loaded sequencer key for {self._account.address}")

    def _get_account(self) -> LocalAccount:
        if self._account is None:
            raise KeyNotFoundError("No sequencer signing key configured")
        return self._account

    @property
    def address(self) -> str:
        return self._get_account().address

    async def sign_preconfirmation(self, message_hash: str) -> SignatureResult:
        """Sign a preconfirmation using the local private key."""
        try:
            account = self._get_account()
            signed = account.sign_message(encode_preconfirmation(message_hash, self.domain))
            return SignatureResult(
                success=True,
                signature="0x" + bytes(signed.signature).hex(),
                v=signed.v,
                r=hex(signed.r),
                s=hex(signed.s),
                signer=account.address,
            )

        except KeyNotFoundError as e:
            return SignatureResult(success=False, error=str(e))
        except Exception as e:
            logger.error(f"Local signing failed for {message_hash}: {e}")
            return SignatureResult(success=False, error=str(e))

    async def health_check(self) -> bool:
        """Check if a key is loaded."""
        return self._account is not None
