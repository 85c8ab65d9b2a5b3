"""Withdrawal proof verification.

The L1 ledger treats proof verification as an injected predicate over
(opaque proof, claimed withdrawal hashes). Two implementations:

- AcceptAllVerifier: accepts everything. Development only; refused when
  running in production.
- AttestationVerifier: the proof is an EIP-191 signature by a trusted
  attester over keccak(concat(hashes)), binding the exact ordered batch.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from eth_account import Account
from eth_account.messages import encode_defunct
from hexbytes import HexBytes
from web3 import Web3

from swapbridge.codec import normalize_address

logger = logging.getLogger(__name__)


def batch_digest(message_hashes: Sequence[str]) -> bytes:
    """Digest committing to an ordered batch of withdrawal hashes."""
    return Web3.keccak(b"".join(bytes(HexBytes(h)) for h in message_hashes))


def build_attestation(message_hashes: Sequence[str], private_key: str) -> bytes:
    """Attestation proof for a batch, signed by the attester key."""
    signed = Account.sign_message(encode_defunct(primitive=batch_digest(message_hashes)), private_key)
    return bytes(signed.signature)


class ProofVerifier(ABC):
    """Predicate deciding whether a withdrawal batch is valid."""

    name = "verifier"

    @abstractmethod
    async def verify(self, proof: bytes, message_hashes: Sequence[str]) -> bool:
        """Return True if the proof attests every hash in the batch."""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class AcceptAllVerifier(ProofVerifier):
    """Accepts every proof. Never use where withdrawals carry real value."""

    name = "accept_all"

    async def verify(self, proof: bytes, message_hashes: Sequence[str]) -> bool:
        logger.warning(f"Accepting unverified proof for {len(message_hashes)} withdrawals")
        return True


class AttestationVerifier(ProofVerifier):
    """Accepts proofs signed by one trusted attester."""

    name = "attestation"

    def __init__(self, attester: str):
        self.attester = normalize_address(attester)

    async def verify(self, proof: bytes, message_hashes: Sequence[str]) -> bool:
        if not proof:
            return False
        try:
            signer = Account.recover_message(
                encode_defunct(primitive=batch_digest(message_hashes)),
                signature=HexBytes(proof),
            )
        except Exception as e:
            logger.warning(f"Malformed withdrawal attestation: {e}")
            return False
        return signer == self.attester

    def __repr__(self) -> str:
        return f"AttestationVerifier(attester={self.attester})"


def get_verifier(
    kind: Optional[str] = None,
    attester: Optional[str] = None,
    production: Optional[bool] = None,
) -> ProofVerifier:
    """Build the configured proof verifier.

    Raises:
        RuntimeError: If the accept-all verifier is requested in production
        ValueError: If the verifier kind is unknown or misconfigured
    """
    if kind is None or production is None or (kind == "attestation" and attester is None):
        from swapbridge.config import get_settings

        settings = get_settings()
        kind = kind or settings.proof_verifier
        attester = attester or settings.attester_address
        production = settings.is_production if production is None else production

    if kind == AcceptAllVerifier.name:
        if production:
            raise RuntimeError("accept_all proof verifier is not allowed in production")
        return AcceptAllVerifier()

    if kind == AttestationVerifier.name:
        if not attester:
            raise ValueError("attestation verifier requires ATTESTER_ADDRESS")
        return AttestationVerifier(attester)

    raise ValueError(f"Unknown proof verifier: {kind}")
