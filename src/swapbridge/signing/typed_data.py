"""EIP-712 preconfirmation payloads.

The sequencer signs a single-field struct, Preconfirmation(bytes32
messageHash), under a domain bound to the protocol name, version, chain id
and the L2 ledger's own address. A signature made for any other domain
recovers to a different address and is rejected.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from hexbytes import HexBytes

from swapbridge.codec import normalize_address

logger = logging.getLogger(__name__)

PRECONFIRMATION_TYPE = "Preconfirmation"

EIP712_DOMAIN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

PRECONFIRMATION_FIELDS = [
    {"name": "messageHash", "type": "bytes32"},
]


@dataclass(frozen=True)
class SigningDomain:
    """EIP-712 domain for preconfirmations."""

    name: str
    version: str
    chain_id: int
    verifying_contract: str

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": normalize_address(self.verifying_contract),
        }


def preconfirmation_typed_data(message_hash: str, domain: SigningDomain) -> dict:
    """Full EIP-712 document for a preconfirmation of one message hash."""
    return {
        "types": {
            "EIP712Domain": EIP712_DOMAIN_FIELDS,
            PRECONFIRMATION_TYPE: PRECONFIRMATION_FIELDS,
        },
        "primaryType": PRECONFIRMATION_TYPE,
        "domain": domain.as_dict(),
        "message": {"messageHash": HexBytes(message_hash)},
    }


def encode_preconfirmation(message_hash: str, domain: SigningDomain) -> SignableMessage:
    return encode_typed_data(full_message=preconfirmation_typed_data(message_hash, domain))


def recover_preconfirmation_signer(
    message_hash: str, signature: Union[bytes, str], domain: SigningDomain
) -> Optional[str]:
    """Recover the address that signed a preconfirmation.

    Returns None when the signature is malformed.
    """
    try:
        return Account.recover_message(
            encode_preconfirmation(message_hash, domain),
            signature=HexBytes(signature),
        )
    except Exception as e:
        logger.debug(f"Unrecoverable preconfirmation signature for {message_hash}: {e}")
        return None
