"""Message codec shared by both ledgers and the relayer.

A message is identified by the keccak-256 of the ABI encoding of a fixed,
ordered tuple of fields. The field order and widths below are frozen for
CODEC_VERSION 1; changing either changes every hash ever recorded.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from eth_abi import encode
from eth_utils import to_checksum_address
from hexbytes import HexBytes
from web3 import Web3

from swapbridge.errors import ValidationError

CODEC_VERSION = 1

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Withdrawal messages use the zero address for the native asset.
NATIVE_TOKEN = ZERO_ADDRESS

UINT256_MAX = 2**256 - 1
UINT64_MAX = 2**64 - 1

DEPOSIT_TYPES = ("address", "uint256", "uint256")
SWAP_REQUEST_TYPES = (
    "address",
    "uint256",
    "address",
    "address",
    "uint256",
    "uint256",
    "uint64",
)
WITHDRAWAL_TYPES = ("address", "address", "uint256", "uint256")


def normalize_address(address: str) -> str:
    """Return the EIP-55 checksum form of an address."""
    return to_checksum_address(address)


def is_zero_address(address: str) -> bool:
    """Check whether an address is the zero address."""
    return int(address, 16) == 0


def check_uint(value: Any, bits: int = 256, name: str = "value") -> int:
    """Return value if it fits an unsigned integer of the given width.

    Raises:
        ValidationError: If the value is not an int or is out of range
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if value < 0 or value > 2**bits - 1:
        raise ValidationError(f"{name} out of range for uint{bits}: {value}")
    return value


def _hash(types: tuple[str, ...], values: list[Any]) -> str:
    for abi_type, value in zip(types, values):
        if abi_type.startswith("uint"):
            check_uint(value, int(abi_type[4:]))
    return "0x" + Web3.keccak(encode(list(types), values)).hex().removeprefix("0x")


def deposit_hash(user: str, amount: int, nonce: int) -> str:
    """Hash of a Deposit message."""
    return _hash(DEPOSIT_TYPES, [normalize_address(user), amount, nonce])


def swap_request_hash(
    user_a: str,
    eth_amount: int,
    user_b: str,
    token: str,
    expected_token_amount: int,
    nonce: int,
    expiry: int,
) -> str:
    """Hash of a SwapRequest message."""
    return _hash(
        SWAP_REQUEST_TYPES,
        [
            normalize_address(user_a),
            eth_amount,
            normalize_address(user_b),
            normalize_address(token),
            expected_token_amount,
            nonce,
            expiry,
        ],
    )


def withdrawal_hash(user: str, token: str, amount: int, nonce: int) -> str:
    """Hash of a Withdrawal message."""
    return _hash(
        WITHDRAWAL_TYPES,
        [normalize_address(user), normalize_address(token), amount, nonce],
    )


@dataclass(frozen=True)
class DepositMessage:
    """Deposit observed on L1, to be credited on L2."""

    user: str
    amount: int
    nonce: int

    @property
    def message_hash(self) -> str:
        return deposit_hash(self.user, self.amount, self.nonce)

    @classmethod
    def from_event(cls, args: Mapping[str, Any]) -> "DepositMessage":
        return cls(
            user=normalize_address(args["user"]),
            amount=int(args["amount"]),
            nonce=int(args["nonce"]),
        )


@dataclass(frozen=True)
class SwapRequestMessage:
    """ETH-for-token swap request originated on L1."""

    user_a: str
    eth_amount: int
    user_b: str
    token: str
    expected_token_amount: int
    nonce: int
    expiry: int

    @property
    def message_hash(self) -> str:
        return swap_request_hash(
            self.user_a,
            self.eth_amount,
            self.user_b,
            self.token,
            self.expected_token_amount,
            self.nonce,
            self.expiry,
        )

    @property
    def open_to_anyone(self) -> bool:
        return is_zero_address(self.user_b)

    def is_expired(self, now: int) -> bool:
        """A swap is expired once the clock has moved strictly past its expiry."""
        return self.expiry < now

    def as_call_args(self) -> dict[str, Any]:
        """Keyword arguments for the L2 swap operations."""
        return {
            "user_a": self.user_a,
            "eth_amount": self.eth_amount,
            "user_b": self.user_b,
            "token": self.token,
            "expected_token_amount": self.expected_token_amount,
            "nonce": self.nonce,
            "expiry": self.expiry,
        }

    @classmethod
    def from_event(cls, args: Mapping[str, Any]) -> "SwapRequestMessage":
        return cls(
            user_a=normalize_address(args["user_a"]),
            eth_amount=int(args["eth_amount"]),
            user_b=normalize_address(args["user_b"]),
            token=normalize_address(args["token"]),
            expected_token_amount=int(args["expected_token_amount"]),
            nonce=int(args["nonce"]),
            expiry=int(args["expiry"]),
        )


@dataclass(frozen=True)
class WithdrawalMessage:
    """Withdrawal emitted on L2, claimable on L1 once proven."""

    user: str
    token: str
    amount: int
    nonce: int

    @property
    def message_hash(self) -> str:
        return withdrawal_hash(self.user, self.token, self.amount, self.nonce)

    @property
    def is_native(self) -> bool:
        return is_zero_address(self.token)

    @classmethod
    def from_event(cls, args: Mapping[str, Any]) -> "WithdrawalMessage":
        return cls(
            user=normalize_address(args["user"]),
            token=normalize_address(args["token"]),
            amount=int(args["amount"]),
            nonce=int(args["nonce"]),
        )


def normalize_hash(message_hash: Optional[str]) -> str:
    """Return a message hash as 0x-prefixed lowercase hex.

    Raises:
        ValidationError: If the value is missing or not 32 bytes
    """
    if not message_hash:
        raise ValidationError("Missing message hash")
    raw = HexBytes(message_hash)
    if len(raw) != 32:
        raise ValidationError(f"Message hash must be 32 bytes, got {len(raw)}")
    return "0x" + bytes(raw).hex()
