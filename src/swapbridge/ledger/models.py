"""SQLAlchemy models for ledger state.

Both ledgers share one schema; each ledger owns its own database, so L1-only
tables (withdrawal proofs and claims) stay empty on L2 and vice versa.
"""

from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, Index, String, types
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Uint256(types.TypeDecorator):
    """Unsigned 256-bit integer stored as a decimal string.

    SQLite numerics lose precision far below 2**256.
    """

    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value: Optional[int], dialect) -> Optional[str]:
        if value is None:
            return None
        if value < 0:
            raise ValueError(f"uint256 cannot be negative: {value}")
        return str(value)

    def process_result_value(self, value: Optional[str], dialect) -> Optional[int]:
        if value is None:
            return None
        return int(value)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class SwapStatus(str, Enum):
    """Lifecycle of a swap request on L2."""

    NOT_EXIST = "not_exist"
    OPEN = "open"          # Relayed from L1, ETH custodied on L2
    FILLED = "filled"      # Counterparty paid the tokens (terminal)
    EXPIRED = "expired"    # Cancelled after expiry, ETH returned (terminal)


class LedgerState(Base):
    """Single row of ledger-wide state."""

    __tablename__ = "ledger_state"

    id: Mapped[int] = mapped_column(primary_key=True)
    address: Mapped[str] = mapped_column(String(42), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, default=0)
    block_timestamp: Mapped[int] = mapped_column(BigInteger, default=0)
    sequencer: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)


class Balance(Base):
    """Balance of one asset held by one account."""

    __tablename__ = "balances"
    __table_args__ = (Index("ix_balances_account_asset", "account", "asset", unique=True),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account: Mapped[str] = mapped_column(String(42), nullable=False)
    asset: Mapped[str] = mapped_column(String(42), nullable=False)  # NATIVE_TOKEN or token address
    amount: Mapped[int] = mapped_column(Uint256, default=0)


class Allowance(Base):
    """Token amount an owner lets a spender pull."""

    __tablename__ = "allowances"
    __table_args__ = (
        Index("ix_allowances_owner_spender_token", "owner", "spender", "token", unique=True),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    owner: Mapped[str] = mapped_column(String(42), nullable=False)
    spender: Mapped[str] = mapped_column(String(42), nullable=False)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[int] = mapped_column(Uint256, default=0)


class UserNonce(Base):
    """Per-user outbound message counter."""

    __tablename__ = "user_nonces"

    user: Mapped[str] = mapped_column(String(42), primary_key=True)
    nonce: Mapped[int] = mapped_column(BigInteger, default=0)


class ProcessedMessage(Base):
    """Inbound message executed on L2; written once."""

    __tablename__ = "processed_messages"

    message_hash: Mapped[str] = mapped_column(String(66), primary_key=True)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)


class PreconfirmedMessage(Base):
    """Message hash carrying a verified sequencer signature."""

    __tablename__ = "preconfirmed_messages"

    message_hash: Mapped[str] = mapped_column(String(66), primary_key=True)
    signer: Mapped[str] = mapped_column(String(42), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)


class Swap(Base):
    """Swap request relayed to L2, keyed by its message hash."""

    __tablename__ = "swaps"

    message_hash: Mapped[str] = mapped_column(String(66), primary_key=True)
    user_a: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    eth_amount: Mapped[int] = mapped_column(Uint256, nullable=False)
    user_b: Mapped[str] = mapped_column(String(42), nullable=False)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    expected_token_amount: Mapped[int] = mapped_column(Uint256, nullable=False)
    nonce: Mapped[int] = mapped_column(Uint256, nullable=False)
    # uint64 on the wire; wider than a signed SQLite INTEGER
    expiry: Mapped[int] = mapped_column(Uint256, nullable=False)
    status: Mapped[SwapStatus] = mapped_column(String(20), default=SwapStatus.OPEN, nullable=False)
    opened_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    resolved_block: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)


class VerifiedWithdrawal(Base):
    """Withdrawal message accepted by the proof verifier (L1)."""

    __tablename__ = "verified_withdrawals"

    message_hash: Mapped[str] = mapped_column(String(66), primary_key=True)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)


class ClaimedWithdrawal(Base):
    """Withdrawal message paid out on L1; irreversible."""

    __tablename__ = "claimed_withdrawals"

    message_hash: Mapped[str] = mapped_column(String(66), primary_key=True)
    user: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[int] = mapped_column(Uint256, nullable=False)
    nonce: Mapped[int] = mapped_column(Uint256, nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)


class LedgerEvent(Base):
    """Append-only event log; sequence orders events across blocks."""

    __tablename__ = "events"

    sequence: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    log_index: Mapped[int] = mapped_column(default=0)
    tx_hash: Mapped[str] = mapped_column(String(66), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    message_hash: Mapped[Optional[str]] = mapped_column(String(66), nullable=True, index=True)
    args: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
