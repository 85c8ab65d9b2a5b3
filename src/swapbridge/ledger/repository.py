"""Repository for ledger state operations.

All methods run inside the caller's session; nothing here commits.
"""

from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from swapbridge.errors import TransferError, ValidationError
from swapbridge.ledger.models import (
    Allowance,
    Balance,
    ClaimedWithdrawal,
    LedgerEvent,
    LedgerState,
    PreconfirmedMessage,
    ProcessedMessage,
    Swap,
    SwapStatus,
    UserNonce,
    VerifiedWithdrawal,
)


class LedgerRepository:
    """Repository for all ledger-state database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Ledger state
    async def get_state(self) -> Optional[LedgerState]:
        """Get the ledger-wide state row."""
        result = await self.session.execute(select(LedgerState).where(LedgerState.id == 1))
        return result.scalar_one_or_none()

    async def create_state(self, address: str, sequencer: Optional[str] = None) -> LedgerState:
        state = LedgerState(
            id=1,
            address=address,
            block_number=0,
            block_timestamp=0,
            sequencer=sequencer,
        )
        self.session.add(state)
        await self.session.flush()
        return state

    async def advance_block(self, timestamp: int) -> LedgerState:
        """Open the next block at the given timestamp."""
        state = await self.get_state()
        if state is None:
            raise RuntimeError("Ledger state not initialized")
        state.block_number += 1
        state.block_timestamp = max(state.block_timestamp, timestamp)
        await self.session.flush()
        return state

    async def set_sequencer(self, sequencer: str) -> LedgerState:
        state = await self.get_state()
        state.sequencer = sequencer
        await self.session.flush()
        return state

    # Balance operations
    async def get_balance(self, account: str, asset: str) -> Optional[Balance]:
        """Get account balance for a specific asset."""
        stmt = select(Balance).where(Balance.account == account, Balance.asset == asset)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create_balance(self, account: str, asset: str) -> Balance:
        """Get or create a balance record for account/asset."""
        balance = await self.get_balance(account, asset)
        if balance is None:
            balance = Balance(account=account, asset=asset, amount=0)
            self.session.add(balance)
            await self.session.flush()
        return balance

    async def balance_of(self, account: str, asset: str) -> int:
        balance = await self.get_balance(account, asset)
        return balance.amount if balance else 0

    async def credit_balance(self, account: str, asset: str, amount: int) -> Balance:
        """Add amount to account balance."""
        balance = await self.get_or_create_balance(account, asset)
        balance.amount += amount
        await self.session.flush()
        return balance

    async def debit_balance(self, account: str, asset: str, amount: int) -> Balance:
        """Subtract amount from account balance. Raises TransferError if insufficient."""
        balance = await self.get_or_create_balance(account, asset)
        if balance.amount < amount:
            raise TransferError(
                f"Insufficient balance: {account} has {balance.amount} of {asset}, need {amount}"
            )
        balance.amount -= amount
        await self.session.flush()
        return balance

    async def set_balance(self, account: str, asset: str, amount: int) -> Balance:
        balance = await self.get_or_create_balance(account, asset)
        balance.amount = amount
        await self.session.flush()
        return balance

    async def move_balance(self, sender: str, recipient: str, asset: str, amount: int) -> None:
        """Move amount of asset between accounts."""
        if amount <= 0:
            raise ValidationError(f"Non-positive amount: {amount}")
        await self.debit_balance(sender, asset, amount)
        await self.credit_balance(recipient, asset, amount)

    # Allowance operations
    async def get_allowance(self, owner: str, spender: str, token: str) -> Optional[Allowance]:
        stmt = select(Allowance).where(
            Allowance.owner == owner,
            Allowance.spender == spender,
            Allowance.token == token,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def set_allowance(self, owner: str, spender: str, token: str, amount: int) -> Allowance:
        allowance = await self.get_allowance(owner, spender, token)
        if allowance is None:
            allowance = Allowance(owner=owner, spender=spender, token=token, amount=amount)
            self.session.add(allowance)
        else:
            allowance.amount = amount
        await self.session.flush()
        return allowance

    async def spend_allowance(self, owner: str, spender: str, token: str, amount: int) -> None:
        """Consume allowance. Raises TransferError if insufficient."""
        if amount <= 0:
            raise ValidationError(f"Non-positive amount: {amount}")
        allowance = await self.get_allowance(owner, spender, token)
        available = allowance.amount if allowance else 0
        if available < amount:
            raise TransferError(
                f"Insufficient allowance: {spender} may pull {available} of {token} "
                f"from {owner}, need {amount}"
            )
        allowance.amount -= amount
        await self.session.flush()

    # Nonce operations
    async def get_nonce(self, user: str) -> int:
        result = await self.session.execute(select(UserNonce).where(UserNonce.user == user))
        record = result.scalar_one_or_none()
        return record.nonce if record else 0

    async def use_nonce(self, user: str) -> int:
        """Return the user's current nonce and increment it by one."""
        result = await self.session.execute(select(UserNonce).where(UserNonce.user == user))
        record = result.scalar_one_or_none()
        if record is None:
            record = UserNonce(user=user, nonce=0)
            self.session.add(record)
        current = record.nonce
        record.nonce = current + 1
        await self.session.flush()
        return current

    # Inbound message flags (L2)
    async def is_processed(self, message_hash: str) -> bool:
        return await self.session.get(ProcessedMessage, message_hash) is not None

    async def mark_processed(self, message_hash: str, block_number: int) -> None:
        self.session.add(ProcessedMessage(message_hash=message_hash, block_number=block_number))
        await self.session.flush()

    async def is_preconfirmed(self, message_hash: str) -> bool:
        return await self.session.get(PreconfirmedMessage, message_hash) is not None

    async def mark_preconfirmed(self, message_hash: str, signer: str, block_number: int) -> None:
        """Record a preconfirmation; re-preconfirming a hash keeps the first record."""
        if await self.is_preconfirmed(message_hash):
            return
        self.session.add(
            PreconfirmedMessage(
                message_hash=message_hash,
                signer=signer,
                block_number=block_number,
            )
        )
        await self.session.flush()

    # Swap operations (L2)
    async def get_swap(self, message_hash: str) -> Optional[Swap]:
        return await self.session.get(Swap, message_hash)

    async def open_swap(self, message_hash: str, block_number: int, **fields: Any) -> Swap:
        swap = Swap(
            message_hash=message_hash,
            status=SwapStatus.OPEN,
            opened_block=block_number,
            **fields,
        )
        self.session.add(swap)
        await self.session.flush()
        return swap

    async def resolve_swap(
        self, swap: Swap, status: SwapStatus, block_number: int, resolved_by: str
    ) -> Swap:
        swap.status = status
        swap.resolved_block = block_number
        swap.resolved_by = resolved_by
        await self.session.flush()
        return swap

    async def get_open_swaps(self) -> list[Swap]:
        stmt = select(Swap).where(Swap.status == SwapStatus.OPEN)
        result = await self.session.execute(stmt)
        # expiry is stored as text, so order numerically here
        return sorted(result.scalars().all(), key=lambda swap: swap.expiry)

    # Withdrawal operations (L1)
    async def is_verified(self, message_hash: str) -> bool:
        return await self.session.get(VerifiedWithdrawal, message_hash) is not None

    async def mark_verified(self, message_hash: str, block_number: int) -> None:
        if await self.is_verified(message_hash):
            return
        self.session.add(VerifiedWithdrawal(message_hash=message_hash, block_number=block_number))
        await self.session.flush()

    async def is_claimed(self, message_hash: str) -> bool:
        return await self.session.get(ClaimedWithdrawal, message_hash) is not None

    async def mark_claimed(
        self,
        message_hash: str,
        user: str,
        token: str,
        amount: int,
        nonce: int,
        block_number: int,
    ) -> ClaimedWithdrawal:
        claim = ClaimedWithdrawal(
            message_hash=message_hash,
            user=user,
            token=token,
            amount=amount,
            nonce=nonce,
            block_number=block_number,
        )
        self.session.add(claim)
        await self.session.flush()
        return claim

    # Event log
    async def append_event(
        self,
        name: str,
        args: dict[str, Any],
        tx_hash: str,
        block_number: int,
        log_index: int,
        timestamp: int,
        message_hash: Optional[str] = None,
    ) -> LedgerEvent:
        event = LedgerEvent(
            name=name,
            args=args,
            tx_hash=tx_hash,
            block_number=block_number,
            log_index=log_index,
            timestamp=timestamp,
            message_hash=message_hash,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def get_events(
        self,
        names: Optional[Iterable[str]] = None,
        after: int = 0,
        limit: Optional[int] = None,
    ) -> list[LedgerEvent]:
        """Get events with sequence greater than `after`, oldest first."""
        stmt = select(LedgerEvent).where(LedgerEvent.sequence > after)
        if names is not None:
            stmt = stmt.where(LedgerEvent.name.in_(list(names)))
        stmt = stmt.order_by(LedgerEvent.sequence)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

