"""L2 ledger: executes preconfirmed L1 messages and hosts the swap state machine.

Swap lifecycle, keyed by the SwapRequest message hash:

    NotExist --complete_request_swap--> Open
    Open --fill_swap (time <= expiry)--> Filled      (terminal)
    Open --cancel_expired_swap (time > expiry)--> Expired   (terminal)
"""

import logging
from typing import Any, Optional, Sequence, Union

from swapbridge import codec
from swapbridge.codec import NATIVE_TOKEN, is_zero_address, normalize_address
from swapbridge.errors import (
    AuthorizationError,
    ReplayError,
    StateError,
    ValidationError,
)
from swapbridge.ledger.base import CallContext, Ledger, Receipt
from swapbridge.ledger.database import LedgerDatabase
from swapbridge.ledger.models import Swap, SwapStatus
from swapbridge.signing.typed_data import SigningDomain, recover_preconfirmation_signer

logger = logging.getLogger(__name__)


class L2Ledger(Ledger):
    """Credits deposits, runs swaps, and emits withdrawals back to L1."""

    name = "l2"

    def __init__(
        self,
        db: LedgerDatabase,
        address: str,
        l1_ledger: str,
        sequencer: str,
        chain_id: int,
        domain_name: str = "L2Bridge",
        domain_version: str = "1",
        enforce_relay_caller: bool = True,
        clock=None,
    ):
        super().__init__(db, address, clock)
        if is_zero_address(l1_ledger):
            raise ValidationError("Invalid L1 ledger address")
        if is_zero_address(sequencer):
            raise ValidationError("Invalid sequencer address")
        self.l1_ledger = normalize_address(l1_ledger)
        self.initial_sequencer = normalize_address(sequencer)
        self.domain = SigningDomain(
            name=domain_name,
            version=domain_version,
            chain_id=chain_id,
            verifying_contract=self.address,
        )
        self.enforce_relay_caller = enforce_relay_caller

    def _initial_state(self) -> dict[str, Any]:
        return {"sequencer": self.initial_sequencer}

    async def _current_sequencer(self, tx: CallContext) -> str:
        state = await tx.repo.get_state()
        return state.sequencer

    async def _require_relay_caller(self, tx: CallContext) -> None:
        if not self.enforce_relay_caller:
            return
        if tx.caller not in (self.l1_ledger, await self._current_sequencer(tx)):
            raise AuthorizationError("Only the bridge relay can complete L1 messages")

    async def _require_executable(self, tx: CallContext, message_hash: str) -> None:
        if await tx.repo.is_processed(message_hash):
            raise ReplayError("Message already processed")
        if not await tx.repo.is_preconfirmed(message_hash):
            raise AuthorizationError("Message not preconfirmed")

    async def _require_open_swap(self, tx: CallContext, message_hash: str) -> Swap:
        swap = await tx.repo.get_swap(message_hash)
        if swap is None:
            raise StateError("Swap does not exist")
        if swap.status != SwapStatus.OPEN:
            raise StateError(f"Swap not open (status: {SwapStatus(swap.status).value})")
        return swap

    async def _emit_withdrawal(self, tx: CallContext, user: str, token: str, amount: int) -> str:
        """Credit a new withdrawal message to `user`, consuming their nonce."""
        nonce = await tx.repo.use_nonce(user)
        message_hash = codec.withdrawal_hash(user, token, amount, nonce)
        await tx.emit(
            "Withdraw",
            message_hash=message_hash,
            user=user,
            token=token,
            amount=amount,
            nonce=nonce,
        )
        return message_hash

    # Preconfirmation
    async def preconfirm(
        self,
        caller: str,
        message_hashes: Sequence[str],
        signatures: Sequence[Union[bytes, str]],
    ) -> Receipt:
        """Record sequencer preconfirmations; one bad signature rejects the batch."""
        if len(message_hashes) != len(signatures):
            raise ValidationError("Message hashes and signatures length mismatch")
        hashes = [codec.normalize_hash(h) for h in message_hashes]

        async with self.transaction("preconfirm", caller) as tx:
            sequencer = await self._current_sequencer(tx)
            for message_hash, signature in zip(hashes, signatures):
                signer = recover_preconfirmation_signer(message_hash, signature, self.domain)
                if signer != sequencer:
                    raise AuthorizationError(f"Invalid sequencer signature for {message_hash}")

            for message_hash in hashes:
                await tx.repo.mark_preconfirmed(message_hash, sequencer, tx.block_number)
                await tx.emit("MessagePreconfirmed", message_hash=message_hash, sequencer=sequencer)

        logger.debug(f"Preconfirmed {len(hashes)} messages in block {tx.block_number}")
        return tx.receipt

    # Inbound L1 messages
    async def complete_deposit(
        self,
        caller: str,
        value: int,
        user: str,
        amount: int,
        nonce: int,
    ) -> Receipt:
        """Credit a preconfirmed L1 deposit to `user`, funded by the attached value."""
        user = normalize_address(user)
        message_hash = codec.deposit_hash(user, amount, nonce)

        async with self.transaction("complete_deposit", caller, value) as tx:
            await self._require_relay_caller(tx)
            await self._require_executable(tx, message_hash)
            if value != amount:
                raise ValidationError("Attached value must equal deposit amount")

            await tx.repo.mark_processed(message_hash, tx.block_number)
            await self.pay_native(tx, user, amount)
            await tx.emit(
                "DepositCompleted",
                message_hash=message_hash,
                user=user,
                amount=amount,
                nonce=nonce,
            )

        logger.info(f"Deposit {message_hash} credited {amount} to {user}")
        return tx.receipt

    async def complete_request_swap(
        self,
        caller: str,
        value: int,
        user_a: str,
        eth_amount: int,
        user_b: str,
        token: str,
        expected_token_amount: int,
        nonce: int,
        expiry: int,
    ) -> Receipt:
        """Open a preconfirmed L1 swap request; its ETH stays in custody."""
        user_a = normalize_address(user_a)
        user_b = normalize_address(user_b)
        token = normalize_address(token)
        message_hash = codec.swap_request_hash(
            user_a, eth_amount, user_b, token, expected_token_amount, nonce, expiry
        )

        async with self.transaction("complete_request_swap", caller, value) as tx:
            await self._require_relay_caller(tx)
            await self._require_executable(tx, message_hash)
            if value != eth_amount:
                raise ValidationError("Attached value must equal swap ETH amount")

            await tx.repo.mark_processed(message_hash, tx.block_number)
            await tx.repo.open_swap(
                message_hash,
                tx.block_number,
                user_a=user_a,
                eth_amount=eth_amount,
                user_b=user_b,
                token=token,
                expected_token_amount=expected_token_amount,
                nonce=nonce,
                expiry=expiry,
            )
            await tx.emit(
                "RequestSwapCompleted",
                message_hash=message_hash,
                user_a=user_a,
                eth_amount=eth_amount,
                user_b=user_b,
                token=token,
                expected_token_amount=expected_token_amount,
                nonce=nonce,
                expiry=expiry,
            )

        logger.info(f"Swap {message_hash} open until {expiry}")
        return tx.receipt

    # Swap resolution
    async def fill_swap(
        self,
        caller: str,
        user_a: str,
        eth_amount: int,
        user_b: str,
        token: str,
        expected_token_amount: int,
        nonce: int,
        expiry: int,
    ) -> Receipt:
        """Pay the requested tokens, receive the custodied ETH.

        userA receives a Withdraw message for the tokens, claimable on L1.
        """
        user_a = normalize_address(user_a)
        user_b = normalize_address(user_b)
        token = normalize_address(token)
        message_hash = codec.swap_request_hash(
            user_a, eth_amount, user_b, token, expected_token_amount, nonce, expiry
        )

        async with self.transaction("fill_swap", caller) as tx:
            swap = await self._require_open_swap(tx, message_hash)
            if tx.timestamp > expiry:
                raise StateError("Swap expired")
            if not is_zero_address(user_b) and tx.caller != user_b:
                raise AuthorizationError("Not the swap counterparty")

            await tx.repo.resolve_swap(swap, SwapStatus.FILLED, tx.block_number, tx.caller)
            await self.pull_token(tx, token, tx.caller, expected_token_amount)
            await self.pay_native(tx, tx.caller, eth_amount)
            await tx.emit(
                "SwapFilled",
                message_hash=message_hash,
                user_a=user_a,
                eth_amount=eth_amount,
                user_b=user_b,
                token=token,
                expected_token_amount=expected_token_amount,
                nonce=nonce,
                expiry=expiry,
                filler=tx.caller,
            )
            withdrawal = await self._emit_withdrawal(tx, user_a, token, expected_token_amount)

        logger.info(f"Swap {message_hash} filled by {tx.caller}; withdrawal {withdrawal} for {user_a}")
        return tx.receipt

    async def cancel_expired_swap(
        self,
        caller: str,
        user_a: str,
        eth_amount: int,
        user_b: str,
        token: str,
        expected_token_amount: int,
        nonce: int,
        expiry: int,
    ) -> Receipt:
        """Expire an unfilled swap and return its ETH to userA through L1.

        Anyone may call this once the swap is past expiry.
        """
        user_a = normalize_address(user_a)
        user_b = normalize_address(user_b)
        token = normalize_address(token)
        message_hash = codec.swap_request_hash(
            user_a, eth_amount, user_b, token, expected_token_amount, nonce, expiry
        )

        async with self.transaction("cancel_expired_swap", caller) as tx:
            swap = await self._require_open_swap(tx, message_hash)
            if tx.timestamp <= expiry:
                raise StateError("Swap not expired")

            await tx.repo.resolve_swap(swap, SwapStatus.EXPIRED, tx.block_number, tx.caller)
            await tx.emit(
                "SwapCancelled",
                message_hash=message_hash,
                user_a=user_a,
                eth_amount=eth_amount,
                user_b=user_b,
                token=token,
                expected_token_amount=expected_token_amount,
                nonce=nonce,
                expiry=expiry,
            )
            withdrawal = await self._emit_withdrawal(tx, user_a, NATIVE_TOKEN, eth_amount)

        logger.info(f"Swap {message_hash} expired; withdrawal {withdrawal} returns {eth_amount} to {user_a}")
        return tx.receipt

    # Plain withdrawal
    async def withdraw(self, caller: str, value: int) -> Receipt:
        """Custody `value` and emit a Withdraw message claimable on L1."""
        async with self.transaction("withdraw", caller, value) as tx:
            if value == 0:
                raise ValidationError("Zero withdraw amount")
            withdrawal = await self._emit_withdrawal(tx, tx.caller, NATIVE_TOKEN, value)

        logger.info(f"Withdrawal {withdrawal} of {value} by {tx.caller}")
        return tx.receipt

    # Sequencer role
    async def transfer_sequencership(self, caller: str, new_sequencer: str) -> Receipt:
        new_sequencer = normalize_address(new_sequencer)

        async with self.transaction("transfer_sequencership", caller) as tx:
            current = await self._current_sequencer(tx)
            if tx.caller != current:
                raise AuthorizationError("Only the sequencer can transfer sequencership")
            if is_zero_address(new_sequencer):
                raise ValidationError("Invalid sequencer address")
            if new_sequencer == current:
                raise ValidationError("New sequencer is the current sequencer")

            await tx.repo.set_sequencer(new_sequencer)
            await tx.emit("SequencershipTransferred", previous=current, new=new_sequencer)

        logger.info(f"Sequencership transferred from {current} to {new_sequencer}")
        return tx.receipt

    # Views
    async def sequencer(self) -> str:
        async with self.reading() as repo:
            state = await repo.get_state()
            return state.sequencer

    async def is_processed(self, message_hash: str) -> bool:
        async with self.reading() as repo:
            return await repo.is_processed(codec.normalize_hash(message_hash))

    async def is_preconfirmed(self, message_hash: str) -> bool:
        async with self.reading() as repo:
            return await repo.is_preconfirmed(codec.normalize_hash(message_hash))

    async def swap_status(self, message_hash: str) -> SwapStatus:
        async with self.reading() as repo:
            swap = await repo.get_swap(codec.normalize_hash(message_hash))
            return SwapStatus(swap.status) if swap else SwapStatus.NOT_EXIST

    async def get_swap(self, message_hash: str) -> Optional[Swap]:
        async with self.reading() as repo:
            return await repo.get_swap(codec.normalize_hash(message_hash))

    async def open_swaps(self) -> list[Swap]:
        async with self.reading() as repo:
            return await repo.get_open_swaps()
