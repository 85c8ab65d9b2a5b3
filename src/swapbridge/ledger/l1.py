"""L1 ledger: origin of deposits and swap requests, destination of withdrawals."""

import logging
from typing import Sequence, Union

from hexbytes import HexBytes

from swapbridge import codec
from swapbridge.codec import NATIVE_TOKEN, is_zero_address, normalize_address
from swapbridge.errors import AuthorizationError, ReplayError, StateError, ValidationError
from swapbridge.ledger.base import Ledger, Receipt
from swapbridge.ledger.database import LedgerDatabase
from swapbridge.proofs import ProofVerifier

logger = logging.getLogger(__name__)


class L1Ledger(Ledger):
    """Custodies deposited and swapped ETH; pays out proven withdrawals once."""

    name = "l1"

    def __init__(
        self,
        db: LedgerDatabase,
        address: str,
        verifier: ProofVerifier,
        clock=None,
    ):
        super().__init__(db, address, clock)
        self.verifier = verifier

    async def deposit(self, caller: str, value: int) -> Receipt:
        """Custody `value` and emit a Deposit message for L2."""
        async with self.transaction("deposit", caller, value) as tx:
            if value == 0:
                raise ValidationError("Zero deposit amount")

            nonce = await tx.repo.use_nonce(tx.caller)
            message_hash = codec.deposit_hash(tx.caller, value, nonce)
            await tx.emit(
                "Deposit",
                message_hash=message_hash,
                user=tx.caller,
                amount=value,
                nonce=nonce,
            )

        logger.info(f"Deposit of {value} by {tx.caller} (nonce {nonce}): {message_hash}")
        return tx.receipt

    async def request_swap(
        self,
        caller: str,
        value: int,
        expiry: int,
        counterparty: str,
        token: str,
        expected_token_amount: int,
    ) -> Receipt:
        """Lock `value` ETH against `expected_token_amount` of `token` on L2.

        A zero counterparty lets anyone fill the swap.
        """
        counterparty = normalize_address(counterparty)
        token = normalize_address(token)

        async with self.transaction("request_swap", caller, value) as tx:
            if value == 0:
                raise ValidationError("Zero swap amount")
            if expiry <= tx.timestamp:
                raise ValidationError("Expiry must be in the future")
            if expiry > codec.UINT64_MAX:
                raise ValidationError("Expiry out of range")
            if is_zero_address(token):
                raise ValidationError("Invalid token address")
            if expected_token_amount == 0:
                raise ValidationError("Zero expected token amount")
            if counterparty == tx.caller:
                raise ValidationError("Cannot swap with yourself")

            nonce = await tx.repo.use_nonce(tx.caller)
            message_hash = codec.swap_request_hash(
                tx.caller, value, counterparty, token, expected_token_amount, nonce, expiry
            )
            await tx.emit(
                "RequestSwap",
                message_hash=message_hash,
                user_a=tx.caller,
                eth_amount=value,
                user_b=counterparty,
                token=token,
                expected_token_amount=expected_token_amount,
                nonce=nonce,
                expiry=expiry,
            )

        logger.info(
            f"Swap requested by {tx.caller}: {value} wei for {expected_token_amount} of {token} "
            f"with {counterparty}, expiry {expiry}: {message_hash}"
        )
        return tx.receipt

    async def prove(
        self,
        caller: str,
        proof: Union[bytes, str],
        withdrawal_hashes: Sequence[str],
    ) -> Receipt:
        """Register a batch of withdrawal hashes as verified, all or nothing."""
        proof = bytes(HexBytes(proof)) if proof else b""
        hashes = [codec.normalize_hash(h) for h in withdrawal_hashes]

        async with self.transaction("prove", caller) as tx:
            if not hashes:
                raise ValidationError("Empty withdrawal batch")
            if not await self.verifier.verify(proof, hashes):
                raise AuthorizationError("Invalid proof")

            for message_hash in hashes:
                await tx.repo.mark_verified(message_hash, tx.block_number)
                await tx.emit("WithdrawalVerified", message_hash=message_hash)

        logger.info(f"Verified {len(hashes)} withdrawals in block {tx.block_number}")
        return tx.receipt

    async def complete_withdraw(
        self,
        caller: str,
        user: str,
        token: str,
        amount: int,
        nonce: int,
        withdrawal_hash: str,
    ) -> Receipt:
        """Pay out a verified withdrawal exactly once."""
        user = normalize_address(user)
        token = normalize_address(token)
        withdrawal_hash = codec.normalize_hash(withdrawal_hash)

        async with self.transaction("complete_withdraw", caller) as tx:
            if is_zero_address(user):
                raise ValidationError("Invalid user address")
            if amount == 0:
                raise ValidationError("Zero withdraw amount")
            if not await tx.repo.is_verified(withdrawal_hash):
                raise StateError("Withdrawal not verified")
            if await tx.repo.is_claimed(withdrawal_hash):
                raise ReplayError("Withdrawal already claimed")
            if codec.withdrawal_hash(user, token, amount, nonce) != withdrawal_hash:
                raise ValidationError("Invalid withdrawal parameters")

            await tx.repo.mark_claimed(withdrawal_hash, user, token, amount, nonce, tx.block_number)

            if token == NATIVE_TOKEN:
                await self.pay_native(tx, user, amount)
            else:
                await self.release_token(tx, token, user, amount)

            await tx.emit(
                "WithdrawalCompleted",
                message_hash=withdrawal_hash,
                user=user,
                token=token,
                amount=amount,
                nonce=nonce,
            )

        logger.info(f"Withdrawal {withdrawal_hash} paid {amount} of {token} to {user}")
        return tx.receipt

    # Views
    async def is_verified(self, withdrawal_hash: str) -> bool:
        async with self.reading() as repo:
            return await repo.is_verified(codec.normalize_hash(withdrawal_hash))

    async def is_claimed(self, withdrawal_hash: str) -> bool:
        async with self.reading() as repo:
            return await repo.is_claimed(codec.normalize_hash(withdrawal_hash))
