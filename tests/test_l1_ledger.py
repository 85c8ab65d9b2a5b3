"""Tests for the L1 ledger."""

import pytest

from swapbridge import codec
from swapbridge.codec import NATIVE_TOKEN, ZERO_ADDRESS
from swapbridge.errors import (
    AuthorizationError,
    ReplayError,
    StateError,
    TransferError,
    ValidationError,
)
from swapbridge.ledger.database import LedgerDatabase
from swapbridge.ledger.l1 import L1Ledger
from swapbridge.proofs import AttestationVerifier, build_attestation

from conftest import ETHER, L1_ADDRESS, MEMORY_URL, START_TIME, TOKEN


class TestDeposit:
    """Tests for deposits."""

    @pytest.mark.asyncio
    async def test_deposit_emits_message(self, l1, alice):
        """Test deposit custodies value and emits a Deposit message."""
        receipt = await l1.deposit(alice.address, ETHER)

        event = receipt.find("Deposit")
        assert event.args["user"] == alice.address
        assert event.args["amount"] == ETHER
        assert event.args["nonce"] == 0
        assert event.message_hash == codec.deposit_hash(alice.address, ETHER, 0)

        assert await l1.balance_of(alice.address) == 99 * ETHER
        assert await l1.balance_of(l1.address) == ETHER

    @pytest.mark.asyncio
    async def test_nonce_increments_per_message(self, l1, alice):
        """Test each originated message consumes exactly one nonce."""
        await l1.deposit(alice.address, 1)
        await l1.deposit(alice.address, 2)
        await l1.request_swap(alice.address, 3, START_TIME + 60, ZERO_ADDRESS, TOKEN, 10)

        assert await l1.user_nonce(alice.address) == 3
        nonces = [e.args["nonce"] for e in await l1.get_events(["Deposit", "RequestSwap"])]
        assert nonces == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_zero_deposit(self, l1, alice):
        """Test zero deposit is rejected without state change."""
        with pytest.raises(ValidationError, match="Zero deposit amount"):
            await l1.deposit(alice.address, 0)

        assert await l1.user_nonce(alice.address) == 0
        assert await l1.get_events() == []

    @pytest.mark.asyncio
    async def test_deposit_more_than_balance(self, l1, alice):
        """Test a caller cannot attach value it does not hold."""
        with pytest.raises(TransferError, match="Insufficient balance"):
            await l1.deposit(alice.address, 101 * ETHER)

        assert await l1.balance_of(alice.address) == 100 * ETHER

    @pytest.mark.asyncio
    async def test_blocks_advance(self, l1, alice, clock):
        """Test every call produces a new block at the clock's time."""
        first = await l1.deposit(alice.address, 1)
        clock.advance(12)
        second = await l1.deposit(alice.address, 1)

        assert second.block_number == first.block_number + 1
        assert second.timestamp == first.timestamp + 12


class TestRequestSwap:
    """Tests for swap requests."""

    @pytest.mark.asyncio
    async def test_request_swap(self, l1, alice, bob):
        """Test swap request emits all fields needed to rebuild its hash."""
        expiry = START_TIME + 3600
        receipt = await l1.request_swap(alice.address, ETHER, expiry, bob.address, TOKEN, 1000)

        event = receipt.find("RequestSwap")
        swap = codec.SwapRequestMessage.from_event(event.args)
        assert swap.user_a == alice.address
        assert swap.user_b == bob.address
        assert swap.expiry == expiry
        assert swap.message_hash == event.message_hash
        assert await l1.balance_of(l1.address) == ETHER

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "value,expiry,token,amount,match",
        [
            (0, START_TIME + 60, TOKEN, 10, "Zero swap amount"),
            (ETHER, START_TIME, TOKEN, 10, "Expiry must be in the future"),
            (ETHER, 2**64, TOKEN, 10, "Expiry out of range"),
            (ETHER, START_TIME + 60, ZERO_ADDRESS, 10, "Invalid token address"),
            (ETHER, START_TIME + 60, TOKEN, 0, "Zero expected token amount"),
            (ETHER, START_TIME + 60, TOKEN, -5, "out of range"),
            (ETHER, START_TIME + 60, TOKEN, 2**256, "out of range"),
        ],
    )
    async def test_invalid_requests(self, l1, alice, bob, value, expiry, token, amount, match):
        """Test malformed swap requests are rejected."""
        with pytest.raises(ValidationError, match=match):
            await l1.request_swap(alice.address, value, expiry, bob.address, token, amount)

        assert await l1.user_nonce(alice.address) == 0

    @pytest.mark.asyncio
    async def test_max_expiry_relays_to_l2(self, l1, l2, preconfirm, signer, alice, bob):
        """Test a swap expiring at the uint64 limit can be opened on L2."""
        receipt = await l1.request_swap(alice.address, ETHER, codec.UINT64_MAX, bob.address, TOKEN, 10)
        swap = codec.SwapRequestMessage.from_event(receipt.find("RequestSwap").args)

        await preconfirm(swap.message_hash)
        await l2.complete_request_swap(signer.address, ETHER, **swap.as_call_args())

        assert (await l2.get_swap(swap.message_hash)).expiry == codec.UINT64_MAX

    @pytest.mark.asyncio
    async def test_self_swap(self, l1, alice):
        """Test a user cannot name themselves as counterparty."""
        with pytest.raises(ValidationError, match="Cannot swap with yourself"):
            await l1.request_swap(alice.address, ETHER, START_TIME + 60, alice.address, TOKEN, 10)


class TestWithdrawals:
    """Tests for prove and complete_withdraw."""

    @pytest.mark.asyncio
    async def test_native_withdrawal_pays_once(self, l1, alice, bob):
        """Test a verified native withdrawal pays out exactly once."""
        await l1.deposit(bob.address, 5 * ETHER)
        withdrawal = codec.withdrawal_hash(alice.address, NATIVE_TOKEN, ETHER, 0)
        await l1.prove(bob.address, b"", [withdrawal])

        receipt = await l1.complete_withdraw(bob.address, alice.address, NATIVE_TOKEN, ETHER, 0, withdrawal)

        assert receipt.find("WithdrawalCompleted").args["amount"] == ETHER
        assert await l1.balance_of(alice.address) == 101 * ETHER
        assert await l1.is_claimed(withdrawal)

        with pytest.raises(ReplayError, match="Withdrawal already claimed"):
            await l1.complete_withdraw(alice.address, alice.address, NATIVE_TOKEN, ETHER, 0, withdrawal)
        assert await l1.balance_of(alice.address) == 101 * ETHER

    @pytest.mark.asyncio
    async def test_token_withdrawal_is_minted(self, l1, alice):
        """Test token withdrawals release tokens the ledger does not hold."""
        withdrawal = codec.withdrawal_hash(alice.address, TOKEN, 1000, 0)
        await l1.prove(alice.address, b"", [withdrawal])

        await l1.complete_withdraw(alice.address, alice.address, TOKEN, 1000, 0, withdrawal)

        assert await l1.balance_of(alice.address, TOKEN) == 1000

    @pytest.mark.asyncio
    async def test_parameter_mismatch(self, l1, alice):
        """Test claiming with amount+1 fails even though the withdrawal is verified."""
        withdrawal = codec.withdrawal_hash(alice.address, NATIVE_TOKEN, ETHER, 0)
        await l1.prove(alice.address, b"", [withdrawal])

        with pytest.raises(ValidationError, match="Invalid withdrawal parameters"):
            await l1.complete_withdraw(alice.address, alice.address, NATIVE_TOKEN, ETHER + 1, 0, withdrawal)
        assert not await l1.is_claimed(withdrawal)

    @pytest.mark.asyncio
    async def test_unverified(self, l1, alice):
        """Test an unproven withdrawal cannot be claimed."""
        withdrawal = codec.withdrawal_hash(alice.address, NATIVE_TOKEN, ETHER, 0)

        with pytest.raises(StateError, match="Withdrawal not verified"):
            await l1.complete_withdraw(alice.address, alice.address, NATIVE_TOKEN, ETHER, 0, withdrawal)

    @pytest.mark.asyncio
    async def test_invalid_claims(self, l1, alice):
        """Test zero user and zero amount are rejected."""
        withdrawal = codec.withdrawal_hash(alice.address, NATIVE_TOKEN, ETHER, 0)

        with pytest.raises(ValidationError, match="Invalid user address"):
            await l1.complete_withdraw(alice.address, ZERO_ADDRESS, NATIVE_TOKEN, ETHER, 0, withdrawal)
        with pytest.raises(ValidationError, match="Zero withdraw amount"):
            await l1.complete_withdraw(alice.address, alice.address, NATIVE_TOKEN, 0, 0, withdrawal)

    @pytest.mark.asyncio
    async def test_insufficient_custody_rolls_back(self, l1, alice):
        """Test a failed payout leaves the withdrawal unclaimed."""
        withdrawal = codec.withdrawal_hash(alice.address, NATIVE_TOKEN, ETHER, 0)
        await l1.prove(alice.address, b"", [withdrawal])

        with pytest.raises(TransferError):
            await l1.complete_withdraw(alice.address, alice.address, NATIVE_TOKEN, ETHER, 0, withdrawal)

        assert not await l1.is_claimed(withdrawal)
        assert await l1.get_events(["WithdrawalCompleted"]) == []

    @pytest.mark.asyncio
    async def test_prove_rejects_empty_batch(self, l1, alice):
        """Test proving nothing is an error."""
        with pytest.raises(ValidationError, match="Empty withdrawal batch"):
            await l1.prove(alice.address, b"", [])


class TestAttestedProofs:
    """Tests for L1 with a real proof verifier."""

    @pytest.mark.asyncio
    async def test_attestation_required(self, clock, alice, bob):
        """Test only the attester's signature verifies a batch, atomically."""
        ledger = L1Ledger(
            LedgerDatabase(MEMORY_URL),
            L1_ADDRESS,
            verifier=AttestationVerifier(bob.address),
            clock=clock,
        )
        await ledger.init()
        try:
            hashes = [
                codec.withdrawal_hash(alice.address, NATIVE_TOKEN, 1, 0),
                codec.withdrawal_hash(alice.address, NATIVE_TOKEN, 2, 1),
            ]

            with pytest.raises(AuthorizationError, match="Invalid proof"):
                await ledger.prove(alice.address, build_attestation(hashes, alice.key), hashes)
            assert not await ledger.is_verified(hashes[0])

            receipt = await ledger.prove(alice.address, build_attestation(hashes, bob.key), hashes)
            assert len(receipt.events_named("WithdrawalVerified")) == 2
            assert await ledger.is_verified(hashes[1])
        finally:
            await ledger.close()


class TestConstruction:
    """Tests for ledger construction."""

    def test_zero_address(self):
        """Test a ledger cannot live at the zero address."""
        with pytest.raises(ValidationError, match="Invalid ledger address"):
            L1Ledger(LedgerDatabase(MEMORY_URL), ZERO_ADDRESS, verifier=None)
