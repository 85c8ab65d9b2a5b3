"""Pytest configuration and fixtures."""

import os

import pytest
import pytest_asyncio
from eth_account import Account

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["L1_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["L2_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "true"

from swapbridge.codec import SwapRequestMessage
from swapbridge.ledger.base import ManualClock
from swapbridge.ledger.database import LedgerDatabase
from swapbridge.ledger.l1 import L1Ledger
from swapbridge.ledger.l2 import L2Ledger
from swapbridge.proofs import AcceptAllVerifier
from swapbridge.signing.local import LocalSigner
from swapbridge.signing.typed_data import SigningDomain

MEMORY_URL = "sqlite+aiosqlite:///:memory:"
L1_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
L2_ADDRESS = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"
TOKEN = "0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0"
CHAIN_ID = 31337
START_TIME = 1_700_000_000
ETHER = 10**18


@pytest.fixture
def clock() -> ManualClock:
    """Clock shared by both ledgers."""
    return ManualClock(START_TIME)


@pytest.fixture
def domain() -> SigningDomain:
    return SigningDomain(
        name="L2Bridge",
        version="1",
        chain_id=CHAIN_ID,
        verifying_contract=L2_ADDRESS,
    )


@pytest.fixture
def sequencer_account():
    return Account.create()


@pytest.fixture
def signer(sequencer_account, domain) -> LocalSigner:
    """Signer holding the L2 sequencer key."""
    return LocalSigner(sequencer_account.key.hex(), domain)


@pytest.fixture
def alice():
    return Account.create()


@pytest.fixture
def bob():
    return Account.create()


@pytest.fixture
def carol():
    return Account.create()


@pytest_asyncio.fixture
async def l1(clock, alice, bob, carol):
    """In-memory L1 ledger with funded users."""
    ledger = L1Ledger(
        LedgerDatabase(MEMORY_URL),
        L1_ADDRESS,
        verifier=AcceptAllVerifier(),
        clock=clock,
    )
    await ledger.init()
    for account in (alice, bob, carol):
        await ledger.set_balance(account.address, 100 * ETHER)

    yield ledger

    await ledger.close()


@pytest_asyncio.fixture
async def l2(clock, sequencer_account):
    """In-memory L2 ledger whose sequencer can fund completions."""
    ledger = L2Ledger(
        LedgerDatabase(MEMORY_URL),
        L2_ADDRESS,
        l1_ledger=L1_ADDRESS,
        sequencer=sequencer_account.address,
        chain_id=CHAIN_ID,
        clock=clock,
    )
    await ledger.init()
    await ledger.set_balance(sequencer_account.address, 1000 * ETHER)

    yield ledger

    await ledger.close()


@pytest.fixture
def preconfirm(l2, signer):
    """Sign and submit a preconfirmation batch as the sequencer."""

    async def _preconfirm(*message_hashes: str):
        signatures = []
        for message_hash in message_hashes:
            result = await signer.sign_preconfirmation(message_hash)
            signatures.append(result.signature)
        return await l2.preconfirm(signer.address, list(message_hashes), signatures)

    return _preconfirm


@pytest.fixture
def open_swap(l2, signer, preconfirm, clock):
    """Relay a swap request straight to L2, leaving it Open."""

    async def _open_swap(
        user_a: str,
        user_b: str,
        eth_amount: int = ETHER,
        token_amount: int = 1000,
        nonce: int = 0,
        expires_in: int = 3600,
    ) -> SwapRequestMessage:
        swap = SwapRequestMessage(
            user_a=user_a,
            eth_amount=eth_amount,
            user_b=user_b,
            token=TOKEN,
            expected_token_amount=token_amount,
            nonce=nonce,
            expiry=clock.now() + expires_in,
        )
        await preconfirm(swap.message_hash)
        await l2.complete_request_swap(signer.address, eth_amount, **swap.as_call_args())
        return swap

    return _open_swap


@pytest.fixture
def fund_tokens(l2):
    """Mint L2 tokens to an account and approve the ledger to pull them."""

    async def _fund(account: str, amount: int, approve: int = None):
        await l2.mint_token(TOKEN, account, amount)
        await l2.approve(account, TOKEN, l2.address, amount if approve is None else approve)

    return _fund
