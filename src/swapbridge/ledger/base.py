"""Ledger runtime shared by L1 and L2.

Every state-changing operation runs as one transaction:
1. The call-depth guard rejects reentrant calls into the same ledger
2. The ledger lock serializes it against every other call
3. A database session opens; the next block is produced at the clock's time
4. Value attached by the caller moves into the ledger's custody
5. The operation mutates state, then moves value out, then emits events
6. The session commits, or rolls back everything on any error
"""

import logging
import time
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Awaitable, Callable, Iterable, Optional

from web3 import Web3

from swapbridge.codec import NATIVE_TOKEN, check_uint, is_zero_address, normalize_address
from swapbridge.errors import BridgeError, TransferError, ValidationError
from swapbridge.ledger.database import LedgerDatabase
from swapbridge.ledger.models import LedgerEvent
from swapbridge.ledger.repository import LedgerRepository
from swapbridge.utils.locks import LedgerLock, call_guard

logger = logging.getLogger(__name__)


class SystemClock:
    """Wall-clock time in whole seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Clock that only moves when told to (tests and simulations)."""

    def __init__(self, start: Optional[int] = None):
        self._now = int(time.time()) if start is None else start

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        self._now += seconds
        return self._now

    def set(self, timestamp: int) -> None:
        self._now = timestamp


@dataclass(frozen=True)
class Event:
    """Committed ledger event."""

    sequence: int
    name: str
    args: dict[str, Any]
    block_number: int
    log_index: int
    tx_hash: str
    timestamp: int
    message_hash: Optional[str] = None

    @classmethod
    def from_model(cls, record: LedgerEvent) -> "Event":
        return cls(
            sequence=record.sequence,
            name=record.name,
            args=dict(record.args),
            block_number=record.block_number,
            log_index=record.log_index,
            tx_hash=record.tx_hash,
            timestamp=record.timestamp,
            message_hash=record.message_hash,
        )


@dataclass
class Receipt:
    """Outcome of a committed ledger call."""

    tx_hash: str
    block_number: int
    timestamp: int
    events: list[Event] = field(default_factory=list)

    def find(self, name: str) -> Optional[Event]:
        """First event with the given name, if any."""
        for event in self.events:
            if event.name == name:
                return event
        return None

    def events_named(self, name: str) -> list[Event]:
        return [event for event in self.events if event.name == name]


@dataclass(frozen=True)
class Payment:
    """Native value delivered to an account with a receive hook."""

    ledger: str
    sender: str
    recipient: str
    amount: int


ReceiveHook = Callable[[Payment], Awaitable[None]]


class CallContext:
    """State of one in-flight ledger call."""

    def __init__(
        self,
        ledger: "Ledger",
        repo: LedgerRepository,
        method: str,
        caller: str,
        value: int,
        block_number: int,
        timestamp: int,
    ):
        self.ledger = ledger
        self.repo = repo
        self.method = method
        self.caller = caller
        self.value = value
        self.block_number = block_number
        self.timestamp = timestamp
        self.tx_hash = "0x" + Web3.keccak(
            text=f"{ledger.address}:{block_number}:{method}:{caller}"
        ).hex().removeprefix("0x")
        self.receipt: Optional[Receipt] = None
        self._records: list[LedgerEvent] = []

    async def emit(self, name: str, message_hash: Optional[str] = None, **args: Any) -> None:
        """Append an event; it becomes visible only if the call commits."""
        if message_hash is not None:
            args["message_hash"] = message_hash
        record = await self.repo.append_event(
            name=name,
            args=args,
            tx_hash=self.tx_hash,
            block_number=self.block_number,
            log_index=len(self._records),
            timestamp=self.timestamp,
            message_hash=message_hash,
        )
        self._records.append(record)

    def build_receipt(self) -> Receipt:
        return Receipt(
            tx_hash=self.tx_hash,
            block_number=self.block_number,
            timestamp=self.timestamp,
            events=[Event.from_model(record) for record in self._records],
        )


class Ledger:
    """Transactional state machine owned by one ledger address."""

    name = "ledger"

    def __init__(
        self,
        db: LedgerDatabase,
        address: str,
        clock: Optional[Any] = None,
    ):
        if is_zero_address(address):
            raise ValidationError("Invalid ledger address")
        self.db = db
        self.address = normalize_address(address)
        self.clock = clock or SystemClock()
        self._lock = LedgerLock(self.address)
        self._current: ContextVar[Optional[CallContext]] = ContextVar(
            f"ledger_call_{self.address}", default=None
        )
        self._receivers: dict[str, ReceiveHook] = {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(address={self.address})"

    async def init(self) -> None:
        """Create tables and the ledger state row if missing."""
        await self.db.init()
        async with self.db.session() as session:
            repo = LedgerRepository(session)
            if await repo.get_state() is None:
                await repo.create_state(self.address, **self._initial_state())
                logger.info(f"Initialized {self.name} ledger at {self.address}")

    def _initial_state(self) -> dict[str, Any]:
        return {}

    async def close(self) -> None:
        await self.db.close()

    # Transactions
    @asynccontextmanager
    async def transaction(
        self, method: str, caller: str, value: int = 0
    ) -> AsyncGenerator[CallContext, None]:
        """Run the enclosed block as one atomic ledger call."""
        caller = normalize_address(caller)
        if value < 0:
            raise ValidationError("Negative value")

        with call_guard(self.address, f"{self.name}.{method}"):
            async with self._lock.hold(method):
                try:
                    async with self.db.session() as session:
                        repo = LedgerRepository(session)
                        state = await repo.advance_block(self.clock.now())
                        ctx = CallContext(
                            ledger=self,
                            repo=repo,
                            method=method,
                            caller=caller,
                            value=value,
                            block_number=state.block_number,
                            timestamp=state.block_timestamp,
                        )
                        token = self._current.set(ctx)
                        try:
                            if value:
                                await repo.move_balance(caller, self.address, NATIVE_TOKEN, value)
                            yield ctx
                        finally:
                            self._current.reset(token)
                except BridgeError as e:
                    logger.info(f"{self.name}.{method} from {caller} reverted: {e}")
                    raise

                ctx.receipt = ctx.build_receipt()
                logger.debug(
                    f"{self.name}.{method} from {caller} committed in block {ctx.block_number} "
                    f"({len(ctx.receipt.events)} events)"
                )

    @asynccontextmanager
    async def reading(self) -> AsyncGenerator[LedgerRepository, None]:
        """Repository for read-only queries.

        Inside a call (e.g. from a receive hook) reads see the call's own
        uncommitted state.
        """
        ctx = self._current.get()
        if ctx is not None:
            yield ctx.repo
            return

        async with self._lock.hold("read"):
            async with self.db.session() as session:
                yield LedgerRepository(session)

    # Value movement
    def register_receiver(self, account: str, hook: ReceiveHook) -> None:
        """Run `hook` whenever this ledger pays native value to `account`."""
        self._receivers[normalize_address(account)] = hook

    def unregister_receiver(self, account: str) -> None:
        self._receivers.pop(normalize_address(account), None)

    async def pay_native(self, ctx: CallContext, recipient: str, amount: int) -> None:
        """Pay native value out of custody; the recipient's hook runs inside the call."""
        await ctx.repo.move_balance(self.address, recipient, NATIVE_TOKEN, amount)

        hook = self._receivers.get(recipient)
        if hook is None:
            return
        try:
            await hook(Payment(self.address, self.address, recipient, amount))
        except Exception as e:
            raise TransferError(f"Native transfer to {recipient} failed: {e}") from e

    async def pull_token(self, ctx: CallContext, token: str, owner: str, amount: int) -> None:
        """Move approved tokens from owner into the ledger's custody."""
        await ctx.repo.spend_allowance(owner, self.address, token, amount)
        await ctx.repo.move_balance(owner, self.address, token, amount)
        await ctx.emit("Transfer", token=token, sender=owner, recipient=self.address, amount=amount)

    async def release_token(self, ctx: CallContext, token: str, recipient: str, amount: int) -> None:
        """Transfer held tokens, minting whatever the ledger does not hold."""
        held = await ctx.repo.balance_of(self.address, token)
        if held >= amount:
            await ctx.repo.move_balance(self.address, recipient, token, amount)
            await ctx.emit("Transfer", token=token, sender=self.address, recipient=recipient, amount=amount)
        else:
            await ctx.repo.credit_balance(recipient, token, amount)
            await ctx.emit("Transfer", token=token, sender=NATIVE_TOKEN, recipient=recipient, amount=amount)

    # Token operations standing in for ERC-20 contracts
    async def mint_token(self, token: str, to: str, amount: int) -> Receipt:
        """Mint tokens to an account; the caller is the token itself."""
        token = normalize_address(token)
        to = normalize_address(to)
        if amount <= 0:
            raise ValidationError("Zero mint amount")
        async with self.transaction("mint", caller=token) as tx:
            await tx.repo.credit_balance(to, token, amount)
            await tx.emit("Transfer", token=token, sender=NATIVE_TOKEN, recipient=to, amount=amount)
        return tx.receipt

    async def approve(self, caller: str, token: str, spender: str, amount: int) -> Receipt:
        token = normalize_address(token)
        spender = normalize_address(spender)
        check_uint(amount, name="Approval amount")
        async with self.transaction("approve", caller) as tx:
            await tx.repo.set_allowance(tx.caller, spender, token, amount)
            await tx.emit("Approval", token=token, owner=tx.caller, spender=spender, amount=amount)
        return tx.receipt

    async def transfer(self, caller: str, token: str, to: str, amount: int) -> Receipt:
        token = normalize_address(token)
        to = normalize_address(to)
        if check_uint(amount, name="Transfer amount") == 0:
            raise ValidationError("Zero transfer amount")
        async with self.transaction("transfer", caller) as tx:
            await tx.repo.move_balance(tx.caller, to, token, amount)
            await tx.emit("Transfer", token=token, sender=tx.caller, recipient=to, amount=amount)
        return tx.receipt

    async def set_balance(self, account: str, amount: int, asset: str = NATIVE_TOKEN) -> None:
        """Overwrite a balance without producing a block (devnet funding)."""
        async with self._lock.hold("set_balance"):
            async with self.db.session() as session:
                await LedgerRepository(session).set_balance(
                    normalize_address(account), normalize_address(asset), amount
                )

    # Views
    async def balance_of(self, account: str, asset: str = NATIVE_TOKEN) -> int:
        async with self.reading() as repo:
            return await repo.balance_of(normalize_address(account), normalize_address(asset))

    async def allowance(self, owner: str, spender: str, token: str) -> int:
        async with self.reading() as repo:
            record = await repo.get_allowance(
                normalize_address(owner), normalize_address(spender), normalize_address(token)
            )
            return record.amount if record else 0

    async def user_nonce(self, user: str) -> int:
        async with self.reading() as repo:
            return await repo.get_nonce(normalize_address(user))

    async def block_number(self) -> int:
        async with self.reading() as repo:
            state = await repo.get_state()
            return state.block_number

    async def current_time(self) -> int:
        """Timestamp the next block would carry."""
        async with self.reading() as repo:
            state = await repo.get_state()
            return max(state.block_timestamp, self.clock.now())

    async def get_events(
        self,
        names: Optional[Iterable[str]] = None,
        after: int = 0,
        limit: Optional[int] = None,
    ) -> list[Event]:
        """Committed events with sequence greater than `after`."""
        async with self.reading() as repo:
            records = await repo.get_events(names=names, after=after, limit=limit)
            return [Event.from_model(record) for record in records]
