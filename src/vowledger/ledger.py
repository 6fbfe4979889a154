"""Promise ledger: lifecycle state machine plus the vow accounting it drives.

Every operation validates existence, actor, state and funds, then applies
all balance mutations and the promise update without yielding to the
event loop. Per-key ``asyncio.Lock``s serialize operations that share a
promise or an account, including the awaited vault flush that follows a
commit, so a racing caller always observes the committed state.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator

from vowledger.config import LedgerConfig
from vowledger.constants import MIN_STAKE_VOWS
from vowledger.errors import (
    InsufficientBalance,
    InvalidInput,
    InvalidState,
    NotFound,
    Unauthorized,
)
from vowledger.promise import (
    ACTION_ACTORS,
    TRANSITIONS,
    Party,
    Promise,
    PromiseAction,
    PromiseStatus,
    new_id,
    required_status,
    utc_now,
)

if TYPE_CHECKING:
    from vowledger.store import AccountDirectory, PromiseStore
    from vowledger.sync import LedgerSync

logger = logging.getLogger(__name__)

# (account_id, vows) pairs applied by a transition
Postings = list[tuple[str, int]]


def _account_key(account_id: str) -> str:
    return f"account:{account_id}"


def _promise_key(promise_id: str) -> str:
    return f"promise:{promise_id}"


class PromiseLedger:
    """Owns promise records and is the only writer of account balances.

    Symmetric staking: the promiser stakes on ``create``, the promisee on
    ``accept``. A kept promise returns each stake plus a bonus of
    ``kept_bonus_percent`` (floored); a broken one pays both stakes to the
    promisee; decline and cancel refund the promiser.
    """

    def __init__(
        self,
        accounts: AccountDirectory,
        promises: PromiseStore,
        config: LedgerConfig | None = None,
        sync: LedgerSync | None = None,
    ) -> None:
        self._accounts = accounts
        self._promises = promises
        self._config = config or LedgerConfig()
        self._sync = sync
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def config(self) -> LedgerConfig:
        return self._config

    # -- locking --------------------------------------------------------------

    def _get_lock(self, key: str) -> asyncio.Lock:
        """Get or create a per-entity lock."""
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    @asynccontextmanager
    async def _locked(self, *keys: str) -> AsyncIterator[None]:
        """Hold the locks for ``keys``, acquired in sorted order."""
        acquired: list[asyncio.Lock] = []
        try:
            for key in sorted(set(keys)):
                lock = self._get_lock(key)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    async def _committed(self) -> None:
        """Hand a committed change to the sync layer, if one is attached."""
        if self._sync is None:
            return
        self._sync.mark_dirty()
        if not self._config.flush_on_commit:
            await self._sync.maybe_flush()
        elif not await self._sync.flush():
            logger.warning("Ledger commit is held in memory only; vault flush failed.")

    # -- accounts -------------------------------------------------------------

    async def open_account(
        self, initial_balance: int | None = None, account_id: str | None = None,
    ) -> str:
        """Open an account with the configured starting balance (100 vows)."""
        balance = self._config.starting_balance if initial_balance is None else initial_balance
        if isinstance(balance, bool) or not isinstance(balance, int):
            raise InvalidInput("initial balance must be an integer number of vows.")
        if balance < 0:
            raise InvalidInput("initial balance must be non-negative.")
        account_id = account_id or new_id()
        async with self._locked(_account_key(account_id)):
            if self._accounts.exists(account_id):
                raise InvalidInput(f"Account {account_id} already exists.")
            self._accounts.create(balance, account_id)
            logger.info("Opened account %s with %d vows.", account_id, balance)
            await self._committed()
        return account_id

    async def ensure_seed_accounts(self) -> list[str]:
        """Open any configured seed account that does not exist yet."""
        opened = []
        for account_id in self._config.seed_accounts:
            if not self._accounts.exists(account_id):
                opened.append(await self.open_account(account_id=account_id))
        return opened

    def get_balance(self, account_id: str) -> int:
        return self._accounts.get_balance(account_id)

    # -- queries --------------------------------------------------------------

    def get_by_id(self, promise_id: str) -> Promise:
        promise = self._promises.get(promise_id)
        if promise is None:
            raise NotFound(f"Promise {promise_id} not found.", promise_id=promise_id)
        return promise

    def list_by_account(self, account_id: str) -> list[Promise]:
        """All promises the account is party to, in insertion order."""
        return self._promises.list_by_account(account_id)

    def available_actions(self, promise: Promise, actor_id: str) -> list[PromiseAction]:
        """Actions ``actor_id`` may take on ``promise`` right now."""
        party = promise.party_of(actor_id)
        return [
            action
            for (status, action), transition in TRANSITIONS.items()
            if status is promise.status and transition.actor is party
        ]

    def escrowed_total(self) -> int:
        """Vows held by pending and accepted promises."""
        return sum(p.escrow for p in self._promises.all())

    def total_supply(self) -> int:
        """Balances plus escrow. Grows only by kept-promise bonuses."""
        return self._accounts.total_balance() + self.escrowed_total()

    def kept_bonus(self, stake: int) -> int:
        return stake * self._config.kept_bonus_percent // 100

    # -- create ---------------------------------------------------------------

    async def create(
        self, promiser_id: str, promisee_id: str, description: str, stake: int,
    ) -> Promise:
        """Open a pending promise, moving ``stake`` from the promiser to escrow."""
        if not isinstance(description, str) or not description.strip():
            raise InvalidInput("description must not be empty.")
        if isinstance(stake, bool) or not isinstance(stake, int):
            raise InvalidInput("stake must be an integer number of vows.")
        if stake < MIN_STAKE_VOWS:
            raise InvalidInput(f"stake must be at least {MIN_STAKE_VOWS} vow.")
        if promiser_id == promisee_id:
            raise InvalidInput("promiser and promisee must be different accounts.")

        async with self._locked(_account_key(promiser_id)):
            for account_id in (promiser_id, promisee_id):
                if not self._accounts.exists(account_id):
                    raise NotFound(f"Account {account_id} not found.")
            self._require_funds(promiser_id, stake)

            promise = Promise(
                id=new_id(),
                promiser_id=promiser_id,
                promisee_id=promisee_id,
                description=description.strip(),
                stake=stake,
                status=PromiseStatus.PENDING,
                created_at=utc_now(),
            )
            self._apply([(promiser_id, stake)], [])
            self._promises.add(promise)
            logger.info(
                "Promise %s created: %s -> %s, stake %d.",
                promise.id, promiser_id, promisee_id, stake,
            )
            await self._committed()
        return promise

    # -- transitions ----------------------------------------------------------

    async def accept(self, promise_id: str, actor_id: str) -> Promise:
        return await self._transition(promise_id, actor_id, PromiseAction.ACCEPT)

    async def decline(self, promise_id: str, actor_id: str) -> Promise:
        return await self._transition(promise_id, actor_id, PromiseAction.DECLINE)

    async def cancel(self, promise_id: str, actor_id: str) -> Promise:
        return await self._transition(promise_id, actor_id, PromiseAction.CANCEL)

    async def resolve(self, promise_id: str, actor_id: str, kept: bool) -> Promise:
        return await self._transition(
            promise_id, actor_id, PromiseAction.resolution(bool(kept)),
        )

    async def _transition(
        self, promise_id: str, actor_id: str, action: PromiseAction,
    ) -> Promise:
        # Parties never change, so the lock set can be computed up front.
        promise = self.get_by_id(promise_id)
        keys = (
            _promise_key(promise_id),
            _account_key(promise.promiser_id),
            _account_key(promise.promisee_id),
        )
        async with self._locked(*keys):
            promise = self.get_by_id(promise_id)
            self._authorize(promise, actor_id, action)
            debits, credits = self._postings(promise, action)
            for account_id, _ in debits + credits:
                if not self._accounts.exists(account_id):
                    raise NotFound(f"Account {account_id} not found.", promise_id=promise_id)
            for account_id, amount in debits:
                self._require_funds(account_id, amount, promise_id)

            self._apply(debits, credits)
            updated = promise.advance(action, utc_now())
            self._promises.put(updated)
            logger.info(
                "Promise %s %s by %s: %s -> %s.",
                promise_id, action.value, actor_id,
                promise.status.value, updated.status.value,
            )
            await self._committed()
        if updated.is_terminal:
            # Terminal promises never mutate again; the account locks still
            # serialize any late caller that holds the old lock object.
            self._locks.pop(_promise_key(promise_id), None)
        return updated

    def _authorize(self, promise: Promise, actor_id: str, action: PromiseAction) -> None:
        expected = ACTION_ACTORS[action]
        if promise.party_of(actor_id) is not expected:
            logger.debug(
                "Rejected %s on %s: %s is not the %s.",
                action.value, promise.id, actor_id, expected.value,
            )
            raise Unauthorized(
                f"Only the {expected.value} may {action.value} this promise.",
                promise_id=promise.id,
            )
        if (promise.status, action) not in TRANSITIONS:
            logger.debug(
                "Rejected %s on %s: status is %s.",
                action.value, promise.id, promise.status.value,
            )
            raise InvalidState(
                f"Cannot {action.value} a {promise.status.value} promise "
                f"(requires {required_status(action).value}).",
                promise_id=promise.id,
            )

    # -- accounting -----------------------------------------------------------

    def _postings(self, promise: Promise, action: PromiseAction) -> tuple[Postings, Postings]:
        """Return ``(debits, credits)`` for applying ``action`` to ``promise``."""
        stake = promise.stake
        promiser = promise.account_for(Party.PROMISER)
        promisee = promise.account_for(Party.PROMISEE)
        if action is PromiseAction.ACCEPT:
            return [(promisee, stake)], []
        if action in (PromiseAction.DECLINE, PromiseAction.CANCEL):
            return [], [(promiser, stake)]
        if action is PromiseAction.KEEP:
            payout = stake + self.kept_bonus(stake)
            return [], [(promiser, payout), (promisee, payout)]
        if action is PromiseAction.BREAK:
            return [], [(promisee, stake * 2)]
        raise ValueError(f"Unhandled promise action: {action!r}")

    def _require_funds(self, account_id: str, amount: int, promise_id: str | None = None) -> None:
        balance = self._accounts.get_balance(account_id)
        if balance < amount:
            raise InsufficientBalance(
                f"Account {account_id} holds {balance} vows; {amount} required.",
                account_id=account_id,
                balance=balance,
                required=amount,
                promise_id=promise_id,
            )

    def _apply(self, debits: Postings, credits: Postings) -> None:
        """Apply postings whose funds were already checked under lock."""
        for account_id, amount in debits:
            if not self._accounts.debit(account_id, amount):
                # At most one debit per transition, so nothing is applied yet.
                raise RuntimeError(f"Debit of {amount} from {account_id} refused after check.")
        for account_id, amount in credits:
            self._accounts.credit(account_id, amount)
