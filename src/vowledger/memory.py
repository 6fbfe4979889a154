"""In-memory ``AccountDirectory`` and ``PromiseStore``.

State lives in process memory; ``LedgerSync`` persists it to a vault as a
single ``LedgerSnapshot`` document.
"""

from __future__ import annotations

import logging
from collections import OrderedDict

from vowledger.errors import NotFound
from vowledger.promise import Account, Promise, new_id, utc_now

logger = logging.getLogger(__name__)


class InMemoryAccountDirectory:
    """Account balances keyed by id.

    ``debit()`` returns False on insufficient balance (not exceptional),
    leaving the balance untouched. Unknown ids raise ``NotFound``.
    """

    def __init__(self, accounts: list[Account] | None = None) -> None:
        self._accounts: dict[str, Account] = {}
        for account in accounts or []:
            self._accounts[account.id] = account

    def _require(self, account_id: str) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            raise NotFound(f"Account {account_id} not found.")
        return account

    def exists(self, account_id: str) -> bool:
        return account_id in self._accounts

    def get_balance(self, account_id: str) -> int:
        return self._require(account_id).balance

    def get(self, account_id: str) -> Account:
        account = self._require(account_id)
        return Account(id=account.id, balance=account.balance, created_at=account.created_at)

    def debit(self, account_id: str, amount: int) -> bool:
        if amount < 0:
            return False
        account = self._require(account_id)
        if account.balance < amount:
            return False
        account.balance -= amount
        return True

    def credit(self, account_id: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"credit amount must be non-negative, got {amount}")
        self._require(account_id).balance += amount

    def create(self, initial_balance: int, account_id: str | None = None) -> str:
        if initial_balance < 0:
            raise ValueError(f"initial balance must be non-negative, got {initial_balance}")
        account_id = account_id or new_id()
        if account_id in self._accounts:
            raise ValueError(f"Account {account_id} already exists.")
        self._accounts[account_id] = Account(
            id=account_id, balance=initial_balance, created_at=utc_now(),
        )
        logger.debug("Opened account %s with %d vows.", account_id, initial_balance)
        return account_id

    def accounts(self) -> list[Account]:
        return [self.get(account_id) for account_id in self._accounts]

    def total_balance(self) -> int:
        return sum(a.balance for a in self._accounts.values())

    def replace_all(self, accounts: list[Account]) -> None:
        """Swap in a restored account set (used when loading from a vault)."""
        self._accounts = {a.id: a for a in accounts}


class InMemoryPromiseStore:
    """Promises kept in insertion order, indexed by account."""

    def __init__(self, promises: list[Promise] | None = None) -> None:
        self._promises: OrderedDict[str, Promise] = OrderedDict()
        self._by_account: dict[str, list[str]] = {}
        for promise in promises or []:
            self.add(promise)

    def add(self, promise: Promise) -> None:
        if promise.id in self._promises:
            raise ValueError(f"Promise {promise.id} already exists.")
        self._promises[promise.id] = promise
        for account_id in (promise.promiser_id, promise.promisee_id):
            self._by_account.setdefault(account_id, []).append(promise.id)

    def get(self, promise_id: str) -> Promise | None:
        return self._promises.get(promise_id)

    def put(self, promise: Promise) -> None:
        if promise.id not in self._promises:
            raise NotFound(f"Promise {promise.id} not found.", promise_id=promise.id)
        self._promises[promise.id] = promise

    def list_by_account(self, account_id: str) -> list[Promise]:
        return [self._promises[pid] for pid in self._by_account.get(account_id, [])]

    def all(self) -> list[Promise]:
        return list(self._promises.values())

    def __len__(self) -> int:
        return len(self._promises)

    def replace_all(self, promises: list[Promise]) -> None:
        """Swap in a restored promise history (used when loading from a vault)."""
        self._promises = OrderedDict()
        self._by_account = {}
        for promise in promises:
            self.add(promise)
