"""Abstract store interfaces the ledger depends on.

Defines the ``AccountDirectory`` and ``PromiseStore`` Protocols that
``PromiseLedger`` is constructed with. In-memory implementations live in
``vowledger.memory``.

Both are synchronous: the ledger applies a whole transition between two
event-loop yields, so a store must not suspend while mutating.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from vowledger.promise import Promise


@runtime_checkable
class AccountDirectory(Protocol):
    """Account id -> vow balance. Only the ledger may write balances."""

    def exists(self, account_id: str) -> bool: ...

    def get_balance(self, account_id: str) -> int: ...

    def debit(self, account_id: str, amount: int) -> bool: ...

    def credit(self, account_id: str, amount: int) -> None: ...

    def create(self, initial_balance: int, account_id: str | None = None) -> str: ...

    def total_balance(self) -> int: ...


@runtime_checkable
class PromiseStore(Protocol):
    """Promise records in insertion order. Records are never deleted."""

    def add(self, promise: Promise) -> None: ...

    def get(self, promise_id: str) -> Promise | None: ...

    def put(self, promise: Promise) -> None: ...

    def list_by_account(self, account_id: str) -> list[Promise]: ...

    def all(self) -> list[Promise]: ...
