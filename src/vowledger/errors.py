"""Ledger exception hierarchy.

Every rejected ledger operation raises one of these, always before any
balance or promise has been touched.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base exception for promise ledger operations."""

    code = "ledger_error"
    retryable = False

    def __init__(self, message: str, promise_id: str | None = None) -> None:
        super().__init__(message)
        self.promise_id = promise_id


class InvalidInput(LedgerError):
    """Malformed request data (empty description, bad stake, self-promise)."""

    code = "invalid_input"


class Unauthorized(LedgerError):
    """Actor is not the party allowed to perform the operation."""

    code = "unauthorized"


class InvalidState(LedgerError):
    """Promise is not in the state the transition requires.

    Callers should refresh the promise and re-decide, never blindly retry.
    """

    code = "invalid_state"


class InsufficientBalance(LedgerError):
    """Account holds fewer vows than the stake."""

    code = "insufficient_balance"

    def __init__(
        self,
        message: str,
        account_id: str,
        balance: int,
        required: int,
        promise_id: str | None = None,
    ) -> None:
        super().__init__(message, promise_id=promise_id)
        self.account_id = account_id
        self.balance = balance
        self.required = required


class NotFound(LedgerError):
    """Unknown promise or account identifier."""

    code = "not_found"
