"""Promise and account records plus the promise lifecycle table.

Pure data model with no I/O and no locking. All amounts are integer vows.
Records are frozen; a transition produces a new ``Promise`` via
``dataclasses.replace`` and the ledger stores it in place of the old one.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PromiseStatus(str, Enum):
    """Lifecycle state of a promise."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    KEPT = "kept"
    BROKEN = "broken"
    DECLINED = "declined"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    PromiseStatus.KEPT,
    PromiseStatus.BROKEN,
    PromiseStatus.DECLINED,
})


class PromiseAction(str, Enum):
    """Operations that move an existing promise between states."""

    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL = "cancel"
    KEEP = "keep"  # resolve(kept=True)
    BREAK = "break"  # resolve(kept=False)

    @classmethod
    def resolution(cls, kept: bool) -> PromiseAction:
        return cls.KEEP if kept else cls.BREAK


class Party(str, Enum):
    """Which side of a promise an account is on."""

    PROMISER = "promiser"
    PROMISEE = "promisee"


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Transition:
    actor: Party
    target: PromiseStatus


# Every legal (state, action) pair. Anything absent is rejected.
TRANSITIONS: dict[tuple[PromiseStatus, PromiseAction], Transition] = {
    (PromiseStatus.PENDING, PromiseAction.ACCEPT): Transition(Party.PROMISEE, PromiseStatus.ACCEPTED),
    (PromiseStatus.PENDING, PromiseAction.DECLINE): Transition(Party.PROMISEE, PromiseStatus.DECLINED),
    (PromiseStatus.PENDING, PromiseAction.CANCEL): Transition(Party.PROMISER, PromiseStatus.DECLINED),
    (PromiseStatus.ACCEPTED, PromiseAction.KEEP): Transition(Party.PROMISEE, PromiseStatus.KEPT),
    (PromiseStatus.ACCEPTED, PromiseAction.BREAK): Transition(Party.PROMISEE, PromiseStatus.BROKEN),
}

# Authorized party per action, independent of the current state.
ACTION_ACTORS: dict[PromiseAction, Party] = {
    action: transition.actor for (_, action), transition in TRANSITIONS.items()
}


def required_status(action: PromiseAction) -> PromiseStatus:
    """Return the only state from which ``action`` may be applied."""
    for (status, candidate) in TRANSITIONS:
        if candidate is action:
            return status
    raise KeyError(action)


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


@dataclass
class Account:
    """Vow balance held by one account."""

    id: str
    balance: int = 0
    created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "balance": self.balance, "created_at": self.created_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Account:
        return cls(
            id=str(data["id"]),
            balance=int(data.get("balance", 0)),
            created_at=str(data.get("created_at", "")),
        )


# ---------------------------------------------------------------------------
# Promise
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Promise:
    """A staked commitment from ``promiser_id`` to ``promisee_id``."""

    id: str
    promiser_id: str
    promisee_id: str
    description: str
    stake: int
    status: PromiseStatus = PromiseStatus.PENDING
    created_at: str = ""
    resolved_at: str | None = None
    withdrawn_by: Party | None = None  # set only when status is DECLINED

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def escrow(self) -> int:
        """Vows currently held against this promise's outcome."""
        if self.status is PromiseStatus.PENDING:
            return self.stake
        if self.status is PromiseStatus.ACCEPTED:
            return self.stake * 2
        return 0

    def party_of(self, account_id: str) -> Party | None:
        if account_id == self.promiser_id:
            return Party.PROMISER
        if account_id == self.promisee_id:
            return Party.PROMISEE
        return None

    def account_for(self, party: Party) -> str:
        return self.promiser_id if party is Party.PROMISER else self.promisee_id

    def involves(self, account_id: str) -> bool:
        return self.party_of(account_id) is not None

    def advance(self, action: PromiseAction, at: str) -> Promise:
        """Return the record after applying ``action``.

        Callers must have validated the transition against ``TRANSITIONS``.
        """
        transition = TRANSITIONS[(self.status, action)]
        target = transition.target
        return replace(
            self,
            status=target,
            resolved_at=at if target.is_terminal else None,
            withdrawn_by=transition.actor if target is PromiseStatus.DECLINED else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "promiser_id": self.promiser_id,
            "promisee_id": self.promisee_id,
            "description": self.description,
            "stake": self.stake,
            "status": self.status.value,
            "created_at": self.created_at,
            "resolved_at": self.resolved_at,
            "withdrawn_by": self.withdrawn_by.value if self.withdrawn_by else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Promise:
        withdrawn = data.get("withdrawn_by")
        return cls(
            id=str(data["id"]),
            promiser_id=str(data["promiser_id"]),
            promisee_id=str(data["promisee_id"]),
            description=str(data.get("description", "")),
            stake=int(data["stake"]),
            status=PromiseStatus(data.get("status", PromiseStatus.PENDING.value)),
            created_at=str(data.get("created_at", "")),
            resolved_at=data.get("resolved_at"),
            withdrawn_by=Party(withdrawn) if withdrawn else None,
        )
