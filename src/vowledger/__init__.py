"""Vow Ledger: staked promises between accounts.

Symmetric-stake promise lifecycle with atomic vow accounting.
"""

__version__ = "0.1.0"

from vowledger.config import LedgerConfig
from vowledger.errors import (
    InsufficientBalance,
    InvalidInput,
    InvalidState,
    LedgerError,
    NotFound,
    Unauthorized,
)
from vowledger.ledger import PromiseLedger
from vowledger.memory import InMemoryAccountDirectory, InMemoryPromiseStore
from vowledger.promise import Account, Party, Promise, PromiseAction, PromiseStatus
from vowledger.snapshot import LedgerSnapshot, SnapshotError
from vowledger.store import AccountDirectory, PromiseStore
from vowledger.sync import LedgerSync
from vowledger.vault_backend import VaultBackend
from vowledger.vaults import HttpVault
from vowledger.constants import STARTING_BALANCE_VOWS, KEPT_BONUS_PERCENT

__all__ = [
    "LedgerConfig",
    "LedgerError",
    "InvalidInput",
    "Unauthorized",
    "InvalidState",
    "InsufficientBalance",
    "NotFound",
    "PromiseLedger",
    "InMemoryAccountDirectory",
    "InMemoryPromiseStore",
    "Account",
    "Party",
    "Promise",
    "PromiseAction",
    "PromiseStatus",
    "LedgerSnapshot",
    "SnapshotError",
    "AccountDirectory",
    "PromiseStore",
    "LedgerSync",
    "VaultBackend",
    "HttpVault",
    "STARTING_BALANCE_VOWS",
    "KEPT_BONUS_PERCENT",
]
