"""Whole-ledger JSON snapshot (accounts and promises in one document).

A snapshot is always taken between commits, so a stored document never
holds a half-applied transition.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from vowledger.promise import Account, Promise

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1


class SnapshotError(ValueError):
    """A stored ledger document that cannot be restored without losing data."""


@dataclass
class LedgerSnapshot:
    """Serializable copy of every account and promise."""

    accounts: list[Account] = field(default_factory=list)
    promises: list[Promise] = field(default_factory=list)
    taken_at: str | None = None

    @property
    def total_supply(self) -> int:
        return sum(a.balance for a in self.accounts) + sum(p.escrow for p in self.promises)

    def to_json(self) -> str:
        """Serialize to JSON string with schema version."""
        return json.dumps({
            "v": _SCHEMA_VERSION,
            "taken_at": self.taken_at,
            "accounts": [a.to_dict() for a in self.accounts],
            "promises": [p.to_dict() for p in self.promises],
        }, indent=2)

    @classmethod
    def from_json(cls, data: str, strict: bool = False) -> LedgerSnapshot:
        """Deserialize from JSON.

        By default returns an empty snapshot on corrupt data and skips
        malformed account or promise entries with a warning. With
        ``strict=True`` any such problem raises ``SnapshotError`` instead,
        as does a promise whose promiser or promisee has no account.
        """
        try:
            obj = json.loads(data)
        except (json.JSONDecodeError, TypeError) as e:
            if strict:
                raise SnapshotError(f"Ledger snapshot is not valid JSON: {e}") from e
            logger.warning("Ledger snapshot is corrupt; returning empty snapshot.")
            return cls()

        if not isinstance(obj, dict):
            if strict:
                raise SnapshotError("Ledger snapshot is not a JSON object.")
            logger.warning("Ledger snapshot is not a dict; returning empty snapshot.")
            return cls()

        accounts = _load_records(obj.get("accounts", []), Account.from_dict, "account", strict)
        promises = _load_records(obj.get("promises", []), Promise.from_dict, "promise", strict)
        if strict:
            _check_references(accounts, promises)
        return cls(accounts=accounts, promises=promises, taken_at=obj.get("taken_at"))


def _load_records(raw: Any, loader: Any, kind: str, strict: bool) -> list[Any]:
    if not isinstance(raw, list):
        if strict:
            raise SnapshotError(f"Ledger snapshot {kind} section is not a list.")
        return []
    records = []
    for item in raw:
        try:
            if not isinstance(item, dict):
                raise TypeError(f"{kind} record is not an object")
            records.append(loader(item))
        except (KeyError, ValueError, TypeError) as e:
            if strict:
                raise SnapshotError(f"Malformed {kind} record in ledger snapshot: {e!r}") from e
            logger.warning("Skipping malformed %s record in ledger snapshot.", kind)
    return records


def _check_references(accounts: list[Account], promises: list[Promise]) -> None:
    account_ids = {a.id for a in accounts}
    if len(account_ids) != len(accounts):
        raise SnapshotError("Ledger snapshot holds duplicate account ids.")
    if len({p.id for p in promises}) != len(promises):
        raise SnapshotError("Ledger snapshot holds duplicate promise ids.")
    for promise in promises:
        for account_id in (promise.promiser_id, promise.promisee_id):
            if account_id not in account_ids:
                raise SnapshotError(
                    f"Promise {promise.id} references unknown account {account_id}."
                )
