"""Abstract persistence interface for ledger state.

Defines the VaultBackend Protocol that LedgerSync depends on.
Concrete implementations (e.g., HttpVault) live in ``vowledger.vaults``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class VaultBackend(Protocol):
    """Async persistence backend for whole-ledger snapshots.

    Any object implementing these three methods can serve as the
    durable backing store for LedgerSync.
    """

    async def store_state(self, ledger_name: str, state_json: str) -> str: ...

    async def fetch_state(self, ledger_name: str) -> str | None: ...

    async def snapshot_state(
        self, ledger_name: str, state_json: str, timestamp: str
    ) -> str | None: ...
