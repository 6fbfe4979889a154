"""Write-behind sync of in-memory ledger state to a vault.

The in-memory stores are the hot path for every ledger operation. The vault
is the durable backing store, written after commits (``flush_on_commit``)
and otherwise every ``flush_interval_secs``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from vowledger.constants import DEFAULT_LEDGER_NAME
from vowledger.snapshot import LedgerSnapshot, SnapshotError

if TYPE_CHECKING:
    from vowledger.config import LedgerConfig
    from vowledger.memory import InMemoryAccountDirectory, InMemoryPromiseStore
    from vowledger.vault_backend import VaultBackend

logger = logging.getLogger(__name__)


class LedgerSync:
    """Persists ledger state as one ``LedgerSnapshot`` document.

    - ``load()`` restores the stores from the vault at startup.
    - Commits are followed by ``mark_dirty()``.
    - ``flush()`` writes the current state with retry; flushes are serialized
      so an older state never overwrites a newer one.
    - A background task flushes dirty state periodically.
    """

    def __init__(
        self,
        vault: VaultBackend,
        accounts: InMemoryAccountDirectory,
        promises: InMemoryPromiseStore,
        ledger_name: str = DEFAULT_LEDGER_NAME,
        flush_interval_secs: float = 60,
        flush_retries: int = 1,
        flush_retry_delay: float = 2.0,
    ) -> None:
        self._vault = vault
        self._accounts = accounts
        self._promises = promises
        self._ledger_name = ledger_name
        self._flush_interval = flush_interval_secs
        self._flush_retries = flush_retries
        self._flush_retry_delay = flush_retry_delay
        self._version = 0
        self._flushed_version = 0
        self._flush_lock = asyncio.Lock()
        self._flush_task: asyncio.Task[None] | None = None
        self._last_flush_at: str | None = None
        self._total_flushes: int = 0
        self._last_flush_check: float = time.monotonic()

    @classmethod
    def from_config(
        cls,
        vault: VaultBackend,
        accounts: InMemoryAccountDirectory,
        promises: InMemoryPromiseStore,
        config: LedgerConfig,
    ) -> LedgerSync:
        return cls(
            vault,
            accounts,
            promises,
            ledger_name=config.ledger_name,
            flush_interval_secs=config.flush_interval_secs,
            flush_retries=config.flush_retries,
            flush_retry_delay=config.flush_retry_delay,
        )

    # -- state ----------------------------------------------------------------

    def capture(self) -> LedgerSnapshot:
        """Copy the current state. Never suspends, so it sits between commits."""
        return LedgerSnapshot(
            accounts=self._accounts.accounts(),
            promises=self._promises.all(),
            taken_at=datetime.now(timezone.utc).isoformat(),
        )

    async def load(self) -> bool:
        """Restore state from the vault. Returns False if nothing was stored.

        Vault errors propagate, and so does ``SnapshotError`` for a stored
        document that is corrupt or inconsistent; the stores are left
        untouched in both cases. Starting from an empty or partial ledger
        and then flushing it would overwrite the real state.
        """
        state_json = await self._vault.fetch_state(self._ledger_name)
        if state_json is None:
            logger.info("No stored state for ledger %s; starting empty.", self._ledger_name)
            return False
        try:
            snapshot = LedgerSnapshot.from_json(state_json, strict=True)
        except SnapshotError:
            logger.error("Stored state for ledger %s cannot be restored.", self._ledger_name)
            raise
        self._accounts.replace_all(snapshot.accounts)
        self._promises.replace_all(snapshot.promises)
        self._flushed_version = self._version
        logger.info(
            "Loaded ledger %s: %d account(s), %d promise(s).",
            self._ledger_name, len(snapshot.accounts), len(snapshot.promises),
        )
        return True

    def mark_dirty(self) -> None:
        """Record that the in-memory state changed since the last flush."""
        self._version += 1

    @property
    def dirty(self) -> bool:
        return self._version != self._flushed_version

    # -- flushing -------------------------------------------------------------

    async def maybe_flush(self) -> None:
        """Flush dirty state if enough time has passed since the last check.

        Lets request-driven callers persist state in environments where the
        background loop does not get scheduled between requests.
        """
        now = time.monotonic()
        if now - self._last_flush_check < self._flush_interval:
            return
        self._last_flush_check = now
        if self.dirty and await self.flush():
            logger.info("Opportunistic flush: wrote ledger %s.", self._ledger_name)

    async def flush(self) -> bool:
        """Write the current state to the vault with retry.

        Returns True on success (or nothing to write), False on failure
        (logged, not raised). Failed state stays dirty.
        """
        async with self._flush_lock:
            if not self.dirty:
                return True
            version = self._version
            state_json = self.capture().to_json()

            max_attempts = 1 + self._flush_retries
            for attempt in range(max_attempts):
                try:
                    await self._vault.store_state(self._ledger_name, state_json)
                    self._flushed_version = version
                    self._last_flush_at = datetime.now(timezone.utc).isoformat()
                    self._total_flushes += 1
                    return True
                except Exception:
                    if attempt < max_attempts - 1:
                        logger.warning(
                            "Flush attempt %d/%d failed for ledger %s, retrying in %.1fs...",
                            attempt + 1, max_attempts, self._ledger_name, self._flush_retry_delay,
                        )
                        await asyncio.sleep(self._flush_retry_delay)
                    else:
                        logger.warning(
                            "Failed to flush ledger %s to vault after %d attempt(s).",
                            self._ledger_name, max_attempts,
                        )
            return False

    async def snapshot(self, timestamp: str | None = None) -> str | None:
        """Store a timestamped snapshot. Returns its id, or None if skipped/failed."""
        timestamp = timestamp or datetime.now(timezone.utc).isoformat()
        try:
            return await self._vault.snapshot_state(
                self._ledger_name, self.capture().to_json(), timestamp
            )
        except Exception:
            logger.warning("Failed to snapshot ledger %s.", self._ledger_name)
            return None

    async def start_background_flush(self) -> None:
        """Start the periodic background flush task."""
        if self._flush_task is not None:
            return
        self._flush_task = asyncio.create_task(self._background_flush_loop())

    async def _background_flush_loop(self) -> None:
        """Periodically flush dirty state until cancelled."""
        logger.info(
            "Background flush loop started for ledger %s (interval=%ss).",
            self._ledger_name, self._flush_interval,
        )
        cycles = 0
        try:
            while True:
                await asyncio.sleep(self._flush_interval)
                self._last_flush_check = time.monotonic()
                cycles += 1
                if self.dirty:
                    if await self.flush():
                        logger.info(
                            "Background flush: wrote ledger %s (cycle %d, total flushes: %d).",
                            self._ledger_name, cycles, self._total_flushes,
                        )
                elif cycles % 10 == 0:
                    logger.info(
                        "Background flush heartbeat: cycle %d, total flushes %d.",
                        cycles, self._total_flushes,
                    )
        except asyncio.CancelledError:
            pass

    async def stop(self) -> None:
        """Cancel background flush and write any remaining dirty state."""
        if self._flush_task is not None:
            self._flush_task.cancel()
            try:
                await self._flush_task
            except asyncio.CancelledError:
                pass
            self._flush_task = None
        await self.flush()

    def health(self) -> dict[str, object]:
        """Return sync health metrics for monitoring."""
        return {
            "ledger_name": self._ledger_name,
            "dirty": self.dirty,
            "last_flush_at": self._last_flush_at,
            "total_flushes": self._total_flushes,
            "flush_retries": self._flush_retries,
            "flush_retry_delay": self._flush_retry_delay,
            "background_flush_running": self._flush_task is not None
                                        and not self._flush_task.done(),
            "last_flush_check_age_secs": round(
                time.monotonic() - self._last_flush_check, 1
            ),
        }
