"""Ledger configuration: plain frozen dataclass, no pydantic.

The host application constructs this from its own settings (env vars,
pydantic-settings, etc.) and passes it to the ledger and its sync layer.
"""

from dataclasses import dataclass

from vowledger.constants import (
    DEFAULT_LEDGER_NAME,
    KEPT_BONUS_PERCENT,
    STARTING_BALANCE_VOWS,
)


@dataclass(frozen=True)
class LedgerConfig:
    starting_balance: int = STARTING_BALANCE_VOWS
    kept_bonus_percent: int = KEPT_BONUS_PERCENT
    seed_accounts: tuple[str, ...] = ()
    ledger_name: str = DEFAULT_LEDGER_NAME
    flush_on_commit: bool = True
    flush_interval_secs: float = 60
    flush_retries: int = 1
    flush_retry_delay: float = 2.0
    vault_url: str | None = None
    vault_api_key: str | None = None
