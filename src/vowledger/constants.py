"""Constants for the vow promise ledger."""

STARTING_BALANCE_VOWS = 100  # every new account opens with this many vows
KEPT_BONUS_PERCENT = 50  # bonus paid to each party on a kept promise
MIN_STAKE_VOWS = 1

DEFAULT_LEDGER_NAME = "default"
