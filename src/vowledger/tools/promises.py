"""Promise tools: create, accept, decline, cancel, resolve, balance, listing, status.

Thin async wrappers a host application calls with an already-authenticated
actor id. Ledger errors come back as ``{"success": False, ...}`` dicts
instead of exceptions.
"""

from __future__ import annotations

import importlib.metadata
import logging
import platform
from typing import Any, Awaitable

from vowledger.errors import LedgerError
from vowledger.ledger import PromiseLedger
from vowledger.promise import Promise, PromiseStatus
from vowledger.sync import LedgerSync

logger = logging.getLogger(__name__)


def _error(exc: LedgerError) -> dict[str, Any]:
    return {"success": False, "error": str(exc), "code": exc.code}


def promise_summary(
    ledger: PromiseLedger, promise: Promise, actor_id: str,
) -> dict[str, Any]:
    """Promise fields plus the actor's role and currently available actions."""
    summary = promise.to_dict()
    party = promise.party_of(actor_id)
    summary["role"] = party.value if party else None
    summary["available_actions"] = [
        a.value for a in ledger.available_actions(promise, actor_id)
    ]
    return summary


async def _run(
    ledger: PromiseLedger, actor_id: str, op: Awaitable[Promise], message: str,
) -> dict[str, Any]:
    try:
        promise = await op
    except LedgerError as e:
        logger.info("Promise tool rejected for %s: %s (%s).", actor_id, e, e.code)
        return _error(e)
    return {
        "success": True,
        "promise": promise_summary(ledger, promise, actor_id),
        "balance": ledger.get_balance(actor_id),
        "message": message.format(stake=promise.stake),
    }


async def create_promise_tool(
    ledger: PromiseLedger,
    actor_id: str,
    promisee_id: str,
    description: str,
    stake: int,
) -> dict[str, Any]:
    """Make a promise to ``promisee_id``, staking ``stake`` vows.

    The stake leaves the actor's balance immediately and is refunded if the
    promisee declines or the actor cancels before acceptance.
    """
    return await _run(
        ledger, actor_id,
        ledger.create(actor_id, promisee_id, description, stake),
        "Promise made. {stake} vows are now at stake.",
    )


async def accept_promise_tool(
    ledger: PromiseLedger, actor_id: str, promise_id: str,
) -> dict[str, Any]:
    """Accept a pending promise made to the actor, matching its stake."""
    return await _run(
        ledger, actor_id,
        ledger.accept(promise_id, actor_id),
        "Promise accepted. You matched the {stake} vow stake.",
    )


async def decline_promise_tool(
    ledger: PromiseLedger, actor_id: str, promise_id: str,
) -> dict[str, Any]:
    return await _run(
        ledger, actor_id,
        ledger.decline(promise_id, actor_id),
        "Promise declined. The promiser's {stake} vows were returned.",
    )


async def cancel_promise_tool(
    ledger: PromiseLedger, actor_id: str, promise_id: str,
) -> dict[str, Any]:
    return await _run(
        ledger, actor_id,
        ledger.cancel(promise_id, actor_id),
        "Promise withdrawn. Your {stake} vows were returned.",
    )


async def resolve_promise_tool(
    ledger: PromiseLedger, actor_id: str, promise_id: str, kept: bool,
) -> dict[str, Any]:
    """Judge an accepted promise as kept or broken (promisee only).

    Kept: both parties get their stake back plus a bonus.
    Broken: the promisee receives both stakes.
    """
    message = (
        "Promise kept. Both stakes returned with a bonus."
        if kept else
        "Promise broken. You received both stakes ({stake} vows each)."
    )
    return await _run(
        ledger, actor_id, ledger.resolve(promise_id, actor_id, kept), message,
    )


async def check_balance_tool(ledger: PromiseLedger, actor_id: str) -> dict[str, Any]:
    """Return the actor's balance and how many vows sit in open promises.

    Read-only, no side effects.
    """
    try:
        balance = ledger.get_balance(actor_id)
    except LedgerError as e:
        return _error(e)

    staked = 0
    open_count = 0
    for promise in ledger.list_by_account(actor_id):
        if promise.is_terminal:
            continue
        open_count += 1
        if promise.status is PromiseStatus.ACCEPTED or promise.promiser_id == actor_id:
            staked += promise.stake

    return {
        "success": True,
        "balance": balance,
        "staked": staked,
        "open_promises": open_count,
    }


async def list_promises_tool(
    ledger: PromiseLedger,
    actor_id: str,
    status: str | None = None,
) -> dict[str, Any]:
    """List the actor's promises grouped by status, newest first.

    Args:
        ledger: The promise ledger.
        actor_id: The authenticated account id.
        status: Optional status filter (``pending``, ``accepted``, ...).

    Returns dict with:
        success: False only for an unknown status filter.
        count: Number of promises returned.
        needs_action: Promises where the actor has an available action.
        by_status: Status name -> list of promise summaries.
    """
    wanted: PromiseStatus | None = None
    if status is not None:
        try:
            wanted = PromiseStatus(status)
        except ValueError:
            valid = ", ".join(s.value for s in PromiseStatus)
            return {
                "success": False,
                "error": f"Unknown status '{status}'. Expected one of: {valid}.",
                "code": "invalid_input",
            }

    promises = ledger.list_by_account(actor_id)
    if wanted is not None:
        promises = [p for p in promises if p.status is wanted]

    by_status: dict[str, list[dict[str, Any]]] = {}
    needs_action: list[str] = []
    for promise in sorted(promises, key=lambda p: p.created_at, reverse=True):
        summary = promise_summary(ledger, promise, actor_id)
        by_status.setdefault(promise.status.value, []).append(summary)
        if summary["available_actions"]:
            needs_action.append(promise.id)

    return {
        "success": True,
        "count": len(promises),
        "needs_action": needs_action,
        "by_status": by_status,
    }


async def ledger_status_tool(
    ledger: PromiseLedger, sync: LedgerSync | None = None,
) -> dict[str, Any]:
    """Report ledger configuration, supply totals and vault sync health.

    Admin/operator tool for diagnostics.
    """
    config = ledger.config
    result: dict[str, Any] = {
        "starting_balance": config.starting_balance,
        "kept_bonus_percent": config.kept_bonus_percent,
        "flush_on_commit": config.flush_on_commit,
        "vault_url": config.vault_url,
        "vault_api_key_status": "present" if config.vault_api_key else "missing",
        "escrowed": ledger.escrowed_total(),
        "total_supply": ledger.total_supply(),
    }

    versions: dict[str, str] = {"python": platform.python_version()}
    for pkg in ("vowledger", "httpx"):
        try:
            versions[pkg] = importlib.metadata.version(pkg)
        except importlib.metadata.PackageNotFoundError:
            versions[pkg] = "unknown"
    result["versions"] = versions

    result["sync"] = sync.health() if sync is not None else None
    return result
