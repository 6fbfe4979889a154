"""HttpVault: VaultBackend over a REST document store, using raw httpx.

Endpoints (relative to ``base_url``):

- Write state: PUT /ledgers/{name} -> JSON body ``{"state": "..."}``,
  response ``{"revision": "..."}``
- Read state: GET /ledgers/{name} -> ``{"state": "..."}``; 404 if never stored
- Snapshot: POST /ledgers/{name}/snapshots -> JSON body
  ``{"timestamp": "...", "state": "..."}``, response ``{"id": "..."}``
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from vowledger.config import LedgerConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------


class VaultError(Exception):
    """Base exception for vault operations."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class VaultAuthError(VaultError):
    """401/403: authentication or authorization failure."""


class VaultNotFoundError(VaultError):
    """404: ledger document not found."""


class VaultServerError(VaultError):
    """5xx: server-side error (retryable)."""


class VaultConnectionError(VaultError):
    """Network/DNS failure (retryable)."""


class VaultTimeoutError(VaultError):
    """Request timeout (retryable)."""


_STATUS_MAP: dict[int, type[VaultError]] = {
    401: VaultAuthError,
    403: VaultAuthError,
    404: VaultNotFoundError,
}


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class HttpVault:
    """Vault persistence via a REST document store.

    Implements the vowledger ``VaultBackend`` protocol:

    - ``store_state(ledger_name, state_json) -> str``
    - ``fetch_state(ledger_name) -> str | None``
    - ``snapshot_state(ledger_name, state_json, timestamp) -> str | None``
    """

    def __init__(self, base_url: str, api_key: str | None = None) -> None:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(connect=5.0, read=15.0, write=10.0, pool=5.0),
        )

    @classmethod
    def from_config(cls, config: LedgerConfig) -> HttpVault:
        if not config.vault_url:
            raise ValueError("vault_url is required to build an HttpVault.")
        return cls(config.vault_url, api_key=config.vault_api_key)

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and map errors to the vault exception hierarchy."""
        try:
            response = await self._client.request(method, endpoint, json=json_data)
        except httpx.ConnectError as exc:
            raise VaultConnectionError(str(exc)) from exc
        except httpx.TimeoutException as exc:
            raise VaultTimeoutError(str(exc)) from exc

        if response.status_code >= 400:
            body = response.text
            exc_cls = _STATUS_MAP.get(response.status_code)
            if exc_cls is not None:
                raise exc_cls(body, status_code=response.status_code)
            if response.status_code >= 500:
                raise VaultServerError(body, status_code=response.status_code)
            raise VaultError(body, status_code=response.status_code)

        return response.json()

    # -- VaultBackend protocol -----------------------------------------------

    async def store_state(self, ledger_name: str, state_json: str) -> str:
        """Overwrite the ledger document. Returns the stored revision id."""
        data = await self._request(
            "PUT", f"/ledgers/{ledger_name}", json_data={"state": state_json}
        )
        return str(data.get("revision", ""))

    async def fetch_state(self, ledger_name: str) -> str | None:
        """Return the stored ledger JSON, or None if nothing was stored yet."""
        try:
            data = await self._request("GET", f"/ledgers/{ledger_name}")
        except VaultNotFoundError:
            return None
        return data.get("state") or None

    async def snapshot_state(
        self, ledger_name: str, state_json: str, timestamp: str
    ) -> str | None:
        """Create a timestamped snapshot. Returns None if the ledger is unknown."""
        try:
            data = await self._request(
                "POST",
                f"/ledgers/{ledger_name}/snapshots",
                json_data={"timestamp": timestamp, "state": state_json},
            )
        except VaultNotFoundError:
            logger.warning("No stored ledger %s to snapshot.", ledger_name)
            return None
        return data.get("id")

    # -- lifecycle ------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> HttpVault:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
