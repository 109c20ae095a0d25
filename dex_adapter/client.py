"""Ledger Query Service: the network boundary.

:class:`LedgerQueryService` defines the raw read operations the adapter
consumes; :class:`JsonRpcLedgerService` implements them over JSON-RPC 2.0
with :mod:`httpx`. Services return decoded JSON and raise
:class:`LedgerServiceError` subclasses on failure; validation and retries
live one layer up in :mod:`dex_adapter.query`.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class LedgerServiceError(Exception):
    """Base class for failures talking to the Ledger Query Service."""


class LedgerRpcError(LedgerServiceError):
    """Raised when the service returns a JSON-RPC error response."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"RPC error {code}: {message}")


class LedgerConnectionError(LedgerServiceError):
    """Raised when the service cannot be reached."""


class LedgerTimeoutError(LedgerServiceError):
    """Raised when a request to the service exceeds its deadline."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class LedgerQueryService(Protocol):
    """Raw read access to account state, blocks and outbound history.

    Query semantics:
        - ``get_outbound_transactions`` with ``order="desc"`` returns records
          with ``timestamp <= from_timestamp``, newest first; with
          ``order="asc"`` records with ``timestamp >= from_timestamp``,
          oldest first. Never more than ``limit`` records.
        - ``get_blocks_between_heights`` returns blocks with
          ``height >= from_height`` in ascending order.
    """

    async def get_account(self, address: str) -> Any: ...

    async def get_block_at_height(self, height: int) -> Any: ...

    async def get_outbound_transactions(
        self, address: str, from_timestamp: int, limit: int, order: str
    ) -> Any: ...

    async def get_outbound_transactions_from_block(self, address: str, block_id: str) -> Any: ...

    async def get_blocks_between_heights(self, from_height: int, limit: int) -> Any: ...


# ---------------------------------------------------------------------------
# JSON-RPC implementation
# ---------------------------------------------------------------------------


class JsonRpcLedgerService:
    """Async JSON-RPC client for a ledger node's DEX query module.

    Methods are namespaced with the module alias, e.g. ``ark:getAccount``.

    Args:
        node_url: Base URL of the node (e.g. ``"http://localhost:4003"``).
        module_alias: Namespace of the query module.
        timeout: Default request timeout in seconds.

    Example::

        async with JsonRpcLedgerService("http://localhost:4003") as service:
            account = await service.get_account("dex1...")
    """

    def __init__(
        self,
        node_url: str,
        *,
        module_alias: str = "ark",
        timeout: float = 15.0,
    ) -> None:
        self._node_url = node_url.rstrip("/")
        self._module_alias = module_alias
        self._timeout = timeout
        self._request_id = 0
        self._client: httpx.AsyncClient | None = None

    # ----- lifecycle -------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._node_url,
                timeout=self._timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "JsonRpcLedgerService":
        await self._ensure_client()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ----- internal helpers ------------------------------------------------

    def _next_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def _call(self, action: str, params: dict[str, Any]) -> Any:
        """Send a JSON-RPC 2.0 request and return the ``result`` field."""
        client = await self._ensure_client()
        payload = {
            "jsonrpc": "2.0",
            "method": f"{self._module_alias}:{action}",
            "params": params,
            "id": self._next_id(),
        }
        try:
            resp = await client.post("/rpc", json=payload)
            resp.raise_for_status()
        except httpx.TimeoutException as exc:
            raise LedgerTimeoutError(f"request to {self._node_url} timed out") from exc
        except httpx.HTTPStatusError as exc:
            raise LedgerConnectionError(
                f"{self._node_url} answered HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise LedgerConnectionError(f"cannot reach {self._node_url}: {exc}") from exc

        try:
            body = resp.json()
        except ValueError as exc:
            raise LedgerServiceError(f"non-JSON response from {self._node_url}") from exc
        if not isinstance(body, dict):
            raise LedgerServiceError(f"unexpected JSON-RPC envelope from {self._node_url}")

        if body.get("error") is not None:
            err = body["error"]
            raise LedgerRpcError(
                code=err.get("code", -1),
                message=err.get("message", "unknown error"),
                data=err.get("data"),
            )
        return body.get("result")

    # ----- public API ------------------------------------------------------

    async def get_account(self, address: str) -> Any:
        return await self._call("getAccount", {"walletAddress": address})

    async def get_block_at_height(self, height: int) -> Any:
        return await self._call("getBlockAtHeight", {"height": height})

    async def get_outbound_transactions(
        self, address: str, from_timestamp: int, limit: int, order: str
    ) -> Any:
        return await self._call(
            "getOutboundTransactions",
            {
                "walletAddress": address,
                "fromTimestamp": from_timestamp,
                "limit": limit,
                "order": order,
            },
        )

    async def get_outbound_transactions_from_block(self, address: str, block_id: str) -> Any:
        return await self._call(
            "getOutboundTransactionsFromBlock",
            {"walletAddress": address, "blockId": block_id},
        )

    async def get_blocks_between_heights(self, from_height: int, limit: int) -> Any:
        return await self._call(
            "getBlocksBetweenHeights",
            {"fromHeight": from_height, "limit": limit},
        )
