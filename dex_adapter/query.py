"""Retry-wrapped, validated read access to the Ledger Query Service.

:class:`LedgerQueryClient` is the only way the rest of the adapter talks to
the ledger. Every call is retried under a :class:`RetryPolicy` until the
service answers, and every answer is validated into the records of
:mod:`dex_adapter.types` before it leaves this module.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import TypeAdapter, ValidationError

from dex_adapter.client import JsonRpcLedgerService, LedgerQueryService
from dex_adapter.config import AdapterSettings
from dex_adapter.errors import MalformedResponseError
from dex_adapter.retry import RetryPolicy
from dex_adapter.types import Account, Block, Order, OutboundTransactionRecord

logger = logging.getLogger(__name__)

R = TypeVar("R")

_RECORDS = TypeAdapter(list[OutboundTransactionRecord])
_BLOCKS = TypeAdapter(list[Block])


class LedgerQueryClient:
    """Ledger reads that never fail transiently.

    Args:
        service: The raw query service.
        retry: Retry policy; defaults to retrying forever every 5 seconds.
    """

    def __init__(self, service: LedgerQueryService, retry: RetryPolicy | None = None) -> None:
        self._service = service
        self._retry = retry or RetryPolicy()

    @classmethod
    def from_settings(
        cls, settings: AdapterSettings, service: LedgerQueryService | None = None
    ) -> "LedgerQueryClient":
        """Build a client using the configured endpoint and retry timings."""
        if service is None:
            service = JsonRpcLedgerService(
                settings.ledger_url,
                module_alias=settings.module_alias,
                timeout=settings.request_timeout,
            )
        retry = RetryPolicy(delay=settings.retry_delay, jitter=settings.retry_jitter)
        return cls(service, retry)

    @property
    def service(self) -> LedgerQueryService:
        return self._service

    # ----- internal helpers ------------------------------------------------

    async def _fetch(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Any:
        return await self._retry.run(operation, call)

    @staticmethod
    def _validate(operation: str, validator: Callable[[Any], R], raw: Any) -> R:
        try:
            return validator(raw)
        except ValidationError as exc:
            logger.error("Rejected malformed %s response", operation, extra={"operation": operation})
            raise MalformedResponseError(operation, str(exc)) from exc

    # ----- public API ------------------------------------------------------

    async def get_account(self, address: str) -> Account:
        """Fetch the account snapshot for *address*."""
        raw = await self._fetch("getAccount", lambda: self._service.get_account(address))
        return self._validate("getAccount", Account.model_validate, raw)

    async def get_block_at_height(self, height: int) -> Block:
        raw = await self._fetch(
            "getBlockAtHeight", lambda: self._service.get_block_at_height(height)
        )
        return self._validate("getBlockAtHeight", Block.model_validate, raw)

    async def get_outbound_transactions(
        self,
        address: str,
        from_timestamp: int,
        limit: int,
        order: Order | str = Order.ASC,
    ) -> list[OutboundTransactionRecord]:
        """Fetch one page of outbound transactions.

        A page holding exactly ``limit`` records means more may exist beyond
        it; callers paginate by moving ``from_timestamp``.
        """
        order = Order(order)
        raw = await self._fetch(
            "getOutboundTransactions",
            lambda: self._service.get_outbound_transactions(
                address, from_timestamp, limit, order.value
            ),
        )
        return self._validate("getOutboundTransactions", _RECORDS.validate_python, raw or [])

    async def get_outbound_transactions_from_block(
        self, address: str, block_id: str
    ) -> list[OutboundTransactionRecord]:
        raw = await self._fetch(
            "getOutboundTransactionsFromBlock",
            lambda: self._service.get_outbound_transactions_from_block(address, block_id),
        )
        return self._validate(
            "getOutboundTransactionsFromBlock", _RECORDS.validate_python, raw or []
        )

    async def get_blocks_between_heights(self, from_height: int, limit: int) -> list[Block]:
        """Fetch up to *limit* blocks starting at *from_height*, ascending."""
        raw = await self._fetch(
            "getBlocksBetweenHeights",
            lambda: self._service.get_blocks_between_heights(from_height, limit),
        )
        return self._validate("getBlocksBetweenHeights", _BLOCKS.validate_python, raw or [])

    async def get_last_outbound_transaction(
        self, address: str, at_timestamp: int
    ) -> OutboundTransactionRecord | None:
        """Return the newest outbound transaction at or before *at_timestamp*."""
        records = await self.get_outbound_transactions(address, at_timestamp, 1, Order.DESC)
        return records[0] if records else None
