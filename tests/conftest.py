"""Shared fixtures: an in-memory ledger and adapter factories.

The fake ledger honours the query semantics of ``LedgerQueryService`` and
records every call so tests can assert how often the ledger was consulted.
"""

from __future__ import annotations

from typing import Any

import pytest

from dex_adapter.adapter import ChainAdapter
from dex_adapter.client import LedgerConnectionError
from dex_adapter.config import AdapterSettings
from dex_adapter.identity import address_from_public_key, keypair_from_passphrase, keypair_from_seed
from dex_adapter.query import LedgerQueryClient
from dex_adapter.retry import RetryPolicy

MEMBER_PASSPHRASE = "tell sun crazy time creek carbon cloud various turtle leisure cactus melody"
MULTISIG_PUBLIC_KEY = keypair_from_seed(b"\x07" * 32)[1].hex()
OTHER_MEMBER_PUBLIC_KEY = keypair_from_seed(b"\x08" * 32)[1].hex()
MEMBER_PUBLIC_KEY = keypair_from_passphrase(MEMBER_PASSPHRASE)[1].hex()
MULTISIG_ADDRESS = address_from_public_key(bytes.fromhex(MULTISIG_PUBLIC_KEY))
RECIPIENT_ADDRESS = address_from_public_key(keypair_from_seed(b"\x09" * 32)[1])

BASE_TIMESTAMP = 1_609_540_000


def block_timestamp(height: int) -> int:
    return BASE_TIMESTAMP + height * 10


class FakeLedgerService:
    """In-memory ``LedgerQueryService`` with call recording and failure injection."""

    def __init__(self, *, account_nonce: int | str = "5", max_height: int = 150) -> None:
        self.account: dict[str, Any] = {
            "address": MULTISIG_ADDRESS,
            "publicKey": MULTISIG_PUBLIC_KEY,
            "nonce": account_nonce,
            "multisigPublicKeys": [OTHER_MEMBER_PUBLIC_KEY, MEMBER_PUBLIC_KEY],
            "multisigThreshold": 2,
        }
        self.blocks: dict[int, dict[str, Any]] = {
            height: {"id": f"block-{height}", "height": height, "timestamp": block_timestamp(height)}
            for height in range(max_height + 1)
        }
        self.transactions: list[dict[str, Any]] = []
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.failures: dict[str, int] = {}

    # ----- test helpers ----------------------------------------------------

    def add_transaction(
        self,
        nonce: int,
        *,
        height: int | None = None,
        timestamp: int | None = None,
        message: str = "",
        tx_id: str | None = None,
    ) -> dict[str, Any]:
        if timestamp is None:
            timestamp = block_timestamp(height if height is not None else 0)
        record = {
            "id": tx_id or f"tx-{nonce}",
            "nonce": str(nonce),
            "timestamp": timestamp,
            "message": message,
            "blockId": f"block-{height}" if height is not None else None,
        }
        self.transactions.append(record)
        return record

    def strip_optional_fields(self) -> None:
        """Answer with only the fields every ledger is required to send."""
        self.account = {
            key: self.account[key] for key in ("nonce", "multisigPublicKeys", "multisigThreshold")
        }
        for block in self.blocks.values():
            del block["id"]

    def fail_next(self, operation: str, times: int = 1) -> None:
        self.failures[operation] = times

    def count(self, operation: str) -> int:
        return sum(1 for op, args in self.calls if op == operation)

    def outbound_calls(self, order: str) -> list[tuple[Any, ...]]:
        return [args for op, args in self.calls if op == "get_outbound_transactions" and args[3] == order]

    def _record(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, args))
        remaining = self.failures.get(operation, 0)
        if remaining:
            self.failures[operation] = remaining - 1
            raise LedgerConnectionError("ledger unavailable")

    @staticmethod
    def _key(record: dict[str, Any]) -> tuple[int, int]:
        return record["timestamp"], int(record["nonce"])

    # ----- LedgerQueryService ----------------------------------------------

    async def get_account(self, address: str) -> Any:
        self._record("get_account", address)
        return dict(self.account)

    async def get_block_at_height(self, height: int) -> Any:
        self._record("get_block_at_height", height)
        return self.blocks.get(height)

    async def get_outbound_transactions(
        self, address: str, from_timestamp: int, limit: int, order: str
    ) -> Any:
        self._record("get_outbound_transactions", address, from_timestamp, limit, order)
        if order == "desc":
            found = [t for t in self.transactions if t["timestamp"] <= from_timestamp]
            found.sort(key=self._key, reverse=True)
        else:
            found = [t for t in self.transactions if t["timestamp"] >= from_timestamp]
            found.sort(key=self._key)
        return [dict(t) for t in found[:limit]]

    async def get_outbound_transactions_from_block(self, address: str, block_id: str) -> Any:
        self._record("get_outbound_transactions_from_block", address, block_id)
        return [dict(t) for t in self.transactions if t["blockId"] == block_id]

    async def get_blocks_between_heights(self, from_height: int, limit: int) -> Any:
        self._record("get_blocks_between_heights", from_height, limit)
        heights = sorted(h for h in self.blocks if h >= from_height)[:limit]
        return [dict(self.blocks[h]) for h in heights]


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def ledger() -> FakeLedgerService:
    return FakeLedgerService()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def query(ledger: FakeLedgerService, sleep: RecordingSleep) -> LedgerQueryClient:
    return LedgerQueryClient(ledger, RetryPolicy(delay=5.0, sleep=sleep))


def make_settings(**overrides: Any) -> AdapterSettings:
    values: dict[str, Any] = {
        "multisig_public_key": MULTISIG_PUBLIC_KEY,
        "passphrase": MEMBER_PASSPHRASE,
        "retry_delay": 0.0,
    }
    values.update(overrides)
    return AdapterSettings(_env_file=None, **values)


@pytest.fixture
def make_adapter(query: LedgerQueryClient):
    """Factory for a loaded adapter; an async closure so tests control the height."""

    async def _make(height: int = 100, **overrides: Any) -> ChainAdapter:
        adapter = ChainAdapter(make_settings(**overrides))
        await adapter.load(query, height)
        return adapter

    return _make
