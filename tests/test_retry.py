"""Tests for the ledger query retry policy."""

from __future__ import annotations

import logging

import httpx
import pytest

from conftest import RecordingSleep
from dex_adapter.client import LedgerConnectionError, LedgerRpcError
from dex_adapter.retry import RetryPolicy


class Flaky:
    """Async callable failing a fixed number of times before succeeding."""

    def __init__(self, failures: int, error: BaseException | None = None) -> None:
        self.failures = failures
        self.error = error or LedgerConnectionError("down")
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_success_needs_no_retry(self, sleep: RecordingSleep) -> None:
        call = Flaky(0)
        assert await RetryPolicy(sleep=sleep).run("getAccount", call) == "ok"
        assert call.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_retries_with_fixed_delay(self, sleep: RecordingSleep) -> None:
        call = Flaky(3)
        result = await RetryPolicy(delay=5.0, sleep=sleep).run("getAccount", call)
        assert result == "ok"
        assert call.calls == 4
        assert sleep.delays == [5.0, 5.0, 5.0]

    @pytest.mark.asyncio
    async def test_failures_are_logged(
        self, sleep: RecordingSleep, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="dex_adapter.retry"):
            await RetryPolicy(sleep=sleep).run("getBlockAtHeight", Flaky(2))
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 2
        assert "getBlockAtHeight" in warnings[0].getMessage()
        assert warnings[1].attempt == 2

    @pytest.mark.asyncio
    async def test_max_attempts_reraises(self, sleep: RecordingSleep) -> None:
        call = Flaky(10)
        with pytest.raises(LedgerConnectionError):
            await RetryPolicy(max_attempts=3, sleep=sleep).run("getAccount", call)
        assert call.calls == 3
        assert len(sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_rpc_errors_are_retried(self, sleep: RecordingSleep) -> None:
        call = Flaky(1, LedgerRpcError(-32000, "busy"))
        assert await RetryPolicy(sleep=sleep).run("getAccount", call) == "ok"

    @pytest.mark.asyncio
    async def test_httpx_errors_are_retried(self, sleep: RecordingSleep) -> None:
        call = Flaky(1, httpx.ConnectError("refused"))
        assert await RetryPolicy(sleep=sleep).run("getAccount", call) == "ok"

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, sleep: RecordingSleep) -> None:
        call = Flaky(1, KeyError("boom"))
        with pytest.raises(KeyError):
            await RetryPolicy(sleep=sleep).run("getAccount", call)
        assert call.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_on_retry_hook(self, sleep: RecordingSleep) -> None:
        seen: list[tuple[str, int]] = []
        policy = RetryPolicy(sleep=sleep, on_retry=lambda op, attempt, exc: seen.append((op, attempt)))
        await policy.run("getAccount", Flaky(2))
        assert seen == [("getAccount", 1), ("getAccount", 2)]

    def test_jitter_bounds(self) -> None:
        policy = RetryPolicy(delay=2.0, jitter=1.0)
        for _ in range(100):
            assert 2.0 <= policy.next_delay() <= 3.0

    def test_no_jitter_is_exact(self) -> None:
        assert RetryPolicy(delay=1.5).next_delay() == 1.5
