"""Nonce sequencing and calibration.

The calibrator is the single owner of :class:`SequencerState` and the only
component allowed to decide which nonce the next transfer uses. It is
recalibrated from ledger history on every ``reset`` and cross-checks the
ledger once per block (distinct instruction timestamp) while issuing.

Two recovery policies share that machinery:

* :class:`HistoryReplayCalibrator` detects reprocessed instructions by
  scanning outbound history after the resync point for a transaction
  carrying the same message.
* :class:`RollingCacheCalibrator` remembers recently issued identifiers,
  rebuilt from the blocks after the resync point, and replays their nonces.

Any sequencing failure halts issuance until the next ``reset``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar

from dex_adapter.cache import RecentIdentifiers
from dex_adapter.errors import (
    CalibrationError,
    MalformedResponseError,
    NonceRegressionError,
    SequencingError,
    SequencingHaltedError,
)
from dex_adapter.query import LedgerQueryClient
from dex_adapter.types import (
    Block,
    NoncePolicy,
    Order,
    OutboundTransactionRecord,
    PaymentInstruction,
)

logger = logging.getLogger(__name__)


@dataclass
class SequencerState:
    """Mutable sequencing state for one reset epoch.

    Attributes:
        next_nonce: Nonce the next fresh instruction receives.
        recent_identifiers: Idempotency key to nonce, bounded.
        calibrated: Whether the post-reset calibration has completed.
        last_timestamp_seen: Timestamp of the last block cross-checked
            against the ledger.
        resync_height: Height passed to the last ``reset``.
        resync_timestamp: Timestamp of the block at ``resync_height``.
        halted: Set after a fatal sequencing error.
    """

    next_nonce: int
    recent_identifiers: RecentIdentifiers
    calibrated: bool = False
    last_timestamp_seen: int | None = None
    resync_height: int | None = None
    resync_timestamp: int | None = None
    halted: bool = False


class NonceCalibrator(ABC):
    """Base calibrator; subclasses choose how reprocessing is detected.

    Args:
        query: Ledger access.
        address: Address of the controlled multisig account.
        initial_account_nonce: Ledger nonce of the account at load time,
            used when no outbound history exists.
        recent_identifier_capacity: Bound of the identifier cache.
    """

    policy: ClassVar[NoncePolicy]

    def __init__(
        self,
        query: LedgerQueryClient,
        address: str,
        initial_account_nonce: int,
        *,
        recent_identifier_capacity: int = 1000,
    ) -> None:
        self._query = query
        self._address = address
        self._initial_account_nonce = initial_account_nonce
        self._capacity = recent_identifier_capacity
        self._state = self._fresh_state(initial_account_nonce + 1)

    @property
    def state(self) -> SequencerState:
        return self._state

    @property
    def next_nonce(self) -> int:
        return self._state.next_nonce

    def _fresh_state(
        self,
        next_nonce: int,
        *,
        height: int | None = None,
        timestamp: int | None = None,
    ) -> SequencerState:
        return SequencerState(
            next_nonce=next_nonce,
            recent_identifiers=RecentIdentifiers(self._capacity),
            resync_height=height,
            resync_timestamp=timestamp,
        )

    # ----- ledger helpers --------------------------------------------------

    async def last_confirmed_nonce(self, at_timestamp: int) -> int:
        """Highest outbound nonce at or before *at_timestamp*.

        Falls back to the account's ledger nonce when the account has no
        outbound history in that window.
        """
        record = await self._query.get_last_outbound_transaction(self._address, at_timestamp)
        return record.nonce if record is not None else self._initial_account_nonce

    # ----- reset -----------------------------------------------------------

    async def reset(self, height: int) -> SequencerState:
        """Resynchronize from the block at *height*.

        The whole state is replaced, so this is the only way ``next_nonce``
        can move backwards.
        """
        block = await self._query.get_block_at_height(height)
        last_nonce = await self.last_confirmed_nonce(block.timestamp)
        self._state = self._fresh_state(
            last_nonce + 1, height=block.height, timestamp=block.timestamp
        )
        await self._rebuild(block)
        logger.debug(
            "Nonce was reset to %d at height %d",
            self._state.next_nonce,
            block.height,
            extra={"policy": self.policy.value, "height": block.height},
        )
        return self._state

    async def _rebuild(self, block: Block) -> None:
        """Policy hook run at the end of ``reset``."""

    # ----- issuing ---------------------------------------------------------

    async def assign(self, instruction: PaymentInstruction) -> int:
        """Return the nonce *instruction* must use.

        The nonce is only committed once every check has passed; a failed
        call halts issuance until the next ``reset``.

        Raises:
            SequencingHaltedError: If a previous call failed fatally.
            CalibrationError: If no safe nonce could be determined.
            NonceRegressionError: If local state and ledger history disagree.
        """
        state = self._state
        if state.halted:
            raise SequencingHaltedError(
                "nonce issuance is halted; reset the adapter from an earlier safe height"
            )
        try:
            nonce, replay = await self._select(instruction)
            await self._check_ledger_floor(instruction.timestamp, nonce)
        except SequencingError as exc:
            state.halted = True
            logger.error(
                "Nonce sequencing halted: %s",
                exc,
                extra={"policy": self.policy.value, "next_nonce": state.next_nonce},
            )
            raise
        self._commit(instruction, nonce, replay)
        return nonce

    @abstractmethod
    async def _select(self, instruction: PaymentInstruction) -> tuple[int, bool]:
        """Pick the nonce without committing it; returns ``(nonce, replay)``."""

    def _commit(self, instruction: PaymentInstruction, nonce: int, replay: bool) -> None:
        if nonce >= self._state.next_nonce:
            self._state.next_nonce = nonce + 1

    async def _check_ledger_floor(self, timestamp: int, nonce: int) -> None:
        # Only the first instruction of each block is checked; re-querying
        # mid-block could observe a partially committed sequence.
        state = self._state
        if timestamp == state.last_timestamp_seen:
            return
        record = await self._query.get_last_outbound_transaction(self._address, timestamp - 1)
        minimum = (record.nonce if record is not None else self._initial_account_nonce) + 1
        if nonce < minimum:
            raise NonceRegressionError(
                nonce, minimum, "nonce is lower than the minimum expected by the ledger"
            )
        state.last_timestamp_seen = timestamp

    def _raise_floor(self, nonce: int) -> None:
        if nonce > self._state.next_nonce:
            self._state.next_nonce = nonce


class HistoryReplayCalibrator(NonceCalibrator):
    """Detects reprocessing by replaying outbound history after a reset.

    On the first instruction of each reset epoch, outbound transactions after
    the resync block are paged through in ascending order. A transaction
    whose message equals the instruction's message means the instruction was
    already broadcast and its nonce is adopted; any other transaction pushes
    ``next_nonce`` past it.

    Args:
        lookahead_page_size: Records per history page.
        max_lookahead_iterations: Pages to read before giving up.
    """

    policy = NoncePolicy.HISTORY_REPLAY

    def __init__(
        self,
        query: LedgerQueryClient,
        address: str,
        initial_account_nonce: int,
        *,
        lookahead_page_size: int = 100,
        max_lookahead_iterations: int = 10,
        recent_identifier_capacity: int = 1000,
    ) -> None:
        super().__init__(
            query,
            address,
            initial_account_nonce,
            recent_identifier_capacity=recent_identifier_capacity,
        )
        if lookahead_page_size < 1:
            raise ValueError("lookahead_page_size must be at least 1")
        if max_lookahead_iterations < 1:
            raise ValueError("max_lookahead_iterations must be at least 1")
        self._page_size = lookahead_page_size
        self._max_iterations = max_lookahead_iterations

    async def _select(self, instruction: PaymentInstruction) -> tuple[int, bool]:
        state = self._state
        if state.calibrated:
            return state.next_nonce, False
        matched = await self._look_ahead(instruction.message)
        state.calibrated = True
        return state.next_nonce, matched

    async def _look_ahead(self, message: str) -> bool:
        state = self._state
        cursor = 0 if state.resync_timestamp is None else state.resync_timestamp + 1
        seen: set[str] = set()

        for iteration in range(1, self._max_iterations + 1):
            page = await self._query.get_outbound_transactions(
                self._address, cursor, self._page_size, Order.ASC
            )
            fresh = 0
            for record in page:
                if record.id in seen:
                    continue
                seen.add(record.id)
                fresh += 1
                if message and record.message == message:
                    self._adopt(record)
                    return True
                self._raise_floor(record.nonce + 1)
                cursor = max(cursor, record.timestamp)

            if len(page) < self._page_size:
                logger.debug(
                    "Look-ahead found no prior broadcast after %d page(s); next nonce %d",
                    iteration,
                    state.next_nonce,
                )
                return False
            if not fresh:
                # A full page of already seen records: the cursor timestamp
                # holds at least a page of transactions and cannot be passed.
                raise CalibrationError(
                    f"at least {self._page_size} outbound transactions share "
                    f"timestamp {cursor}; look-ahead cannot advance"
                )

        raise CalibrationError(
            f"look-ahead exceeded {self._max_iterations} pages of "
            f"{self._page_size} records without reaching the end of history"
        )

    def _adopt(self, record: OutboundTransactionRecord) -> None:
        state = self._state
        if record.nonce < state.next_nonce:
            raise NonceRegressionError(
                state.next_nonce,
                record.nonce,
                "previously broadcast transaction is behind the local sequence",
            )
        state.next_nonce = record.nonce
        logger.info(
            "Instruction was already broadcast as %s; reusing nonce %d",
            record.id,
            record.nonce,
            extra={"transaction_id": record.id, "nonce": record.nonce},
        )


class RollingCacheCalibrator(NonceCalibrator):
    """Detects reprocessing through a bounded cache of issued identifiers.

    ``reset`` seeds the cache from the outbound transactions of up to
    ``reset_scan_block_limit`` blocks after the resync height. An
    instruction whose id or message is cached gets its previous nonce back
    instead of a new one.
    """

    policy = NoncePolicy.ROLLING_CACHE

    def __init__(
        self,
        query: LedgerQueryClient,
        address: str,
        initial_account_nonce: int,
        *,
        reset_scan_block_limit: int = 100,
        recent_identifier_capacity: int = 1000,
    ) -> None:
        super().__init__(
            query,
            address,
            initial_account_nonce,
            recent_identifier_capacity=recent_identifier_capacity,
        )
        if reset_scan_block_limit < 0:
            raise ValueError("reset_scan_block_limit must not be negative")
        self._scan_limit = reset_scan_block_limit

    async def _rebuild(self, block: Block) -> None:
        state = self._state
        if self._scan_limit:
            blocks = await self._query.get_blocks_between_heights(block.height + 1, self._scan_limit)
            for later in blocks:
                if later.id is None:
                    raise MalformedResponseError(
                        "getBlocksBetweenHeights", f"block at height {later.height} has no id"
                    )
                records = await self._query.get_outbound_transactions_from_block(
                    self._address, later.id
                )
                for record in sorted(records, key=lambda r: r.sort_key):
                    state.recent_identifiers.put(record.idempotency_key, record.nonce)
        state.calibrated = True
        logger.debug(
            "Cached %d identifier(s) from blocks after height %d",
            len(state.recent_identifiers),
            block.height,
        )

    async def _select(self, instruction: PaymentInstruction) -> tuple[int, bool]:
        # The instruction id is tried first; records rebuilt from the ledger
        # are only known by their message.
        for key in instruction.lookup_keys:
            cached = self._state.recent_identifiers.get(key)
            if cached is not None:
                return cached, True
        return self._state.next_nonce, False

    def _commit(self, instruction: PaymentInstruction, nonce: int, replay: bool) -> None:
        super()._commit(instruction, nonce, replay)
        key = instruction.idempotency_key
        if replay:
            logger.info(
                "Replaying instruction %s with nonce %d",
                key,
                nonce,
                extra={"idempotency_key": key, "nonce": nonce},
            )
        elif key is not None:
            self._state.recent_identifiers.put(key, nonce)


def create_calibrator(
    policy: NoncePolicy | str,
    query: LedgerQueryClient,
    address: str,
    initial_account_nonce: int,
    *,
    lookahead_page_size: int = 100,
    max_lookahead_iterations: int = 10,
    recent_identifier_capacity: int = 1000,
    reset_scan_block_limit: int = 100,
) -> NonceCalibrator:
    """Instantiate the calibrator implementing *policy*."""
    policy = NoncePolicy(policy)
    if policy is NoncePolicy.HISTORY_REPLAY:
        return HistoryReplayCalibrator(
            query,
            address,
            initial_account_nonce,
            lookahead_page_size=lookahead_page_size,
            max_lookahead_iterations=max_lookahead_iterations,
            recent_identifier_capacity=recent_identifier_capacity,
        )
    return RollingCacheCalibrator(
        query,
        address,
        initial_account_nonce,
        reset_scan_block_limit=reset_scan_block_limit,
        recent_identifier_capacity=recent_identifier_capacity,
    )
