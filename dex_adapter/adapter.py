"""Chain adapter exposed to the DEX settlement module.

:class:`ChainAdapter` wires the query client, the nonce calibrator, the
transaction preparer and the signature verifier together behind the
lifecycle the host drives:

    load → (reset | prepare_transaction | verify_transaction_signature)* → unload

Calls are expected strictly in sequence, one instruction at a time in block
order; nothing here is safe under concurrent preparation.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from dex_adapter.calibrator import NonceCalibrator, create_calibrator
from dex_adapter.config import AdapterSettings
from dex_adapter.errors import AdapterNotLoadedError, MembershipError
from dex_adapter.preparer import TransactionPreparer
from dex_adapter.query import LedgerQueryClient
from dex_adapter.sdk import ChainSDK, Ed25519ChainSDK
from dex_adapter.types import (
    PaymentInstruction,
    PreparedResult,
    PreparedTransaction,
    SignaturePacket,
)
from dex_adapter.verifier import SignatureVerifier
from dex_adapter.wallet import MemberWallet

logger = logging.getLogger(__name__)


class ChainAdapter:
    """Multisig transfer preparation and verification for one account.

    Args:
        settings: Adapter configuration.
        sdk: Chain SDK; defaults to :class:`Ed25519ChainSDK` with the
            configured address prefix.

    Example::

        settings = AdapterSettings()
        adapter = ChainAdapter(settings)
        await adapter.load(LedgerQueryClient.from_settings(settings), last_processed_height)
        result = await adapter.prepare_transaction(instruction)
    """

    def __init__(self, settings: AdapterSettings, *, sdk: ChainSDK | None = None) -> None:
        self._settings = settings
        self._sdk = sdk or Ed25519ChainSDK(settings.address_prefix)
        self._multisig_public_key = settings.multisig_public_key.lower()
        self._multisig_address = self._sdk.address_from_public_key(self._multisig_public_key)
        self._wallet = MemberWallet.from_passphrase(
            self._sdk, settings.passphrase.get_secret_value()
        )
        self._verifier = SignatureVerifier(self._sdk)

        self._query: LedgerQueryClient | None = None
        self._calibrator: NonceCalibrator | None = None
        self._preparer: TransactionPreparer | None = None
        self._member_index: int | None = None

    # ----- properties ------------------------------------------------------

    @property
    def multisig_address(self) -> str:
        return self._multisig_address

    @property
    def member_address(self) -> str:
        return self._wallet.address

    @property
    def member_public_key(self) -> str:
        return self._wallet.public_key

    @property
    def member_index(self) -> int | None:
        return self._member_index

    @property
    def calibrator(self) -> NonceCalibrator:
        if self._calibrator is None:
            raise AdapterNotLoadedError("the adapter has not been loaded")
        return self._calibrator

    @property
    def loaded(self) -> bool:
        return self._query is not None

    # ----- lifecycle -------------------------------------------------------

    async def load(self, query: LedgerQueryClient, last_processed_height: int) -> None:
        """Fetch the multisig account and calibrate the nonce at *last_processed_height*.

        Raises:
            MembershipError: If this node's key is not in the multisig group.
        """
        account = await query.get_account(self._multisig_address)
        try:
            member_index = self._wallet.index_in(account.multisig_public_keys)
        except ValueError:
            raise MembershipError(
                f"member key {self._wallet.public_key} is not part of multisig "
                f"account {self._multisig_address}"
            ) from None

        settings = self._settings
        calibrator = create_calibrator(
            settings.nonce_policy,
            query,
            self._multisig_address,
            account.nonce,
            lookahead_page_size=settings.lookahead_page_size,
            max_lookahead_iterations=settings.max_lookahead_iterations,
            recent_identifier_capacity=settings.recent_identifier_capacity,
            reset_scan_block_limit=settings.reset_scan_block_limit,
        )

        self._query = query
        self._member_index = member_index
        self._calibrator = calibrator
        self._preparer = TransactionPreparer(
            self._sdk,
            calibrator,
            self._wallet,
            member_index=member_index,
            multisig_public_key=self._multisig_public_key,
            multisig_address=self._multisig_address,
            network=settings.network,
            version=settings.transaction_version,
        )
        logger.info(
            "Chain adapter loaded",
            extra={
                "multisig_address": self._multisig_address,
                "member_address": self._wallet.address,
                "member_index": member_index,
                "account_nonce": account.nonce,
                "nonce_policy": calibrator.policy.value,
            },
        )
        await self.reset(last_processed_height)

    async def unload(self) -> None:
        """Release the query client; the host owns and closes it."""
        self._query = None
        self._calibrator = None
        self._preparer = None
        self._member_index = None

    async def reset(self, last_processed_height: int) -> None:
        """Resynchronize the nonce from *last_processed_height*."""
        await self.calibrator.reset(last_processed_height)

    # ----- DEX API ---------------------------------------------------------

    async def prepare_transaction(
        self, instruction: PaymentInstruction | Mapping[str, Any]
    ) -> PreparedResult:
        """Assign a nonce to *instruction*, build the transfer and sign it.

        Raises:
            AdapterNotLoadedError: If called before ``load``.
            InvalidRecipientError: If the recipient address is malformed.
            SequencingError: If no safe nonce can be assigned; the host must
                reset from an earlier safe height.
        """
        if self._preparer is None:
            raise AdapterNotLoadedError("the adapter has not been loaded")
        if not isinstance(instruction, PaymentInstruction):
            instruction = PaymentInstruction.model_validate(instruction)
        return await self._preparer.prepare(instruction)

    async def verify_transaction_signature(
        self,
        transaction: PreparedTransaction | Mapping[str, Any],
        signature_packet: SignaturePacket | Mapping[str, Any],
    ) -> bool:
        """Return ``True`` if *signature_packet* is a valid authorization of *transaction*."""
        return self._verifier.verify(transaction, signature_packet)
