"""Verification of signature packets submitted by peer members."""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import ValidationError

from dex_adapter.sdk import ChainSDK
from dex_adapter.transaction import TransferTransaction
from dex_adapter.types import PreparedTransaction, SignaturePacket


class SignatureVerifier:
    """Checks that a packet's signer owns its key and that the signature is valid."""

    def __init__(self, sdk: ChainSDK) -> None:
        self._sdk = sdk

    def verify(
        self,
        transaction: PreparedTransaction | Mapping[str, Any],
        packet: SignaturePacket | Mapping[str, Any],
    ) -> bool:
        """Return ``True`` if *packet* authorizes *transaction*.

        Checks that:
        1. ``packet.signer_address`` is the address of ``packet.public_key``.
        2. The signature is valid for the canonical hash of the transaction.

        Never raises for malformed input; anything structurally wrong is
        simply not a valid authorization.
        """
        try:
            if not isinstance(transaction, PreparedTransaction):
                transaction = PreparedTransaction.model_validate(transaction)
            if not isinstance(packet, SignaturePacket):
                packet = SignaturePacket.model_validate(packet)
            expected_address = self._sdk.address_from_public_key(packet.public_key)
        except (ValidationError, ValueError, TypeError):
            return False

        if packet.signer_address != expected_address:
            return False

        try:
            view = TransferTransaction(
                version=transaction.version,
                network=transaction.network,
                type=transaction.type,
                sender_public_key=transaction.sender_public_key,
                recipient_id=transaction.recipient_address,
                amount=int(transaction.amount),
                fee=int(transaction.fee),
                nonce=int(transaction.nonce),
                timestamp=transaction.timestamp,
                vendor_field=transaction.message,
                id=transaction.original_id,
            )
            tx_hash = self._sdk.hash_transaction(view)
        except (ValidationError, ValueError, KeyError):
            return False

        return self._sdk.verify_multisignature(tx_hash, packet.signature, packet.public_key)
