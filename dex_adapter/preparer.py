"""Turn payment instructions into signed, normalized multisig transfers."""

from __future__ import annotations

import logging

from dex_adapter.calibrator import NonceCalibrator
from dex_adapter.errors import InvalidRecipientError
from dex_adapter.sdk import ChainSDK
from dex_adapter.transaction import compute_dex_transaction_id
from dex_adapter.types import PaymentInstruction, PreparedResult, PreparedTransaction
from dex_adapter.wallet import MemberWallet

logger = logging.getLogger(__name__)


class TransactionPreparer:
    """Builds the transfer for one instruction and signs it as this member.

    Args:
        sdk: Chain SDK used to validate, build and sign.
        calibrator: Source of nonces.
        wallet: This node's member key share.
        member_index: Position of ``wallet`` in the multisig key list.
        multisig_public_key: Hex public key of the sending multisig account.
        multisig_address: Address of the sending multisig account.
        network: Network label embedded in every transfer.
        version: Transfer version.
    """

    def __init__(
        self,
        sdk: ChainSDK,
        calibrator: NonceCalibrator,
        wallet: MemberWallet,
        *,
        member_index: int,
        multisig_public_key: str,
        multisig_address: str,
        network: str,
        version: int = 2,
    ) -> None:
        self._sdk = sdk
        self._calibrator = calibrator
        self._wallet = wallet
        self._member_index = member_index
        self._multisig_public_key = multisig_public_key
        self._multisig_address = multisig_address
        self._network = network
        self._version = version

    async def prepare(self, instruction: PaymentInstruction) -> PreparedResult:
        """Prepare *instruction* and return the transfer with this member's signature.

        Raises:
            InvalidRecipientError: If the recipient address is malformed. No
                nonce is consumed.
            SequencingError: If no safe nonce can be assigned.
        """
        if not self._sdk.validate_address(instruction.recipient_address):
            raise InvalidRecipientError(instruction.recipient_address)

        nonce = await self._calibrator.assign(instruction)

        tx = self._sdk.build_transfer(
            version=self._version,
            network=self._network,
            nonce=nonce,
            amount=instruction.amount,
            fee=instruction.fee,
            sender_public_key=self._multisig_public_key,
            recipient_address=instruction.recipient_address,
            timestamp=instruction.timestamp,
            message=instruction.message,
        )
        signature = self._wallet.sign(tx, self._member_index)

        transaction = PreparedTransaction(
            id=compute_dex_transaction_id(self._multisig_address, nonce),
            original_id=tx.id,
            version=tx.version,
            network=tx.network,
            type=tx.type,
            sender_address=self._multisig_address,
            sender_public_key=tx.sender_public_key,
            recipient_address=tx.recipient_id,
            amount=tx.amount,
            fee=tx.fee,
            nonce=tx.nonce,
            message=tx.vendor_field,
            timestamp=tx.timestamp,
            signatures=[],
        )
        logger.debug(
            "Prepared transaction %s with nonce %d",
            transaction.id,
            nonce,
            extra={"transaction_id": transaction.id, "nonce": nonce},
        )
        return PreparedResult(transaction=transaction, signature=signature)
