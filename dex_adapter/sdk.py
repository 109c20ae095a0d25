"""Chain SDK protocol: the cryptography boundary.

The adapter never touches keys, encodings or signature schemes directly; it
goes through a :class:`ChainSDK`. This keeps nonce sequencing independent of
the target chain and lets tests run against the bundled Ed25519
implementation.

Concrete implementations:
    - Ed25519ChainSDK (PyNaCl, bech32 addresses)
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from dex_adapter import identity
from dex_adapter.transaction import (
    TransferBuilder,
    TransferTransaction,
    compute_transaction_hash,
    multi_sign,
    verify_multisignature,
)


@runtime_checkable
class ChainSDK(Protocol):
    """Interface for the chain-specific cryptography the adapter relies on."""

    def keypair_from_passphrase(self, passphrase: str) -> tuple[bytes, bytes]:
        """Derive ``(secret_key, public_key)`` for a member passphrase."""
        ...

    def address_from_public_key(self, public_key: str) -> str:
        """Derive the ledger address of a hex public key.

        Raises:
            ValueError: If *public_key* is not a valid key.
        """
        ...

    def validate_address(self, address: object) -> bool:
        """Return ``True`` if *address* follows the ledger's address format."""
        ...

    def build_transfer(
        self,
        *,
        version: int,
        network: str,
        nonce: int,
        amount: int,
        fee: int,
        sender_public_key: str,
        recipient_address: str,
        timestamp: int,
        message: str,
    ) -> TransferTransaction:
        """Build an unsigned transfer whose ``id`` is its canonical hash."""
        ...

    def multi_sign(self, tx: TransferTransaction, secret_key: bytes, index: int) -> str:
        """Produce a partial multisignature for member *index*."""
        ...

    def hash_transaction(self, tx: TransferTransaction) -> bytes:
        """Hash the transaction with every signature field excluded."""
        ...

    def verify_multisignature(self, tx_hash: bytes, signature: str, public_key: str) -> bool:
        """Verify a partial multisignature; never raises for bad input."""
        ...


class Ed25519ChainSDK:
    """:class:`ChainSDK` backed by Ed25519 keys and bech32 addresses.

    Args:
        hrp: Human-readable prefix of the ledger's addresses.
    """

    def __init__(self, hrp: str = identity.DEFAULT_HRP) -> None:
        self._hrp = hrp

    @property
    def hrp(self) -> str:
        return self._hrp

    def keypair_from_passphrase(self, passphrase: str) -> tuple[bytes, bytes]:
        return identity.keypair_from_passphrase(passphrase)

    def address_from_public_key(self, public_key: str) -> str:
        return identity.address_from_public_key(bytes.fromhex(public_key), self._hrp)

    def validate_address(self, address: object) -> bool:
        return identity.is_valid_address(address, self._hrp)

    def build_transfer(
        self,
        *,
        version: int,
        network: str,
        nonce: int,
        amount: int,
        fee: int,
        sender_public_key: str,
        recipient_address: str,
        timestamp: int,
        message: str,
    ) -> TransferTransaction:
        return (
            TransferBuilder()
            .version(version)
            .network(network)
            .nonce(nonce)
            .amount(amount)
            .fee(fee)
            .sender_public_key(sender_public_key)
            .recipient(recipient_address)
            .timestamp(timestamp)
            .vendor_field(message)
            .build()
        )

    def multi_sign(self, tx: TransferTransaction, secret_key: bytes, index: int) -> str:
        return multi_sign(tx, secret_key, index)

    def hash_transaction(self, tx: TransferTransaction) -> bytes:
        return compute_transaction_hash(tx)

    def verify_multisignature(self, tx_hash: bytes, signature: str, public_key: str) -> bool:
        return verify_multisignature(tx_hash, signature, public_key)
