"""Transfer construction, canonical hashing and multisignature.

Provides a fluent builder for unsigned transfers and the helpers every member
node must agree on byte-for-byte: the canonical signable encoding, the
transaction hash derived from it, the partial multisignature format and the
signature-independent DEX transaction identifier.
"""

from __future__ import annotations

import hashlib
import struct
from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field

from dex_adapter.identity import sign_message, verify_signature
from dex_adapter.types import U64_MAX

# Transfer is the only transaction type the adapter ever builds.
TRANSFER_TYPE = "transfer"
_TX_TYPE_WIRE = {TRANSFER_TYPE: "Transfer"}


class TransferTransaction(BaseModel):
    """Unsigned transfer as seen by the hashing routine.

    ``id`` is derived from the other fields and is never part of the
    signable bytes.
    """

    model_config = ConfigDict(frozen=True)

    version: Annotated[int, Field(ge=1, le=0xFFFF)] = 2
    network: str
    type: str = TRANSFER_TYPE
    sender_public_key: str
    recipient_id: str
    amount: Annotated[int, Field(ge=0, le=U64_MAX)]
    fee: Annotated[int, Field(ge=0, le=U64_MAX)]
    nonce: Annotated[int, Field(ge=0, le=U64_MAX)]
    timestamp: Annotated[int, Field(ge=0, le=U64_MAX)]
    vendor_field: str = ""
    id: str | None = None


# ---------------------------------------------------------------------------
# Canonical signable bytes
# ---------------------------------------------------------------------------


def signable_bytes(tx: TransferTransaction) -> bytes:
    """Produce the canonical binary representation used for hashing.

    Layout::

        version          : 2 bytes, little-endian u16
        network          : UTF-8 string + 0x00 separator
        tx_type          : UTF-8 PascalCase string + 0x00 separator
        sender_public_key: 32 raw key bytes
        recipient_id     : UTF-8 address string + 0x00 separator
        amount           : 8 bytes, little-endian u64
        fee              : 8 bytes, little-endian u64
        nonce            : 8 bytes, little-endian u64
        timestamp        : 8 bytes, little-endian u64
        vendor_field     : if present: 0x01 + 4-byte LE u32 length + UTF-8 bytes
                           if absent:  0x00

    Fields excluded: id and every signature.

    Raises:
        ValueError: If the sender public key is not 32 hex-encoded bytes.
    """
    sender_key = bytes.fromhex(tx.sender_public_key)
    if len(sender_key) != 32:
        raise ValueError(f"sender public key must be 32 bytes, got {len(sender_key)}")

    buf = bytearray()
    buf += struct.pack("<H", tx.version)
    buf += tx.network.encode("utf-8") + b"\x00"
    buf += _TX_TYPE_WIRE[tx.type].encode("utf-8") + b"\x00"
    buf += sender_key
    buf += tx.recipient_id.encode("utf-8") + b"\x00"
    buf += struct.pack("<Q", tx.amount)
    buf += struct.pack("<Q", tx.fee)
    buf += struct.pack("<Q", tx.nonce)
    buf += struct.pack("<Q", tx.timestamp)

    if tx.vendor_field:
        field = tx.vendor_field.encode("utf-8")
        buf += b"\x01"
        buf += struct.pack("<I", len(field))
        buf += field
    else:
        buf += b"\x00"

    return bytes(buf)


def compute_transaction_hash(tx: TransferTransaction) -> bytes:
    """Return the 32-byte SHA-256 digest of the signable bytes."""
    return hashlib.sha256(signable_bytes(tx)).digest()


def compute_dex_transaction_id(sender_address: str, nonce: int | str) -> str:
    """Compute the DEX identifier ``hex(sha256("<sender>-<nonce>"))``.

    The identifier only depends on the sender and the nonce, never on
    signature bytes, so every member derives the same value for the same
    logical transfer regardless of who signs first.
    """
    return hashlib.sha256(f"{sender_address}-{nonce}".encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Multisignature
# ---------------------------------------------------------------------------


def multi_sign(tx: TransferTransaction, secret_key: bytes, index: int) -> str:
    """Produce this member's partial signature for a multisig transfer.

    The result is hex: one byte holding the member's index within the
    multisig group followed by the 64-byte Ed25519 signature over the
    transaction hash.

    Raises:
        ValueError: If *index* does not fit in a single byte.
    """
    if not 0 <= index <= 0xFF:
        raise ValueError(f"multisig index must be between 0 and 255, got {index}")
    signature = sign_message(secret_key, compute_transaction_hash(tx))
    return f"{index:02x}{signature.hex()}"


def split_multisignature(signature: str) -> tuple[int, bytes]:
    """Split a partial multisignature into ``(index, raw_signature)``.

    Raises:
        ValueError: If *signature* is not 65 hex-encoded bytes.
    """
    raw = bytes.fromhex(signature)
    if len(raw) != 65:
        raise ValueError(f"multisignature must be 65 bytes, got {len(raw)}")
    return raw[0], raw[1:]


def verify_multisignature(tx_hash: bytes, signature: str, public_key: str) -> bool:
    """Check a partial multisignature against a transaction hash."""
    try:
        _, raw_signature = split_multisignature(signature)
        key = bytes.fromhex(public_key)
    except (ValueError, TypeError):
        return False
    return verify_signature(key, tx_hash, raw_signature)


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class TransferBuilder:
    """Fluent builder for :class:`TransferTransaction` instances.

    Example::

        tx = (
            TransferBuilder()
            .network("devnet")
            .nonce(6)
            .amount(10_000_000_000)
            .fee(10_000_000)
            .sender_public_key("3ee9...")
            .recipient("dex1...")
            .timestamp(1609544665)
            .build()
        )
    """

    def __init__(self) -> None:
        self._version: int = 2
        self._network: str | None = None
        self._sender_public_key: str | None = None
        self._recipient: str | None = None
        self._amount: int | None = None
        self._fee: int = 0
        self._nonce: int | None = None
        self._timestamp: int | None = None
        self._vendor_field: str = ""

    def version(self, v: int) -> Self:
        """Set the transaction version (default: 2)."""
        self._version = v
        return self

    def network(self, name: str) -> Self:
        self._network = name
        return self

    def sender_public_key(self, public_key: str) -> Self:
        """Set the hex public key of the (multisig) sender."""
        self._sender_public_key = public_key
        return self

    def recipient(self, address: str) -> Self:
        self._recipient = address
        return self

    def amount(self, value: int) -> Self:
        self._amount = value
        return self

    def fee(self, value: int) -> Self:
        self._fee = value
        return self

    def nonce(self, n: int) -> Self:
        self._nonce = n
        return self

    def timestamp(self, ts: int) -> Self:
        self._timestamp = ts
        return self

    def vendor_field(self, message: str) -> Self:
        """Attach the free-form message carried by the transfer."""
        self._vendor_field = message or ""
        return self

    def build(self) -> TransferTransaction:
        """Validate all fields and return the transfer with its hash as ``id``.

        Raises:
            ValueError: If any required field is missing.
        """
        missing: list[str] = []
        if self._network is None:
            missing.append("network")
        if self._sender_public_key is None:
            missing.append("sender_public_key")
        if self._recipient is None:
            missing.append("recipient")
        if self._amount is None:
            missing.append("amount")
        if self._nonce is None:
            missing.append("nonce")
        if self._timestamp is None:
            missing.append("timestamp")
        if missing:
            raise ValueError(f"missing required fields: {', '.join(missing)}")

        tx = TransferTransaction(
            version=self._version,
            network=self._network,  # type: ignore[arg-type]
            sender_public_key=self._sender_public_key,  # type: ignore[arg-type]
            recipient_id=self._recipient,  # type: ignore[arg-type]
            amount=self._amount,  # type: ignore[arg-type]
            fee=self._fee,
            nonce=self._nonce,  # type: ignore[arg-type]
            timestamp=self._timestamp,  # type: ignore[arg-type]
            vendor_field=self._vendor_field,
        )
        return tx.model_copy(update={"id": compute_transaction_hash(tx).hex()})
