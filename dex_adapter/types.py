"""Core types for the DEX chain adapter.

All records exchanged with the ledger, the host and peer signers are defined
here as Pydantic v2 models. Field names are snake_case in Python and
camelCase on the wire; amounts are unsigned integers in the smallest currency
unit, keys and signatures are hex-encoded, and addresses use bech32 encoding
with a configurable human-readable prefix.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel

U64_MAX = 2**64 - 1


# ---------------------------------------------------------------------------
# Bech32 helpers (minimal, self-contained)
# ---------------------------------------------------------------------------

_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"


def _bech32_polymod(values: list[int]) -> int:
    gen = [0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3]
    chk = 1
    for v in values:
        top = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ v
        for i in range(5):
            chk ^= gen[i] if ((top >> i) & 1) else 0
    return chk


def _bech32_hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _bech32_create_checksum(hrp: str, data: list[int]) -> list[int]:
    values = _bech32_hrp_expand(hrp) + data
    polymod = _bech32_polymod(values + [0, 0, 0, 0, 0, 0]) ^ 1
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]


def _bech32_verify_checksum(hrp: str, data: list[int]) -> bool:
    return _bech32_polymod(_bech32_hrp_expand(hrp) + data) == 1


def _convertbits(data: bytes | list[int], frombits: int, tobits: int, pad: bool = True) -> list[int]:
    acc = 0
    bits = 0
    ret: list[int] = []
    maxv = (1 << tobits) - 1
    for value in data:
        if value < 0 or (value >> frombits):
            raise ValueError(f"invalid value for convertbits: {value}")
        acc = (acc << frombits) | value
        bits += frombits
        while bits >= tobits:
            bits -= tobits
            ret.append((acc >> bits) & maxv)
    if pad:
        if bits:
            ret.append((acc << (tobits - bits)) & maxv)
    elif bits >= frombits or ((acc << (tobits - bits)) & maxv):
        raise ValueError("non-zero padding bits")
    return ret


def bech32_encode(hrp: str, data: bytes) -> str:
    """Encode *data* (arbitrary bytes) into a bech32 string with the given HRP."""
    values = _convertbits(data, 8, 5)
    checksum = _bech32_create_checksum(hrp, values)
    combined = values + checksum
    return hrp + "1" + "".join(_BECH32_CHARSET[d] for d in combined)


def bech32_decode(bech: str) -> tuple[str, bytes]:
    """Decode a bech32 string, returning ``(hrp, data_bytes)``.

    Raises:
        ValueError: On mixed case, a misplaced separator, characters outside
            the bech32 alphabet or a bad checksum.
    """
    if bech != bech.lower() and bech != bech.upper():
        raise ValueError("mixed-case bech32 string")
    bech = bech.lower()
    pos = bech.rfind("1")
    if pos < 1 or pos + 7 > len(bech):
        raise ValueError("invalid bech32 separator position")
    hrp = bech[:pos]
    try:
        data_part = [_BECH32_CHARSET.index(c) for c in bech[pos + 1 :]]
    except ValueError as exc:
        raise ValueError("invalid bech32 character") from exc
    if not _bech32_verify_checksum(hrp, data_part):
        raise ValueError("invalid bech32 checksum")
    decoded = _convertbits(data_part[:-6], 5, 8, pad=False)
    return hrp, bytes(decoded)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Order(str, Enum):
    """Sort order for paginated outbound transaction queries."""

    ASC = "asc"
    DESC = "desc"


class NoncePolicy(str, Enum):
    """Strategy used to recover the next nonce after a reset."""

    HISTORY_REPLAY = "history_replay"
    ROLLING_CACHE = "rolling_cache"


# ---------------------------------------------------------------------------
# Base model
# ---------------------------------------------------------------------------


class WireModel(BaseModel):
    """Base for records that travel as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Ledger records
# ---------------------------------------------------------------------------


class Account(WireModel):
    """Snapshot of the controlled multisig account.

    Only ``nonce`` is required; ledgers are not obliged to echo the address
    or public key the adapter already knows.
    """

    address: str | None = None
    public_key: str | None = None
    nonce: Annotated[int, Field(ge=0, description="Last nonce confirmed by the ledger")]
    multisig_public_keys: list[str] = Field(default_factory=list)
    multisig_threshold: Annotated[int, Field(ge=0)] = 0


class Block(WireModel):
    """A ledger block as reported by the query service.

    ``id`` is optional here and only required where blocks are scanned for
    their outbound transactions.
    """

    id: str | None = None
    height: Annotated[int, Field(ge=0)]
    timestamp: int


class OutboundTransactionRecord(WireModel):
    """A transaction previously sent by the controlled account."""

    model_config = ConfigDict(frozen=True)

    id: str
    nonce: Annotated[int, Field(ge=0)]
    timestamp: int
    message: str = ""
    block_id: str | None = None

    @field_validator("message", mode="before")
    @classmethod
    def _none_message(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def sort_key(self) -> tuple[int, int]:
        return self.timestamp, self.nonce

    @property
    def idempotency_key(self) -> str:
        """Key under which the record is remembered by the rolling cache."""
        return self.message or self.id


# ---------------------------------------------------------------------------
# Preparation input and output
# ---------------------------------------------------------------------------


class PaymentInstruction(WireModel):
    """An outgoing payment the DEX wants the multisig account to make."""

    recipient_address: str
    amount: Annotated[int, Field(ge=0, le=U64_MAX)]
    fee: Annotated[int, Field(ge=0, le=U64_MAX)]
    timestamp: Annotated[int, Field(ge=0, le=U64_MAX)]
    message: str = ""
    id: str | None = None

    @field_validator("message", mode="before")
    @classmethod
    def _none_message(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("message")
    @classmethod
    def _encodable_message(cls, v: str) -> str:
        # The message is hashed as UTF-8; lone surrogates cannot be encoded.
        try:
            v.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise ValueError("message must be encodable as UTF-8") from exc
        return v

    @property
    def idempotency_key(self) -> str | None:
        """Stable identifier of the instruction, if it has one.

        The explicit ``id`` wins; otherwise a non-empty ``message`` doubles
        as the key.
        """
        if self.id:
            return self.id
        return self.message or None

    @property
    def lookup_keys(self) -> tuple[str, ...]:
        """Keys under which a previous broadcast of this instruction may be cached.

        Ledger records are remembered by message, so the message is tried
        after the ``id``.
        """
        keys = [key for key in (self.id, self.message) if key]
        return tuple(dict.fromkeys(keys))


class SignaturePacket(WireModel):
    """One member's authorization for a prepared transaction."""

    signer_address: str
    public_key: str
    signature: str


class PreparedTransaction(WireModel):
    """A normalized transfer ready to collect member signatures.

    ``amount``, ``fee`` and ``nonce`` are decimal strings. ``id`` is the
    signature-independent DEX identifier while ``original_id`` keeps the
    canonical hash computed by the chain SDK.
    """

    id: str
    original_id: str
    version: int
    network: str
    type: str = "transfer"
    sender_address: str
    sender_public_key: str
    recipient_address: str
    amount: str
    fee: str
    nonce: str
    message: str = ""
    timestamp: int
    signatures: list[SignaturePacket] = Field(default_factory=list)

    @field_validator("amount", "fee", "nonce", mode="before")
    @classmethod
    def _decimal_string(cls, v: Any) -> str:
        if isinstance(v, bool):
            raise ValueError("expected a decimal integer")
        if isinstance(v, int):
            v = str(v)
        if not isinstance(v, str) or not (v.isascii() and v.isdigit()):
            raise ValueError("expected a decimal integer")
        return v


class PreparedResult(WireModel):
    """Return value of preparation: the transaction and the local signature."""

    transaction: PreparedTransaction
    signature: SignaturePacket
