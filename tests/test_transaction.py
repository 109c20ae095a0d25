"""Tests for transfer construction, hashing and multisignatures."""

from __future__ import annotations

import hashlib
import struct

import pytest

from dex_adapter.identity import (
    address_from_public_key,
    generate_keypair,
    keypair_from_passphrase,
    keypair_from_seed,
)
from dex_adapter.sdk import ChainSDK, Ed25519ChainSDK
from dex_adapter.transaction import (
    TransferBuilder,
    TransferTransaction,
    compute_dex_transaction_id,
    compute_transaction_hash,
    multi_sign,
    signable_bytes,
    split_multisignature,
    verify_multisignature,
)
from dex_adapter.wallet import MemberWallet

_SENDER_SK, _SENDER_PK = keypair_from_seed(b"\x07" * 32)
_RECIPIENT = address_from_public_key(keypair_from_seed(b"\x09" * 32)[1])


def _build(**overrides: object) -> TransferTransaction:
    builder = (
        TransferBuilder()
        .network("devnet")
        .nonce(6)
        .amount(10_000_000_000)
        .fee(10_000_000)
        .sender_public_key(_SENDER_PK.hex())
        .recipient(_RECIPIENT)
        .timestamp(1_609_544_665)
    )
    for name, value in overrides.items():
        getattr(builder, name)(value)
    return builder.build()


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class TestTransferBuilder:
    def test_build_sets_fields_and_hash_id(self) -> None:
        tx = _build()
        assert tx.version == 2
        assert tx.type == "transfer"
        assert tx.nonce == 6
        assert tx.vendor_field == ""
        assert tx.id == compute_transaction_hash(tx).hex()

    def test_missing_fields_raise(self) -> None:
        with pytest.raises(ValueError, match="missing required fields: network, sender_public_key"):
            TransferBuilder().recipient(_RECIPIENT).amount(1).nonce(1).timestamp(1).build()

    def test_none_vendor_field_becomes_empty(self) -> None:
        assert _build(vendor_field=None).vendor_field == ""

    def test_amount_must_fit_u64(self) -> None:
        with pytest.raises(ValueError):
            _build(amount=2**64)


# ---------------------------------------------------------------------------
# Canonical bytes
# ---------------------------------------------------------------------------


class TestSignableBytes:
    """The binary layout every member hashes."""

    def test_layout_without_message(self) -> None:
        tx = _build()
        data = signable_bytes(tx)
        offset = 0

        assert struct.unpack_from("<H", data, offset) == (2,)
        offset += 2

        assert data[offset : offset + 7] == b"devnet\x00"
        offset += 7

        assert data[offset : offset + 9] == b"Transfer\x00"
        offset += 9

        assert data[offset : offset + 32] == _SENDER_PK
        offset += 32

        recipient = _RECIPIENT.encode("utf-8") + b"\x00"
        assert data[offset : offset + len(recipient)] == recipient
        offset += len(recipient)

        assert struct.unpack_from("<QQQQ", data, offset) == (
            10_000_000_000,
            10_000_000,
            6,
            1_609_544_665,
        )
        offset += 32

        assert data[offset] == 0x00
        offset += 1
        assert offset == len(data)

    def test_message_is_length_prefixed(self) -> None:
        data = signable_bytes(_build(vendor_field="hello"))
        section = data[-(1 + 4 + 5) :]
        assert section[0] == 0x01
        assert struct.unpack_from("<I", section, 1) == (5,)
        assert section[5:] == b"hello"

    def test_id_is_not_part_of_signable_bytes(self) -> None:
        tx = _build()
        assert signable_bytes(tx) == signable_bytes(tx.model_copy(update={"id": "something-else"}))

    def test_invalid_sender_key_rejected(self) -> None:
        tx = _build().model_copy(update={"sender_public_key": "abcd"})
        with pytest.raises(ValueError, match="32 bytes"):
            signable_bytes(tx)

    def test_hash_changes_with_nonce(self) -> None:
        assert compute_transaction_hash(_build(nonce=6)) != compute_transaction_hash(_build(nonce=7))


# ---------------------------------------------------------------------------
# Multisignature
# ---------------------------------------------------------------------------


class TestMultiSignature:
    def test_signature_carries_member_index(self) -> None:
        sk, _ = generate_keypair()
        signature = multi_sign(_build(), sk, 3)
        assert len(signature) == 130
        index, raw = split_multisignature(signature)
        assert index == 3
        assert len(raw) == 64

    def test_verify_valid_signature(self) -> None:
        sk, pk = generate_keypair()
        tx = _build()
        signature = multi_sign(tx, sk, 0)
        assert verify_multisignature(compute_transaction_hash(tx), signature, pk.hex()) is True

    def test_verify_rejects_other_transaction(self) -> None:
        sk, pk = generate_keypair()
        signature = multi_sign(_build(), sk, 0)
        other_hash = compute_transaction_hash(_build(amount=1))
        assert verify_multisignature(other_hash, signature, pk.hex()) is False

    def test_verify_rejects_flipped_byte(self) -> None:
        sk, pk = generate_keypair()
        tx = _build()
        raw = bytearray.fromhex(multi_sign(tx, sk, 0))
        raw[10] ^= 0x01
        assert verify_multisignature(compute_transaction_hash(tx), raw.hex(), pk.hex()) is False

    @pytest.mark.parametrize("signature", ["", "zz", "00" * 64, "00" * 66])
    def test_verify_rejects_malformed_signature(self, signature: str) -> None:
        _, pk = generate_keypair()
        assert verify_multisignature(b"\x00" * 32, signature, pk.hex()) is False

    def test_index_out_of_range(self) -> None:
        sk, _ = generate_keypair()
        with pytest.raises(ValueError, match="between 0 and 255"):
            multi_sign(_build(), sk, 256)


# ---------------------------------------------------------------------------
# DEX identifier
# ---------------------------------------------------------------------------


class TestDexTransactionId:
    def test_matches_sha256_of_sender_and_nonce(self) -> None:
        expected = hashlib.sha256(b"dex1sender-6").hexdigest()
        assert compute_dex_transaction_id("dex1sender", 6) == expected
        assert compute_dex_transaction_id("dex1sender", "6") == expected

    def test_differs_per_nonce(self) -> None:
        assert compute_dex_transaction_id("dex1sender", 6) != compute_dex_transaction_id("dex1sender", 7)


# ---------------------------------------------------------------------------
# Ed25519ChainSDK
# ---------------------------------------------------------------------------


class TestEd25519ChainSDK:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(Ed25519ChainSDK(), ChainSDK)

    def test_build_and_verify_roundtrip(self) -> None:
        sdk = Ed25519ChainSDK()
        tx = sdk.build_transfer(
            version=2,
            network="devnet",
            nonce=6,
            amount=1,
            fee=1,
            sender_public_key=_SENDER_PK.hex(),
            recipient_address=_RECIPIENT,
            timestamp=1,
            message="",
        )
        signature = sdk.multi_sign(tx, _SENDER_SK, 0)
        assert sdk.verify_multisignature(sdk.hash_transaction(tx), signature, _SENDER_PK.hex())

    def test_address_uses_configured_prefix(self) -> None:
        sdk = Ed25519ChainSDK("tdex")
        assert sdk.hrp == "tdex"
        address = sdk.address_from_public_key(_SENDER_PK.hex())
        assert address.startswith("tdex1")
        assert sdk.validate_address(address) is True
        assert Ed25519ChainSDK().validate_address(address) is False

    def test_invalid_public_key_raises(self) -> None:
        with pytest.raises(ValueError):
            Ed25519ChainSDK().address_from_public_key("not-hex")


# ---------------------------------------------------------------------------
# MemberWallet
# ---------------------------------------------------------------------------


class TestMemberWallet:
    def test_from_passphrase(self) -> None:
        sdk = Ed25519ChainSDK()
        wallet = MemberWallet.from_passphrase(sdk, "alpha bravo")
        _, pk = keypair_from_passphrase("alpha bravo")
        assert wallet.public_key == pk.hex()
        assert wallet.address == address_from_public_key(pk)

    def test_index_in_ignores_case(self) -> None:
        wallet = MemberWallet.from_passphrase(Ed25519ChainSDK(), "alpha bravo")
        keys = ["00" * 32, wallet.public_key.upper()]
        assert wallet.index_in(keys) == 1

    def test_index_in_missing_key(self) -> None:
        wallet = MemberWallet.from_passphrase(Ed25519ChainSDK(), "alpha bravo")
        with pytest.raises(ValueError):
            wallet.index_in(["00" * 32])

    def test_sign_produces_verifiable_packet(self) -> None:
        sdk = Ed25519ChainSDK()
        wallet = MemberWallet.from_passphrase(sdk, "alpha bravo")
        tx = _build()
        packet = wallet.sign(tx, 2)
        assert packet.signer_address == wallet.address
        assert packet.signature.startswith("02")
        assert sdk.verify_multisignature(sdk.hash_transaction(tx), packet.signature, packet.public_key)
