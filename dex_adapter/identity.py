"""Member identity primitives: keypair derivation, address encoding, signing.

All cryptographic operations use Ed25519 via PyNaCl (libsodium binding).
Addresses are bech32-encoded public keys, so a malformed or mistyped
address is caught by the checksum before any nonce is spent on it.
"""

from __future__ import annotations

import hashlib

from nacl.exceptions import CryptoError
from nacl.signing import SigningKey, VerifyKey

from dex_adapter.types import bech32_decode, bech32_encode

DEFAULT_HRP = "dex"


def generate_keypair() -> tuple[bytes, bytes]:
    """Return a fresh random ``(secret_key, public_key)`` pair, 32 bytes each."""
    signing_key = SigningKey.generate()
    return bytes(signing_key), bytes(signing_key.verify_key)


def keypair_from_seed(seed: bytes) -> tuple[bytes, bytes]:
    """Derive an Ed25519 keypair deterministically from a 32-byte seed.

    Raises:
        ValueError: If *seed* is not exactly 32 bytes.
    """
    if len(seed) != 32:
        raise ValueError(f"seed must be exactly 32 bytes, got {len(seed)}")
    sk = SigningKey(seed)
    return bytes(sk), bytes(sk.verify_key)


def keypair_from_passphrase(passphrase: str) -> tuple[bytes, bytes]:
    """Derive a keypair from a mnemonic passphrase.

    The seed is the SHA-256 digest of the UTF-8 passphrase, so every member
    node configured with the same passphrase derives the same key share.
    """
    if not passphrase:
        raise ValueError("passphrase must not be empty")
    return keypair_from_seed(hashlib.sha256(passphrase.encode("utf-8")).digest())


def address_from_public_key(public_key: bytes, hrp: str = DEFAULT_HRP) -> str:
    """Encode a 32-byte Ed25519 public key as a bech32 address.

    Raises:
        ValueError: If *public_key* is not 32 bytes.
    """
    if len(public_key) != 32:
        raise ValueError(f"public key must be 32 bytes, got {len(public_key)}")
    return bech32_encode(hrp, public_key)


def parse_address(address: str, hrp: str = DEFAULT_HRP) -> bytes:
    """Decode a bech32 address back to the 32-byte public key.

    Raises:
        ValueError: If the address is malformed or has the wrong HRP.
    """
    decoded_hrp, data = bech32_decode(address)
    if decoded_hrp != hrp:
        raise ValueError(f"expected HRP '{hrp}', got '{decoded_hrp}'")
    if len(data) != 32:
        raise ValueError(f"decoded key must be 32 bytes, got {len(data)}")
    return data


def is_valid_address(address: object, hrp: str = DEFAULT_HRP) -> bool:
    """Return ``True`` if *address* is a well-formed address for *hrp*."""
    if not isinstance(address, str):
        return False
    try:
        parse_address(address, hrp)
    except ValueError:
        return False
    return True


def sign_message(secret_key: bytes, message: bytes) -> bytes:
    """Sign *message* with an Ed25519 secret key and return the 64-byte signature."""
    sk = SigningKey(secret_key)
    return sk.sign(message).signature


def verify_signature(public_key: bytes, message: bytes, signature: bytes) -> bool:
    """Verify an Ed25519 signature.

    Returns:
        ``True`` if the signature is valid, ``False`` otherwise, including
        when the key or signature is not even well-formed.
    """
    try:
        vk = VerifyKey(public_key)
        vk.verify(message, signature)
        return True
    except (CryptoError, ValueError, TypeError):
        return False
