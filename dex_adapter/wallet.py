"""This node's member key share for the multisig account.

:class:`MemberWallet` bundles the member keypair, its address and the member
index within the multisig group behind a small interface, so the preparer
never handles raw secret bytes itself.
"""

from __future__ import annotations

from dex_adapter.sdk import ChainSDK
from dex_adapter.transaction import TransferTransaction
from dex_adapter.types import SignaturePacket


class MemberWallet:
    """In-memory member wallet holding a single keypair.

    Wallets are created via :meth:`from_passphrase`. The secret key is held in
    memory and never serialised; persisting the passphrase is the host's
    concern.
    """

    __slots__ = ("_sdk", "_secret_key", "_public_key", "_address")

    def __init__(self, sdk: ChainSDK, secret_key: bytes, public_key: bytes) -> None:
        self._sdk = sdk
        self._secret_key = secret_key
        self._public_key = public_key.hex()
        self._address = sdk.address_from_public_key(self._public_key)

    @classmethod
    def from_passphrase(cls, sdk: ChainSDK, passphrase: str) -> "MemberWallet":
        """Derive the member wallet from its passphrase."""
        sk, pk = sdk.keypair_from_passphrase(passphrase)
        return cls(sdk, sk, pk)

    # ----- properties ------------------------------------------------------

    @property
    def address(self) -> str:
        """The member's ledger address."""
        return self._address

    @property
    def public_key(self) -> str:
        """The member's hex-encoded public key."""
        return self._public_key

    # ----- signing ---------------------------------------------------------

    def index_in(self, multisig_public_keys: list[str]) -> int:
        """Return this member's position in the multisig key list.

        Raises:
            ValueError: If the member key is not part of the group.
        """
        keys = [key.lower() for key in multisig_public_keys]
        return keys.index(self._public_key)

    def sign(self, tx: TransferTransaction, index: int) -> SignaturePacket:
        """Sign *tx* as member *index* and wrap the result in a packet."""
        return SignaturePacket(
            signer_address=self._address,
            public_key=self._public_key,
            signature=self._sdk.multi_sign(tx, self._secret_key, index),
        )
