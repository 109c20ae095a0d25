"""Exceptions raised by the chain adapter.

Every failure the host is expected to handle derives from
:class:`ChainAdapterError`. Sequencing failures are fatal: once one is
raised the calibrator refuses to issue nonces until the host resets it from
an earlier safe height.
"""

from __future__ import annotations


class ChainAdapterError(Exception):
    """Base class for adapter errors."""


class InvalidRecipientError(ChainAdapterError, ValueError):
    """Raised when an instruction's recipient address is malformed."""

    def __init__(self, recipient_address: object) -> None:
        self.recipient_address = recipient_address
        super().__init__(
            "Failed to prepare the transaction because the recipient address "
            f"{recipient_address!r} was invalid"
        )


class MembershipError(ChainAdapterError):
    """Raised when this node's key is not a member of the multisig account."""


class AdapterNotLoadedError(ChainAdapterError):
    """Raised when a ledger-dependent call is made before ``load``."""


class MalformedResponseError(ChainAdapterError):
    """Raised when the ledger returns a record that fails validation."""

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        super().__init__(f"malformed {operation} response: {detail}")


# ---------------------------------------------------------------------------
# Sequencing
# ---------------------------------------------------------------------------


class SequencingError(ChainAdapterError):
    """Base class for fatal nonce sequencing failures.

    The host must resynchronize from an earlier safe height.
    """


class CalibrationError(SequencingError):
    """Raised when look-ahead calibration cannot determine a safe nonce."""


class NonceRegressionError(SequencingError):
    """Raised when the local nonce and the ledger's history disagree.

    Attributes:
        local_nonce: The nonce held or about to be issued locally.
        ledger_nonce: The nonce derived from ledger history.
    """

    def __init__(self, local_nonce: int, ledger_nonce: int, detail: str) -> None:
        self.local_nonce = local_nonce
        self.ledger_nonce = ledger_nonce
        super().__init__(
            f"{detail}: local nonce {local_nonce}, ledger nonce {ledger_nonce}"
        )


class SequencingHaltedError(SequencingError):
    """Raised for every nonce request after a fatal error, until reset."""
