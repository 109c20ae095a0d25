"""DEX chain adapter.

Assigns strictly ordered nonces to the outgoing payments of a multisig
account, builds and partially signs the transfers, and verifies the
signatures peer members submit.

Quick start::

    from dex_adapter import AdapterSettings, ChainAdapter, LedgerQueryClient

    settings = AdapterSettings()
    adapter = ChainAdapter(settings)
    await adapter.load(LedgerQueryClient.from_settings(settings), last_processed_height)
    result = await adapter.prepare_transaction(instruction)
"""

from dex_adapter.adapter import ChainAdapter
from dex_adapter.cache import RecentIdentifiers
from dex_adapter.calibrator import (
    HistoryReplayCalibrator,
    NonceCalibrator,
    RollingCacheCalibrator,
    SequencerState,
    create_calibrator,
)
from dex_adapter.client import (
    JsonRpcLedgerService,
    LedgerConnectionError,
    LedgerQueryService,
    LedgerRpcError,
    LedgerServiceError,
    LedgerTimeoutError,
)
from dex_adapter.config import AdapterSettings
from dex_adapter.errors import (
    AdapterNotLoadedError,
    CalibrationError,
    ChainAdapterError,
    InvalidRecipientError,
    MalformedResponseError,
    MembershipError,
    NonceRegressionError,
    SequencingError,
    SequencingHaltedError,
)
from dex_adapter.preparer import TransactionPreparer
from dex_adapter.query import LedgerQueryClient
from dex_adapter.retry import RetryPolicy
from dex_adapter.sdk import ChainSDK, Ed25519ChainSDK
from dex_adapter.types import (
    Account,
    Block,
    NoncePolicy,
    Order,
    OutboundTransactionRecord,
    PaymentInstruction,
    PreparedResult,
    PreparedTransaction,
    SignaturePacket,
)
from dex_adapter.verifier import SignatureVerifier
from dex_adapter.wallet import MemberWallet

__all__ = [
    # Adapter
    "ChainAdapter",
    "AdapterSettings",
    # Components
    "HistoryReplayCalibrator",
    "NonceCalibrator",
    "RollingCacheCalibrator",
    "SequencerState",
    "create_calibrator",
    "RecentIdentifiers",
    "TransactionPreparer",
    "SignatureVerifier",
    "MemberWallet",
    # Ledger
    "JsonRpcLedgerService",
    "LedgerQueryClient",
    "LedgerQueryService",
    "RetryPolicy",
    "LedgerConnectionError",
    "LedgerRpcError",
    "LedgerServiceError",
    "LedgerTimeoutError",
    # Chain SDK
    "ChainSDK",
    "Ed25519ChainSDK",
    # Errors
    "AdapterNotLoadedError",
    "CalibrationError",
    "ChainAdapterError",
    "InvalidRecipientError",
    "MalformedResponseError",
    "MembershipError",
    "NonceRegressionError",
    "SequencingError",
    "SequencingHaltedError",
    # Types
    "Account",
    "Block",
    "NoncePolicy",
    "Order",
    "OutboundTransactionRecord",
    "PaymentInstruction",
    "PreparedResult",
    "PreparedTransaction",
    "SignaturePacket",
]

__version__ = "0.1.0"
