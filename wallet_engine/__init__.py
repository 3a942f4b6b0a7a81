"""
Wallet Engine - balance aggregation and transaction accounting for one wallet

Provides:
- Concurrent balance snapshots across a fixed token registry
- Gas estimation (EIP-1559 and legacy)
- Transfers and vault deposits/redemptions through either
  a self-funded EOA or a sponsored smart wallet (paymaster relay)
- A forward-only transaction state machine with typed errors
- Simple pro-rata yield figures for vault deposits
"""

from .client import WalletClient
from .types import (
    TokenDescriptor,
    TokenRegistry,
    BalanceSnapshot,
    AggregationResult,
    GasEstimate,
    TransactionIntent,
    IntentKind,
    TransactionHandle,
    TxState,
    Deposit,
    VaultDescriptor,
    default_registry,
    NATIVE_TOKEN_ADDRESS,
)
from .errors import (
    ErrorCode,
    WalletEngineError,
    RpcUnavailable,
    EstimationFailed,
    InsufficientGas,
    InsufficientBalance,
    SignerRejected,
    ConfirmationTimeout,
    ExecutionReverted,
    OperationNotSupported,
)
from .infra import ChainClient, PaymasterRelay, SelfFundedSigner, SponsoredSigner
from .modules import (
    BalanceAggregator,
    BalanceCache,
    GasEstimator,
    VaultAdapter,
    TransactionOrchestrator,
    InMemoryDepositStore,
    estimate_yield,
)
from .explorer import explorer_tx_url, explorer_address_url

__version__ = "0.1.0"

__all__ = [
    # Client
    "WalletClient",
    # Types
    "TokenDescriptor",
    "TokenRegistry",
    "BalanceSnapshot",
    "AggregationResult",
    "GasEstimate",
    "TransactionIntent",
    "IntentKind",
    "TransactionHandle",
    "TxState",
    "Deposit",
    "VaultDescriptor",
    "default_registry",
    "NATIVE_TOKEN_ADDRESS",
    # Errors
    "ErrorCode",
    "WalletEngineError",
    "RpcUnavailable",
    "EstimationFailed",
    "InsufficientGas",
    "InsufficientBalance",
    "SignerRejected",
    "ConfirmationTimeout",
    "ExecutionReverted",
    "OperationNotSupported",
    # Infrastructure
    "ChainClient",
    "PaymasterRelay",
    "SelfFundedSigner",
    "SponsoredSigner",
    # Modules
    "BalanceAggregator",
    "BalanceCache",
    "GasEstimator",
    "VaultAdapter",
    "TransactionOrchestrator",
    "InMemoryDepositStore",
    "estimate_yield",
    # Explorer
    "explorer_tx_url",
    "explorer_address_url",
]
