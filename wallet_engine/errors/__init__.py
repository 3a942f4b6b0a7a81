"""
Error definitions for the wallet engine
"""

from .exceptions import (
    ErrorCode,
    WalletEngineError,
    RpcUnavailable,
    ContractReadFailed,
    EstimationFailed,
    InsufficientGas,
    InsufficientBalance,
    SignerError,
    SignerRejected,
    ConfirmationTimeout,
    ExecutionReverted,
    InvalidIntent,
    UnknownToken,
    InvalidStateTransition,
    OperationNotSupported,
    ConfigurationError,
)

__all__ = [
    "ErrorCode",
    "WalletEngineError",
    "RpcUnavailable",
    "ContractReadFailed",
    "EstimationFailed",
    "InsufficientGas",
    "InsufficientBalance",
    "SignerError",
    "SignerRejected",
    "ConfirmationTimeout",
    "ExecutionReverted",
    "InvalidIntent",
    "UnknownToken",
    "InvalidStateTransition",
    "OperationNotSupported",
    "ConfigurationError",
]
