"""
Exception taxonomy for the wallet engine

Each failure the engine can surface is one subclass of WalletEngineError.
The class name is the ``kind`` shown to the UI; the ErrorCode is for logs
and programmatic matching.
"""

from enum import Enum
from typing import Any, Optional, Tuple
from decimal import Decimal


class ErrorCode(Enum):
    """
    Numeric error codes, grouped by family

    1xxx  node / relay transport
    2xxx  transaction lifecycle
    3xxx  funds
    4xxx  signer
    5xxx  vaults
    6xxx  caller input
    9xxx  configuration
    """
    RPC_UNAVAILABLE = "1001"
    RPC_TIMEOUT = "1002"
    RPC_RATE_LIMITED = "1003"
    RPC_INVALID_RESPONSE = "1004"
    CONTRACT_READ_FAILED = "1005"

    ESTIMATION_FAILED = "2001"
    EXECUTION_REVERTED = "2002"
    CONFIRMATION_TIMEOUT = "2003"
    INVALID_STATE_TRANSITION = "2004"

    INSUFFICIENT_GAS = "3001"
    INSUFFICIENT_BALANCE = "3002"

    SIGNER_NOT_CONFIGURED = "4001"
    SIGNER_REJECTED = "4002"
    SIGNER_FAILED = "4003"

    VAULT_NOT_FOUND = "5001"
    OPERATION_NOT_SUPPORTED = "5002"

    INVALID_INTENT = "6001"
    UNKNOWN_TOKEN = "6002"

    CONFIG_INVALID = "9001"
    CONFIG_MISSING = "9002"


def _detail_value(value: Any) -> Any:
    # Decimals travel as strings so details stay JSON-friendly
    return str(value) if isinstance(value, Decimal) else value


class WalletEngineError(Exception):
    """
    Root of the taxonomy

    Subclasses set ``default_code`` and ``retryable``; keyword context
    passed to the constructor becomes both an attribute and an entry in
    ``details``.

    Attributes:
        message: Text for humans
        code: ErrorCode
        recoverable: True if repeating the same read may succeed
        original_error: Wrapped lower-level exception, if any
        details: Context for logs and the UI
        broadcast_hashes: Hashes already on chain when a batch failed part
            way; empty unless a signer sets them
    """

    default_code: Optional[ErrorCode] = None
    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        recoverable: Optional[bool] = None,
        original_error: Optional[Exception] = None,
        details: Optional[dict] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.recoverable = self.retryable if recoverable is None else recoverable
        self.original_error = original_error
        self.broadcast_hashes: Tuple[str, ...] = ()
        self.details = dict(details or {})
        for name, value in context.items():
            setattr(self, name, value)
            self.details[name] = _detail_value(value)

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value}, message={self.message!r})"

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def should_retry(self) -> bool:
        return self.recoverable


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

class RpcUnavailable(WalletEngineError):
    """The node or relay could not be reached, timed out, throttled us or answered garbage"""

    default_code = ErrorCode.RPC_UNAVAILABLE
    retryable = True

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        original_error: Optional[Exception] = None,
        endpoint: Optional[str] = None,
    ):
        super().__init__(message, code, original_error=original_error, endpoint=endpoint)

    @classmethod
    def connection_failed(cls, endpoint: str, error: Exception = None) -> "RpcUnavailable":
        return cls(f"Cannot reach {endpoint}: {error}", original_error=error, endpoint=endpoint)

    @classmethod
    def timeout(cls, endpoint: str, timeout_seconds: float) -> "RpcUnavailable":
        return cls(f"No answer from {endpoint} within {timeout_seconds}s", ErrorCode.RPC_TIMEOUT, endpoint=endpoint)

    @classmethod
    def rate_limited(cls, endpoint: str) -> "RpcUnavailable":
        return cls(f"Rate limited by {endpoint}", ErrorCode.RPC_RATE_LIMITED, endpoint=endpoint)

    @classmethod
    def invalid_response(cls, endpoint: str, reason: str) -> "RpcUnavailable":
        return cls(f"Unusable response from {endpoint}: {reason}", ErrorCode.RPC_INVALID_RESPONSE, endpoint=endpoint)


class ContractReadFailed(WalletEngineError):
    """A view call reverted or returned nothing; usually the function does not exist there"""

    default_code = ErrorCode.CONTRACT_READ_FAILED

    def __init__(
        self,
        message: str,
        contract: Optional[str] = None,
        function: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, original_error=original_error, contract=contract, function=function)

    @classmethod
    def reverted(cls, contract: str, function: str, error: Exception = None) -> "ContractReadFailed":
        return cls(f"{function} on {contract} failed: {error}", contract, function, original_error=error)


# ---------------------------------------------------------------------------
# Transaction lifecycle
# ---------------------------------------------------------------------------

class EstimationFailed(WalletEngineError):
    """
    The node refused to estimate because the call would revert

    Typical causes are an on-chain balance below the amount or a paused
    contract. Retrying the same intent will not help.
    """

    default_code = ErrorCode.ESTIMATION_FAILED

    def __init__(self, message: str, reason: Optional[str] = None, original_error: Optional[Exception] = None):
        super().__init__(message, original_error=original_error, reason=reason)

    @classmethod
    def would_revert(cls, reason: Optional[str], error: Exception = None) -> "EstimationFailed":
        return cls(f"Transaction would revert: {reason or 'execution reverted'}", reason, original_error=error)


class ConfirmationTimeout(WalletEngineError):
    """
    No receipt inside the wait budget

    The outcome is unknown, not failed. Reconcile by looking the hash up
    again; resubmitting could double-spend.
    """

    default_code = ErrorCode.CONFIRMATION_TIMEOUT

    def __init__(self, message: str, tx_hash: Optional[str] = None, timeout_seconds: Optional[float] = None):
        super().__init__(message, tx_hash=tx_hash, timeout_seconds=timeout_seconds)

    @classmethod
    def waiting_for(cls, tx_hash: str, timeout_seconds: float) -> "ConfirmationTimeout":
        return cls(f"No receipt for {tx_hash} after {timeout_seconds}s", tx_hash, timeout_seconds)


class ExecutionReverted(WalletEngineError):
    """Mined with status 0, or turned away by the node at broadcast"""

    default_code = ErrorCode.EXECUTION_REVERTED

    def __init__(
        self,
        message: str,
        tx_hash: Optional[str] = None,
        reason: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, original_error=original_error, tx_hash=tx_hash, reason=reason)

    @classmethod
    def from_receipt(cls, tx_hash: str, reason: Optional[str] = None) -> "ExecutionReverted":
        message = f"Transaction {tx_hash} reverted" + (f": {reason}" if reason else "")
        return cls(message, tx_hash=tx_hash, reason=reason)

    @classmethod
    def rejected_by_node(cls, reason: str, error: Exception = None) -> "ExecutionReverted":
        return cls(f"Transaction rejected: {reason}", reason=reason, original_error=error)


class InvalidStateTransition(WalletEngineError):
    """A handle was asked to go backwards or leave a terminal state"""

    default_code = ErrorCode.INVALID_STATE_TRANSITION

    def __init__(self, current: str, requested: str):
        super().__init__(f"Illegal transaction state transition: {current} -> {requested}",
                         current=current, requested=requested)


# ---------------------------------------------------------------------------
# Funds
# ---------------------------------------------------------------------------

class InsufficientGas(WalletEngineError):
    """Native balance does not cover gas (and any value sent with it)"""

    default_code = ErrorCode.INSUFFICIENT_GAS

    def __init__(
        self,
        message: str,
        required: Optional[Decimal] = None,
        available: Optional[Decimal] = None,
        symbol: str = "ETH",
    ):
        super().__init__(message, symbol=symbol, required=required, available=available)

    @classmethod
    def for_cost(cls, required: Decimal, available: Decimal, symbol: str = "ETH") -> "InsufficientGas":
        return cls(f"Not enough {symbol} for gas: need {required}, have {available}", required, available, symbol)


class InsufficientBalance(WalletEngineError):
    """Amount is above the latest known balance, or no balance is known at all"""

    default_code = ErrorCode.INSUFFICIENT_BALANCE

    def __init__(
        self,
        message: str,
        token: Optional[str] = None,
        required: Optional[Decimal] = None,
        available: Optional[Decimal] = None,
    ):
        super().__init__(message, token=token, required=required, available=available)

    @classmethod
    def token_balance(cls, token: str, required: Decimal, available: Decimal) -> "InsufficientBalance":
        return cls(f"Not enough {token}: need {required}, have {available}", token, required, available)

    @classmethod
    def unknown_balance(cls, token: str) -> "InsufficientBalance":
        return cls(f"{token} balance unknown for this wallet; refresh balances first", token)


# ---------------------------------------------------------------------------
# Signers
# ---------------------------------------------------------------------------

class SignerError(WalletEngineError):
    """Missing signer, or the signing step itself blew up"""

    default_code = ErrorCode.SIGNER_FAILED

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        recoverable: bool = False,
        original_error: Optional[Exception] = None,
        **context: Any,
    ):
        super().__init__(message, code, recoverable, original_error, **context)

    @classmethod
    def not_configured(cls) -> "SignerError":
        return cls("No signer available: supply a private key or a relay URL", ErrorCode.SIGNER_NOT_CONFIGURED)

    @classmethod
    def failed(cls, reason: str, error: Exception = None) -> "SignerError":
        return cls(f"Could not sign: {reason}", original_error=error)


class SignerRejected(SignerError):
    """The user, or a signing policy, said no"""

    default_code = ErrorCode.SIGNER_REJECTED

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message, reason=reason)

    @classmethod
    def user_declined(cls) -> "SignerRejected":
        return cls("User declined to sign the transaction", reason="user")

    @classmethod
    def policy(cls, reason: str) -> "SignerRejected":
        return cls(f"Blocked by signing policy: {reason}", reason=reason)


# ---------------------------------------------------------------------------
# Input, vaults, configuration
# ---------------------------------------------------------------------------

class InvalidIntent(WalletEngineError):
    default_code = ErrorCode.INVALID_INTENT

    def __init__(self, message: str, field_name: Optional[str] = None):
        super().__init__(message, field_name=field_name)

    @classmethod
    def invalid(cls, field_name: str, reason: str) -> "InvalidIntent":
        return cls(f"Invalid {field_name}: {reason}", field_name)


class UnknownToken(WalletEngineError):
    default_code = ErrorCode.UNKNOWN_TOKEN

    def __init__(self, symbol: str):
        super().__init__(f"Token {symbol!r} is not in the registry", symbol=symbol)


class OperationNotSupported(WalletEngineError):
    """The vault is unknown, or known but not wired for this operation yet"""

    default_code = ErrorCode.OPERATION_NOT_SUPPORTED

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        vault_id: Optional[str] = None,
        code: Optional[ErrorCode] = None,
    ):
        super().__init__(message, code, operation=operation, vault_id=vault_id)

    @classmethod
    def not_implemented(cls, operation: str, vault_id: str) -> "OperationNotSupported":
        return cls(f"Vault {vault_id} does not support {operation}", operation, vault_id)

    @classmethod
    def unknown_vault(cls, vault_id: str) -> "OperationNotSupported":
        return cls(f"No vault named {vault_id!r}", vault_id=vault_id, code=ErrorCode.VAULT_NOT_FOUND)


class ConfigurationError(WalletEngineError):
    default_code = ErrorCode.CONFIG_INVALID

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message, code)

    @classmethod
    def missing(cls, param: str) -> "ConfigurationError":
        return cls(f"{param} is not set", ErrorCode.CONFIG_MISSING)

    @classmethod
    def invalid(cls, param: str, reason: str) -> "ConfigurationError":
        return cls(f"Bad value for {param}: {reason}")
