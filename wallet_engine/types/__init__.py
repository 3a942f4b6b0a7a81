"""
Type definitions for the wallet engine
"""

from .tokens import (
    NATIVE_TOKEN_ADDRESS,
    TokenDescriptor,
    TokenRegistry,
    ETH_NATIVE,
    ETH_TOKENS,
    default_registry,
    format_units,
    parse_units,
)
from .balance import (
    TokenBalance,
    TokenReadFailure,
    TokenMismatch,
    BalanceSnapshot,
    AggregationResult,
)
from .gas import FeeParameters, GasEstimate
from .transaction import (
    IntentKind,
    TransactionIntent,
    ContractCall,
    PreparedCall,
    TxState,
    Receipt,
    Submission,
    TransactionHandle,
    can_transition,
)
from .deposit import Deposit, DepositStatus, Withdrawal
from .vault import (
    VaultDescriptor,
    SharePreview,
    VaultInfo,
    MHYPER_VAULT,
    SGHO_VAULT,
    KNOWN_VAULTS,
    get_vault,
    find_vault,
    list_vaults,
)

__all__ = [
    # Tokens
    "NATIVE_TOKEN_ADDRESS",
    "TokenDescriptor",
    "TokenRegistry",
    "ETH_NATIVE",
    "ETH_TOKENS",
    "default_registry",
    "format_units",
    "parse_units",
    # Balances
    "TokenBalance",
    "TokenReadFailure",
    "TokenMismatch",
    "BalanceSnapshot",
    "AggregationResult",
    # Gas
    "FeeParameters",
    "GasEstimate",
    # Transactions
    "IntentKind",
    "TransactionIntent",
    "ContractCall",
    "PreparedCall",
    "TxState",
    "Receipt",
    "Submission",
    "TransactionHandle",
    "can_transition",
    # Deposits
    "Deposit",
    "DepositStatus",
    "Withdrawal",
    # Vaults
    "VaultDescriptor",
    "SharePreview",
    "VaultInfo",
    "MHYPER_VAULT",
    "SGHO_VAULT",
    "KNOWN_VAULTS",
    "get_vault",
    "find_vault",
    "list_vaults",
]
