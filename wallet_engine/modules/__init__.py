"""
Functional modules for WalletClient

Provides high-level operations:
- BalanceAggregator / BalanceCache: concurrent balance snapshots
- CallBuilder: intent -> call batch
- GasEstimator: gas limit and fee estimation
- VaultAdapter: vault deposit/redeem encoding and previews
- TransactionOrchestrator: transaction lifecycle state machine
- yield_accounting: simple pro-rata yield figures
"""

from .balances import BalanceAggregator, BalanceCache
from .calls import CallBuilder
from .deposits import DepositStore, InMemoryDepositStore
from .gas import GasEstimator
from .orchestrator import TransactionOrchestrator
from .vault import VaultAdapter
from .yield_accounting import (
    estimate_yield,
    daily_yield,
    elapsed_days,
    accrued_yield,
    projected_yield,
    portfolio_yield,
)

__all__ = [
    "BalanceAggregator",
    "BalanceCache",
    "CallBuilder",
    "DepositStore",
    "InMemoryDepositStore",
    "GasEstimator",
    "TransactionOrchestrator",
    "VaultAdapter",
    "estimate_yield",
    "daily_yield",
    "elapsed_days",
    "accrued_yield",
    "projected_yield",
    "portfolio_yield",
]
