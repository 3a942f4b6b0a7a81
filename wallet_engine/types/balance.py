"""
Balance snapshot type definitions
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Tuple


@dataclass(frozen=True)
class TokenBalance:
    """
    One token's balance inside a snapshot

    Attributes:
        symbol: Registry symbol
        raw_amount: Balance in smallest units
        formatted_amount: raw_amount / 10^decimals rendered exactly
        contract_address: Token contract
        decimals: Declared decimals used for formatting
    """
    symbol: str
    raw_amount: int
    formatted_amount: str
    contract_address: str
    decimals: int

    @property
    def amount(self) -> Decimal:
        return Decimal(self.formatted_amount)


@dataclass(frozen=True)
class TokenReadFailure:
    """A read that failed during aggregation; the token is omitted from the snapshot"""
    symbol: str
    contract_address: str
    error: str


@dataclass(frozen=True)
class TokenMismatch:
    """
    On-chain metadata disagreed with the registry

    The token is left out of the snapshot instead of being trusted.
    """
    symbol: str
    contract_address: str
    expected_symbol: str
    expected_decimals: int
    onchain_symbol: Optional[str]
    onchain_decimals: Optional[int]

    def __str__(self) -> str:
        return (
            f"{self.contract_address}: registry says {self.expected_symbol}/{self.expected_decimals}, "
            f"chain says {self.onchain_symbol}/{self.onchain_decimals}"
        )


@dataclass(frozen=True)
class BalanceSnapshot:
    """
    Immutable view of a wallet's balances at one point in time

    A refresh produces a new snapshot; snapshots are never updated in place.
    native_balance_raw is None when the native read failed.
    """
    wallet_address: str
    native_symbol: str
    native_balance_raw: Optional[int]
    native_balance_formatted: Optional[str]
    token_balances: Tuple[TokenBalance, ...] = ()
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def get(self, symbol: str) -> Optional[TokenBalance]:
        key = symbol.upper()
        for balance in self.token_balances:
            if balance.symbol.upper() == key:
                return balance
        return None

    def native_balance(self) -> Optional[Decimal]:
        if self.native_balance_formatted is None:
            return None
        return Decimal(self.native_balance_formatted)

    def balance_of(self, symbol: str) -> Optional[Decimal]:
        """
        Latest known UI balance for a symbol (native coin included)

        Returns:
            Balance, or None when the symbol was not read successfully
        """
        if symbol.upper() == self.native_symbol.upper():
            return self.native_balance()
        balance = self.get(symbol)
        return balance.amount if balance else None

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.fetched_at).total_seconds()


@dataclass(frozen=True)
class AggregationResult:
    """
    Snapshot plus the reads that did not make it in

    Attributes:
        snapshot: Balances that were read and trusted
        failures: Reads that failed (token omitted)
        flagged: Tokens whose on-chain metadata disagreed with the registry (token omitted)
    """
    snapshot: BalanceSnapshot
    failures: Tuple[TokenReadFailure, ...] = ()
    flagged: Tuple[TokenMismatch, ...] = ()

    @property
    def is_complete(self) -> bool:
        return not self.failures and not self.flagged
