"""
Deposit record type definitions
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple


class DepositStatus(Enum):
    ACTIVE = "active"
    WITHDRAWN = "withdrawn"


@dataclass(frozen=True)
class Withdrawal:
    """Principal taken out of a deposit by one confirmed redeem"""
    amount: Decimal
    at: datetime
    tx_hash: str


@dataclass(frozen=True)
class Deposit:
    """
    A confirmed vault deposit

    Created when a VaultDeposit reaches success. Each confirmed redeem
    against it appends a Withdrawal; status flips to WITHDRAWN once the
    remaining principal reaches zero. Persisted outside the engine.
    """
    id: str
    owner_address: str
    vault_id: str
    principal_amount: Decimal
    apy_at_deposit: Decimal
    deposited_at: datetime
    status: DepositStatus = DepositStatus.ACTIVE
    tx_hash: Optional[str] = None
    withdrawals: Tuple[Withdrawal, ...] = ()

    @property
    def is_active(self) -> bool:
        return self.status == DepositStatus.ACTIVE

    @property
    def withdrawn_amount(self) -> Decimal:
        return sum((w.amount for w in self.withdrawals), Decimal(0))

    @property
    def remaining_principal(self) -> Decimal:
        return max(self.principal_amount - self.withdrawn_amount, Decimal(0))

    @property
    def withdrawn_at(self) -> Optional[datetime]:
        """Time of the withdrawal that closed the deposit"""
        if self.is_active or not self.withdrawals:
            return None
        return self.withdrawals[-1].at

    @property
    def withdraw_tx_hash(self) -> Optional[str]:
        if self.is_active or not self.withdrawals:
            return None
        return self.withdrawals[-1].tx_hash

    def with_withdrawal(self, amount: Decimal, at: datetime, tx_hash: str) -> "Deposit":
        """
        Copy with one more withdrawal applied

        Amounts above the remaining principal (a redeem that includes earned
        yield) are capped and close the deposit.
        """
        if not self.is_active:
            return self
        taken = min(Decimal(amount), self.remaining_principal)
        withdrawals = self.withdrawals + (Withdrawal(taken, at, tx_hash),)
        closed = self.principal_amount - sum((w.amount for w in withdrawals), Decimal(0)) <= 0
        return replace(
            self,
            withdrawals=withdrawals,
            status=DepositStatus.WITHDRAWN if closed else DepositStatus.ACTIVE,
        )
