"""
Deposit bookkeeping

The orchestrator records confirmed vault deposits and withdrawals through a
DepositStore. Real persistence lives outside the engine; InMemoryDepositStore
backs tests and local use.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Protocol, runtime_checkable

from ..types import Deposit, get_vault

logger = logging.getLogger(__name__)


@runtime_checkable
class DepositStore(Protocol):
    async def record_deposit(
        self,
        owner_address: str,
        vault_id: str,
        amount: Decimal,
        tx_hash: str,
        apy_at_deposit: Optional[Decimal] = None,
        deposited_at: Optional[datetime] = None,
    ) -> Deposit: ...

    async def record_withdrawal(
        self,
        deposit_id: str,
        amount: Decimal,
        tx_hash: str,
        withdrawn_at: Optional[datetime] = None,
    ) -> Optional[Deposit]: ...

    async def list_deposits(self, owner_address: str) -> List[Deposit]: ...


class InMemoryDepositStore:
    """Dict-backed DepositStore"""

    def __init__(self):
        self._deposits: Dict[str, Deposit] = {}

    async def record_deposit(
        self,
        owner_address: str,
        vault_id: str,
        amount: Decimal,
        tx_hash: str,
        apy_at_deposit: Optional[Decimal] = None,
        deposited_at: Optional[datetime] = None,
    ) -> Deposit:
        """Store a new active deposit; the APY defaults to the vault's current one"""
        deposit = Deposit(
            id=uuid.uuid4().hex,
            owner_address=owner_address,
            vault_id=vault_id,
            principal_amount=Decimal(amount),
            apy_at_deposit=apy_at_deposit if apy_at_deposit is not None else get_vault(vault_id).apy,
            deposited_at=deposited_at or datetime.now(timezone.utc),
            tx_hash=tx_hash,
        )
        self._deposits[deposit.id] = deposit
        logger.debug(f"Recorded deposit {deposit.id} ({deposit.principal_amount} into {vault_id})")
        return deposit

    async def record_withdrawal(
        self,
        deposit_id: str,
        amount: Decimal,
        tx_hash: str,
        withdrawn_at: Optional[datetime] = None,
    ) -> Optional[Deposit]:
        """Apply a withdrawal of ``amount`` principal; None when the id is unknown"""
        deposit = self._deposits.get(deposit_id)
        if deposit is None:
            logger.warning(f"Withdrawal for unknown deposit {deposit_id}")
            return None
        updated = deposit.with_withdrawal(amount, withdrawn_at or datetime.now(timezone.utc), tx_hash)
        self._deposits[deposit_id] = updated
        logger.debug(
            f"Deposit {deposit_id}: withdrew {amount}, {updated.remaining_principal} left ({updated.status.value})"
        )
        return updated

    async def list_deposits(self, owner_address: str) -> List[Deposit]:
        owner = owner_address.lower()
        return sorted(
            (d for d in self._deposits.values() if d.owner_address.lower() == owner),
            key=lambda d: d.deposited_at,
        )

    def get(self, deposit_id: str) -> Optional[Deposit]:
        return self._deposits.get(deposit_id)

    def __len__(self) -> int:
        return len(self._deposits)
