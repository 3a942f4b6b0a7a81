"""
Gas type definitions
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from .tokens import format_units


@dataclass(frozen=True)
class FeeParameters:
    """
    Current fee market as reported by the node (all values in wei)

    base_fee is None on legacy chains without EIP-1559; gas_price is then used.
    """
    base_fee: Optional[int]
    priority_fee: int
    gas_price: Optional[int] = None

    @property
    def is_eip1559(self) -> bool:
        return self.base_fee is not None


@dataclass(frozen=True)
class GasEstimate:
    """
    Derived cost of a pending intent, valid only at the moment of computation

    Attributes:
        gas_limit: Total gas limit across the call batch (buffer applied)
        base_or_gas_price: Base fee (EIP-1559) or legacy gas price, in wei
        max_fee_per_gas: EIP-1559 fee cap (None on legacy chains)
        max_priority_fee_per_gas: EIP-1559 tip (None on legacy chains)
        estimated_cost_wei: gas_limit * effective max price
        estimated_cost_native: Same cost in native coin units
        sponsored: Cost is informational only; a paymaster pays
        call_gas_limits: Per-call gas limits in batch order
        created_at: time.monotonic() at computation
    """
    gas_limit: int
    base_or_gas_price: int
    max_fee_per_gas: Optional[int]
    max_priority_fee_per_gas: Optional[int]
    estimated_cost_wei: int
    estimated_cost_native: Decimal
    sponsored: bool = False
    call_gas_limits: tuple = ()
    created_at: float = field(default_factory=time.monotonic)

    @property
    def is_eip1559(self) -> bool:
        return self.max_fee_per_gas is not None

    @property
    def price_per_gas(self) -> int:
        """Worst-case price per gas unit used for the cost figure"""
        if self.max_fee_per_gas is not None:
            return self.max_fee_per_gas
        return self.base_or_gas_price

    def age_seconds(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.monotonic()) - self.created_at

    def is_stale(self, max_age: float, now: Optional[float] = None) -> bool:
        return self.age_seconds(now) > max_age

    @classmethod
    def build(
        cls,
        call_gas_limits: tuple,
        fees: FeeParameters,
        max_fee_per_gas: Optional[int],
        max_priority_fee_per_gas: Optional[int],
        sponsored: bool = False,
        native_decimals: int = 18,
    ) -> "GasEstimate":
        gas_limit = sum(call_gas_limits)
        base_or_price = fees.base_fee if fees.base_fee is not None else (fees.gas_price or 0)
        price = max_fee_per_gas if max_fee_per_gas is not None else base_or_price
        cost_wei = gas_limit * price
        return cls(
            gas_limit=gas_limit,
            base_or_gas_price=base_or_price,
            max_fee_per_gas=max_fee_per_gas,
            max_priority_fee_per_gas=max_priority_fee_per_gas,
            estimated_cost_wei=cost_wei,
            estimated_cost_native=Decimal(format_units(cost_wei, native_decimals)),
            sponsored=sponsored,
            call_gas_limits=tuple(call_gas_limits),
        )

    def __str__(self) -> str:
        tag = " (sponsored)" if self.sponsored else ""
        return f"GasEstimate(gas={self.gas_limit}, cost={self.estimated_cost_native}{tag})"
