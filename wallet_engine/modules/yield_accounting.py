"""
Yield accounting

Simple (non-compounding) pro-rata accrual:

    yield = principal * (apy / 100) * (days / 365)

All figures are Decimal. Negative inputs are rejected.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional, Union

from ..errors import InvalidIntent
from ..types import Deposit

Number = Union[Decimal, int, str]

DAYS_PER_YEAR = Decimal(365)
SECONDS_PER_DAY = Decimal(86400)


def _non_negative(name: str, value: Number) -> Decimal:
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except ArithmeticError as e:
        raise InvalidIntent.invalid(name, f"not a number: {value!r}") from e
    if not number.is_finite():
        raise InvalidIntent.invalid(name, f"must be finite, got {value}")
    if number < 0:
        raise InvalidIntent.invalid(name, f"must not be negative, got {value}")
    return number


def estimate_yield(principal: Number, apy_percent: Number, days: Number = 365) -> Decimal:
    """
    Yield on principal over a number of days at a fixed APY

    Raises:
        InvalidIntent: Any input is negative or not a number
    """
    principal = _non_negative("principal", principal)
    apy = _non_negative("apy_percent", apy_percent)
    days = _non_negative("days", days)
    return principal * (apy / 100) * (days / DAYS_PER_YEAR)


def daily_yield(principal: Number, apy_percent: Number) -> Decimal:
    return estimate_yield(principal, apy_percent, 1)


def elapsed_days(start: datetime, end: datetime) -> Decimal:
    """Fractional days between two aware datetimes; never negative"""
    seconds = Decimal(str((end - start).total_seconds()))
    return max(seconds / SECONDS_PER_DAY, Decimal(0))


def accrued_yield(deposit: Deposit, as_of: Optional[datetime] = None) -> Decimal:
    """
    Yield earned so far at the APY locked in at deposit time

    Each withdrawal shrinks the principal from its own timestamp on, so a
    closed deposit stops accruing at its last withdrawal.
    """
    end = as_of or datetime.now(timezone.utc)
    principal = deposit.principal_amount
    start = deposit.deposited_at
    earned = Decimal(0)
    for withdrawal in deposit.withdrawals:
        if withdrawal.at >= end:
            break
        earned += estimate_yield(principal, deposit.apy_at_deposit, elapsed_days(start, withdrawal.at))
        principal = max(principal - withdrawal.amount, Decimal(0))
        start = max(start, withdrawal.at)
    return earned + estimate_yield(principal, deposit.apy_at_deposit, elapsed_days(start, end))


def projected_yield(deposit: Deposit, days: Number) -> Decimal:
    """Yield over the next ``days`` on what is still deposited"""
    return estimate_yield(deposit.remaining_principal, deposit.apy_at_deposit, days)


def portfolio_yield(deposits: Iterable[Deposit], as_of: Optional[datetime] = None) -> Decimal:
    """Accrued yield summed over active deposits"""
    return sum((accrued_yield(d, as_of) for d in deposits if d.is_active), Decimal(0))
