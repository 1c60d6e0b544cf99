"""
Loan interest and penalty accrual.

Everything here is a pure function of the principal, the borrow date and
"now". Nothing is cached: a breakdown computed before midnight is stale
after it.

Schedule by whole days elapsed since the borrow date:

    0-7     interest free
    8-15    1% of principal per day past day 7
    16+     interest frozen at 8 days' worth, plus 2% of principal per day
            past day 15 as penalty
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from tradevault.core.database import utcnow

GRACE_DAYS = 7
INTEREST_CAP_DAY = 15
DAILY_INTEREST_RATE = Decimal("0.01")
DAILY_PENALTY_RATE = Decimal("0.02")

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
ONE_DAY = timedelta(days=1)


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class OwedBreakdown:
    principal: Decimal
    interest: Decimal
    penalty: Decimal
    total: Decimal
    days_elapsed: int


@dataclass(frozen=True)
class Remaining:
    principal: Decimal
    interest: Decimal
    penalty: Decimal

    @property
    def total(self) -> Decimal:
        return self.principal + self.interest + self.penalty


@dataclass(frozen=True)
class Allocation:
    penalty: Decimal
    interest: Decimal
    principal: Decimal
    unapplied: Decimal

    @property
    def applied(self) -> Decimal:
        return self.penalty + self.interest + self.principal


def days_elapsed(borrow_date: datetime, now: Optional[datetime] = None) -> int:
    """Whole days since borrow_date, never negative"""
    now = as_utc(now or utcnow())
    elapsed = (now - as_utc(borrow_date)) // ONE_DAY
    return max(elapsed, 0)


def accrue(principal: Decimal, days: int) -> OwedBreakdown:
    """Breakdown for a principal after ``days`` whole days"""
    principal = _money(Decimal(principal))
    days = max(int(days), 0)

    interest = ZERO
    penalty = ZERO
    if days > INTEREST_CAP_DAY:
        interest = principal * DAILY_INTEREST_RATE * (INTEREST_CAP_DAY - GRACE_DAYS)
        penalty = principal * DAILY_PENALTY_RATE * (days - INTEREST_CAP_DAY)
    elif days > GRACE_DAYS:
        interest = principal * DAILY_INTEREST_RATE * (days - GRACE_DAYS)

    interest = _money(interest)
    penalty = _money(penalty)
    return OwedBreakdown(
        principal=principal,
        interest=interest,
        penalty=penalty,
        total=principal + interest + penalty,
        days_elapsed=days
    )


def calculate_owed(principal: Decimal, borrow_date: datetime, now: Optional[datetime] = None) -> OwedBreakdown:
    return accrue(principal, days_elapsed(borrow_date, now))


def is_overdue(days: int) -> bool:
    return days > INTEREST_CAP_DAY


def days_overdue(days: int) -> int:
    return max(days - INTEREST_CAP_DAY, 0)


def remaining_owed(
    breakdown: OwedBreakdown,
    penalty_paid: Decimal = ZERO,
    interest_paid: Decimal = ZERO,
    principal_paid: Decimal = ZERO
) -> Remaining:
    """What is still owed per category after approved repayments"""
    return Remaining(
        principal=max(breakdown.principal - Decimal(principal_paid or 0), ZERO),
        interest=max(breakdown.interest - Decimal(interest_paid or 0), ZERO),
        penalty=max(breakdown.penalty - Decimal(penalty_paid or 0), ZERO)
    )


def allocate_repayment(amount: Decimal, remaining: Remaining) -> Allocation:
    """
    Split a settled amount across penalty, then interest, then principal.
    Whatever is left after the principal is returned as ``unapplied``.
    """
    left = _money(Decimal(amount))
    parts = []
    for owed in (remaining.penalty, remaining.interest, remaining.principal):
        applied = min(left, owed) if left > 0 else ZERO
        parts.append(applied)
        left -= applied

    return Allocation(
        penalty=parts[0],
        interest=parts[1],
        principal=parts[2],
        unapplied=left
    )
