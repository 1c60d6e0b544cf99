"""Staking tiers and earnings arithmetic"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from tradevault.core.exceptions import NotFound
from tradevault.modules.loans.accrual import days_elapsed

# Completed deposits required before any tier can be joined
MIN_TOTAL_DEPOSITS = Decimal("5000")

CENT = Decimal("0.01")


@dataclass(frozen=True)
class MiningTier:
    tier: int
    lock_days: int
    daily_rate: Decimal  # percent per day
    min_amount: Decimal

    @property
    def label(self) -> str:
        return f"{self.lock_days} Days Lock"


MINING_TIERS = (
    MiningTier(1, 15, Decimal("1"), Decimal("3000")),
    MiningTier(2, 30, Decimal("1.5"), Decimal("7000")),
    MiningTier(3, 60, Decimal("2"), Decimal("10000")),
)


def get_tier(tier: int) -> MiningTier:
    for candidate in MINING_TIERS:
        if candidate.tier == tier:
            return candidate
    raise NotFound(f"Unknown mining tier {tier}")


def earnings_for_days(amount: Decimal, daily_rate: Decimal, days: int, lock_days: int) -> Decimal:
    days = min(max(days, 0), lock_days)
    earned = Decimal(amount) * Decimal(daily_rate) / 100 * days
    return earned.quantize(CENT, rounding=ROUND_HALF_UP)


def accrued_earnings(
    amount: Decimal,
    daily_rate: Decimal,
    start_date: Optional[datetime],
    lock_days: int,
    now: Optional[datetime] = None
) -> Decimal:
    """Earnings so far, capped at the lock period"""
    if start_date is None:
        return Decimal("0.00")
    return earnings_for_days(amount, daily_rate, days_elapsed(start_date, now), lock_days)
