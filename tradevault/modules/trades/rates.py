"""Smart trade profit table and outcome rules"""
import random
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional, Tuple

from tradevault.core.exceptions import OutOfRange
from tradevault.modules.trades.models import TradeMode, OutcomeSource

# Profit on a win, by countdown length in minutes
PROFIT_RATES = {
    1: Decimal("0.10"),
    3: Decimal("0.20"),
    5: Decimal("0.30"),
    15: Decimal("0.40"),
}

WIN_PROBABILITY = 0.5

CENT = Decimal("0.01")


def profit_rate(duration_minutes: int) -> Decimal:
    try:
        return PROFIT_RATES[duration_minutes]
    except KeyError:
        allowed = ", ".join(str(d) for d in PROFIT_RATES)
        raise OutOfRange(f"Trade duration must be one of {allowed} minutes") from None


def settlement_amounts(amount: Decimal, rate: Decimal, won: bool) -> Tuple[Decimal, Decimal]:
    """
    (profit, payout) for a settled stake.

    A win pays the stake back plus ``amount * rate``; a loss pays nothing and
    the stake, already debited at placement, is the loss.
    """
    amount = Decimal(amount)
    if won:
        profit = (amount * Decimal(rate)).quantize(CENT, rounding=ROUND_HALF_UP)
        return profit, amount + profit
    return -amount, Decimal("0.00")


def resolve_outcome(
    mode: TradeMode,
    rng: Optional[Callable[[], float]] = None
) -> Tuple[bool, OutcomeSource]:
    """Forced by the user's mode, otherwise a draw at WIN_PROBABILITY"""
    if mode == TradeMode.ALWAYS_WIN:
        return True, OutcomeSource.MODE
    if mode == TradeMode.ALWAYS_LOSE:
        return False, OutcomeSource.MODE
    draw = (rng or random.random)()
    return draw < WIN_PROBABILITY, OutcomeSource.TIMER
