from decimal import Decimal, InvalidOperation
import enum

from tradevault.core.exceptions import AmountExceedsOwed, InvalidAmount, OutOfRange
from tradevault.modules.loans.accrual import GRACE_DAYS

MIN_LOAN_AMOUNT = Decimal("5000")
MAX_LOAN_AMOUNT = Decimal("100000")

# Submissions may exceed the computed total by this fraction, absorbing the
# drift between the quote the user saw and the moment of submission
REPAYMENT_TOLERANCE = Decimal("0.01")


class RepaymentType(str, enum.Enum):
    PARTIAL = "partial"
    EARLY_FULL = "early_full"   # full settlement inside the grace window
    FULL = "full"


FULL_TYPES = (RepaymentType.FULL, RepaymentType.EARLY_FULL)


def _as_decimal(amount) -> Decimal:
    if amount is None or isinstance(amount, bool):
        raise InvalidAmount()
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise InvalidAmount()
    if not value.is_finite() or value <= 0:
        raise InvalidAmount()
    return value


def validate_loan_amount(amount) -> Decimal:
    value = _as_decimal(amount)
    if value < MIN_LOAN_AMOUNT or value > MAX_LOAN_AMOUNT:
        raise OutOfRange(f"Loan amount must be between {MIN_LOAN_AMOUNT} and {MAX_LOAN_AMOUNT}")
    return value


def full_repayment_type(days: int) -> RepaymentType:
    """early_full while the loan is still interest free, full afterwards"""
    return RepaymentType.EARLY_FULL if days <= GRACE_DAYS else RepaymentType.FULL


def validate_repayment(amount, total: Decimal, repayment_type: RepaymentType) -> Decimal:
    """
    Return the amount that will be recorded for this submission.

    Full settlements always record ``total`` whatever the caller sent, so a
    partial payment can never be tagged as full.
    """
    if repayment_type in FULL_TYPES:
        return total

    value = _as_decimal(amount)
    if value > total * (1 + REPAYMENT_TOLERANCE):
        raise AmountExceedsOwed(f"Amount {value} exceeds the {total} currently owed")
    return value
