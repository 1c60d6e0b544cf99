# Loans module
from tradevault.modules.loans.models import (
    Loan, LoanRepayment, LoanStatus, RepaymentStatus, ACTIVE_STATUSES
)
from tradevault.modules.loans.validation import RepaymentType

__all__ = [
    "Loan", "LoanRepayment", "LoanStatus", "RepaymentStatus", "ACTIVE_STATUSES",
    "RepaymentType"
]
