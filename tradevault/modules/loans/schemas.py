from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from enum import Enum


class LoanStatusEnum(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    OVERDUE = "overdue"
    REPAID = "repaid"


class RepaymentTypeEnum(str, Enum):
    PARTIAL = "partial"
    EARLY_FULL = "early_full"
    FULL = "full"


class RepaymentStatusEnum(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ============ Policy & Quotes ============

class LoanPolicyResponse(BaseModel):
    """Published lending terms"""
    min_amount: Decimal
    max_amount: Decimal
    max_active_loans: int
    grace_days: int
    interest_cap_day: int
    daily_interest_rate: Decimal
    daily_penalty_rate: Decimal
    repayment_tolerance: Decimal
    term_days: int
    repayment_priority: List[str] = ["penalty", "interest", "principal"]


class LoanQuoteRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    days: int = Field(..., ge=0, le=3650)


class OwedBreakdownResponse(BaseModel):
    principal: Decimal
    interest: Decimal
    penalty: Decimal
    total: Decimal
    days_elapsed: int


class RemainingResponse(BaseModel):
    principal: Decimal
    interest: Decimal
    penalty: Decimal
    total: Decimal


# ============ Loans ============

class LoanApplicationRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    guarantor_id: Optional[int] = Field(None, gt=0)


class LoanResponse(BaseModel):
    """Stored loan fields"""
    id: int
    user_id: int
    guarantor_id: Optional[int] = None
    amount: Decimal
    currency: str
    status: LoanStatusEnum
    interest_rate: Decimal
    term_days: int
    borrow_date: datetime
    approved_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    repaid_date: Optional[datetime] = None
    penalty_paid: Decimal
    interest_paid: Decimal
    principal_paid: Decimal
    reject_reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LoanDetailResponse(BaseModel):
    """Loan with its live owed breakdown"""
    loan: LoanResponse
    effective_status: LoanStatusEnum
    owed: Optional[OwedBreakdownResponse] = None
    remaining: Optional[RemainingResponse] = None
    full_repayment_type: Optional[RepaymentTypeEnum] = None


class LoanListResponse(BaseModel):
    loans: List[LoanDetailResponse]
    total: int


# ============ Repayments ============

class RepaymentResponse(BaseModel):
    id: int
    loan_id: int
    amount: Decimal
    repayment_type: RepaymentTypeEnum
    status: RepaymentStatusEnum
    receipt_image_url: Optional[str] = None
    reject_reason: Optional[str] = None
    applied_to_penalty: Decimal
    applied_to_interest: Decimal
    applied_to_principal: Decimal
    reviewed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OverdueSweepResponse(BaseModel):
    checked: int
    marked_overdue: int
    credit_deductions: int
