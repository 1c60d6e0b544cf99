from fastapi import APIRouter, Depends, status, UploadFile, File, Form
from sqlalchemy.ext.asyncio import AsyncSession
from decimal import Decimal
from typing import Optional, List
from dataclasses import asdict

from tradevault.core.database import get_db
from tradevault.core.dependencies import get_current_user
from tradevault.modules.users.models import User
from tradevault.modules.loans import schemas, accrual
from tradevault.modules.loans.services import LoanService
from tradevault.modules.loans.validation import RepaymentType

router = APIRouter(prefix="/api/v1/loans", tags=["loans"])


@router.get("/policy", response_model=schemas.LoanPolicyResponse)
async def get_policy():
    """Lending terms: bounds, grace window, rates and repayment priority"""
    return LoanService.get_policy()


@router.post("/quote", response_model=schemas.OwedBreakdownResponse)
async def quote(quote_data: schemas.LoanQuoteRequest):
    """What a principal would cost after a given number of days"""
    return asdict(accrual.accrue(quote_data.amount, quote_data.days))


@router.post("/apply", response_model=schemas.LoanResponse, status_code=status.HTTP_201_CREATED)
async def apply_for_loan(
    loan_data: schemas.LoanApplicationRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Apply for a loan.

    - Amount between 5,000 and 100,000 USDT
    - Requires approved KYC and an unfrozen account
    - At most 3 pending, approved or overdue loans at a time
    - Optional guarantor: another registered user
    - Funds are credited once an administrator approves
    """
    return await LoanService.apply_for_loan(db, current_user, loan_data.amount, loan_data.guarantor_id)


@router.get("", response_model=schemas.LoanListResponse)
async def list_loans(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """All loans of the current user with live amounts owed"""
    loans = await LoanService.get_user_loans(db, current_user.id)
    return {
        "loans": [LoanService.describe(loan) for loan in loans],
        "total": len(loans)
    }


@router.get("/{loan_id}", response_model=schemas.LoanDetailResponse)
async def get_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """One loan with interest, penalty and remaining balance as of now"""
    loan = await LoanService.get_user_loan(db, loan_id, current_user.id)
    return LoanService.describe(loan)


@router.post(
    "/{loan_id}/repayments",
    response_model=schemas.RepaymentResponse,
    status_code=status.HTTP_201_CREATED
)
async def submit_repayment(
    loan_id: int,
    repayment_type: RepaymentType = Form(RepaymentType.PARTIAL),
    amount: Optional[Decimal] = Form(None),
    receipt: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Submit a repayment for review.

    - partial: any positive amount up to the remaining total plus 1%
    - full / early_full: the amount is fixed to the remaining total
    - Payment is applied to penalty first, then interest, then principal
    - Receipt image up to 5 MB
    """
    return await LoanService.submit_repayment(
        db, current_user, loan_id, amount, repayment_type, receipt=receipt
    )


@router.get("/{loan_id}/repayments", response_model=List[schemas.RepaymentResponse])
async def list_repayments(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Repayment submissions for a loan, oldest first"""
    loan = await LoanService.get_user_loan(db, loan_id, current_user.id)
    return await LoanService.list_repayments(db, loan.id)
