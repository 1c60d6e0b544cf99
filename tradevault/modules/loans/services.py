from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from fastapi import UploadFile
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Dict, Any
from dataclasses import asdict
import logging

from tradevault.core.config import settings
from tradevault.core.database import utcnow
from tradevault.core.exceptions import (
    AccountFrozen, InvalidGuarantor, InvalidTransition, NotFound, NotVerified, TooManyActiveLoans
)
from tradevault.core.storage import save_upload
from tradevault.modules.users.models import User
from tradevault.modules.credit.services import CreditService
from tradevault.modules.kyc.services import KYCService
from tradevault.modules.notifications.models import NotificationType
from tradevault.modules.notifications.services import NotificationService
from tradevault.modules.wallet.models import TransactionType
from tradevault.modules.wallet.services import AssetService, WalletService
from tradevault.modules.loans import accrual
from tradevault.modules.loans.models import (
    Loan, LoanRepayment, LoanStatus, RepaymentStatus, ACTIVE_STATUSES
)
from tradevault.modules.loans.validation import (
    RepaymentType, FULL_TYPES, MIN_LOAN_AMOUNT, MAX_LOAN_AMOUNT, REPAYMENT_TOLERANCE,
    full_repayment_type, validate_loan_amount, validate_repayment
)

logger = logging.getLogger(__name__)

MAX_ACTIVE_LOANS = 3
STORED_TERM_DAYS = 30
NOMINAL_DAILY_RATE = Decimal("1.0")  # percent, informational


class LoanService:
    """
    Loan origination, repayment review and settlement.

    Every status change is a compare-and-set UPDATE. The caller whose UPDATE
    matched the row performs the side effects; everyone else gets
    InvalidTransition.
    """

    @staticmethod
    def get_policy() -> Dict[str, Any]:
        return {
            "min_amount": MIN_LOAN_AMOUNT,
            "max_amount": MAX_LOAN_AMOUNT,
            "max_active_loans": MAX_ACTIVE_LOANS,
            "grace_days": accrual.GRACE_DAYS,
            "interest_cap_day": accrual.INTEREST_CAP_DAY,
            "daily_interest_rate": accrual.DAILY_INTEREST_RATE,
            "daily_penalty_rate": accrual.DAILY_PENALTY_RATE,
            "repayment_tolerance": REPAYMENT_TOLERANCE,
            "term_days": STORED_TERM_DAYS,
        }

    @staticmethod
    def effective_status(loan: Loan, now: Optional[datetime] = None) -> LoanStatus:
        """Approved loans past day 15 read as overdue before the sweep stores it"""
        if loan.status == LoanStatus.APPROVED:
            if accrual.is_overdue(accrual.days_elapsed(loan.borrow_date, now)):
                return LoanStatus.OVERDUE
        return loan.status

    @staticmethod
    def describe(loan: Loan, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Loan plus owed breakdown, recomputed for ``now``"""
        now = now or utcnow()
        view = {
            "loan": loan,
            "effective_status": LoanService.effective_status(loan, now),
            "owed": None,
            "remaining": None,
            "full_repayment_type": None,
        }
        if loan.status in ACTIVE_STATUSES or loan.status == LoanStatus.REPAID:
            # Accrual stops at settlement
            at = loan.repaid_date if loan.status == LoanStatus.REPAID and loan.repaid_date else now
            owed = accrual.calculate_owed(loan.amount, loan.borrow_date, at)
            remaining = accrual.remaining_owed(
                owed, loan.penalty_paid, loan.interest_paid, loan.principal_paid
            )
            view["owed"] = asdict(owed)
            view["remaining"] = {**asdict(remaining), "total": remaining.total}
            if loan.status in ACTIVE_STATUSES:
                view["full_repayment_type"] = full_repayment_type(owed.days_elapsed)
        return view

    # ============ Queries ============

    @staticmethod
    async def get_loan(db: AsyncSession, loan_id: int) -> Loan:
        result = await db.execute(
            select(Loan).where(Loan.id == loan_id).execution_options(populate_existing=True)
        )
        loan = result.scalar_one_or_none()
        if not loan:
            raise NotFound("Loan not found")
        return loan

    @staticmethod
    async def get_user_loan(db: AsyncSession, loan_id: int, user_id: int) -> Loan:
        loan = await LoanService.get_loan(db, loan_id)
        if loan.user_id != user_id:
            raise NotFound("Loan not found")
        return loan

    @staticmethod
    async def get_user_loans(db: AsyncSession, user_id: int) -> List[Loan]:
        result = await db.execute(
            select(Loan)
            .where(Loan.user_id == user_id)
            .order_by(Loan.created_at.desc(), Loan.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def count_active_loans(db: AsyncSession, user_id: int, include_pending: bool = False) -> int:
        statuses = list(ACTIVE_STATUSES)
        if include_pending:
            statuses.append(LoanStatus.PENDING)
        count = await db.scalar(
            select(func.count(Loan.id)).where(
                Loan.user_id == user_id,
                Loan.status.in_(statuses)
            )
        )
        return count or 0

    @staticmethod
    async def get_repayment(db: AsyncSession, repayment_id: int) -> LoanRepayment:
        result = await db.execute(
            select(LoanRepayment)
            .where(LoanRepayment.id == repayment_id)
            .execution_options(populate_existing=True)
        )
        repayment = result.scalar_one_or_none()
        if not repayment:
            raise NotFound("Repayment not found")
        return repayment

    @staticmethod
    async def list_repayments(db: AsyncSession, loan_id: int) -> List[LoanRepayment]:
        result = await db.execute(
            select(LoanRepayment)
            .where(LoanRepayment.loan_id == loan_id)
            .order_by(LoanRepayment.created_at, LoanRepayment.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # ============ Borrower actions ============

    @staticmethod
    async def apply_for_loan(
        db: AsyncSession,
        user: User,
        amount: Decimal,
        guarantor_id: Optional[int] = None
    ) -> Loan:
        """
        Create a pending loan.

        Gates, in order: account not frozen, amount within bounds, KYC
        verified, fewer than three open loans. Pending applications count
        toward the cap so a borrower cannot queue past it.
        An optional guarantor must be an existing user other than the
        borrower.
        """
        if user.is_frozen:
            raise AccountFrozen()

        amount = validate_loan_amount(amount)

        if not await KYCService.is_verified(db, user.id):
            raise NotVerified("Complete identity verification before applying for a loan")

        if await LoanService.count_active_loans(db, user.id, include_pending=True) >= MAX_ACTIVE_LOANS:
            raise TooManyActiveLoans(f"At most {MAX_ACTIVE_LOANS} active loans are allowed")

        if guarantor_id is not None:
            if guarantor_id == user.id:
                raise InvalidGuarantor("A borrower cannot guarantee their own loan")
            if await db.scalar(select(User.id).where(User.id == guarantor_id)) is None:
                raise InvalidGuarantor("Guarantor not found")

        loan = Loan(
            user_id=user.id,
            amount=amount,
            guarantor_id=guarantor_id,
            currency=settings.DEFAULT_CURRENCY,
            status=LoanStatus.PENDING,
            interest_rate=NOMINAL_DAILY_RATE,
            term_days=STORED_TERM_DAYS,
            borrow_date=utcnow()
        )
        db.add(loan)
        await db.flush()
        await db.refresh(loan)

        logger.info(f"Loan {loan.id} of {amount} requested by user {user.id}")
        return loan

    @staticmethod
    async def submit_repayment(
        db: AsyncSession,
        user: User,
        loan_id: int,
        amount: Optional[Decimal],
        repayment_type: RepaymentType,
        receipt: Optional[UploadFile] = None,
        now: Optional[datetime] = None
    ) -> LoanRepayment:
        """
        Queue a repayment for admin review.

        Neither the loan nor any balance changes here. Full settlements are
        recorded at the current remaining total, tagged early_full inside
        the grace window and full afterwards.
        """
        loan = await LoanService.get_user_loan(db, loan_id, user.id)
        if loan.status not in ACTIVE_STATUSES:
            raise InvalidTransition(f"Loan is {loan.status.value}; repayments are not accepted")

        owed = accrual.calculate_owed(loan.amount, loan.borrow_date, now)
        remaining = accrual.remaining_owed(
            owed, loan.penalty_paid, loan.interest_paid, loan.principal_paid
        )

        if repayment_type in FULL_TYPES:
            repayment_type = full_repayment_type(owed.days_elapsed)
        accepted = validate_repayment(amount, remaining.total, repayment_type)

        receipt_url = await save_upload(receipt, user.id, "receipts", f"loan{loan.id}")

        repayment = LoanRepayment(
            loan_id=loan.id,
            user_id=user.id,
            amount=accepted,
            repayment_type=repayment_type,
            status=RepaymentStatus.PENDING,
            receipt_image_url=receipt_url
        )
        db.add(repayment)
        await db.flush()
        await db.refresh(repayment)

        logger.info(
            f"Repayment {repayment.id} ({repayment_type.value}, {accepted}) submitted for loan {loan.id}"
        )
        return repayment

    # ============ Admin decisions ============

    @staticmethod
    async def approve_loan(db: AsyncSession, loan_id: int, admin_id: int, now: Optional[datetime] = None) -> Loan:
        """
        pending -> approved, then disburse.

        The borrow date moves to the approval instant so that the interest
        free window starts when the borrower receives the funds.
        """
        now = now or utcnow()
        pending = await LoanService.get_loan(db, loan_id)
        if pending.status == LoanStatus.PENDING:
            if await LoanService.count_active_loans(db, pending.user_id) >= MAX_ACTIVE_LOANS:
                logger.warning(f"Loan {loan_id} approval refused: user {pending.user_id} at the active loan cap")
                raise TooManyActiveLoans(f"Borrower already has {MAX_ACTIVE_LOANS} active loans")

        result = await db.execute(
            update(Loan)
            .where(Loan.id == loan_id, Loan.status == LoanStatus.PENDING)
            .values(
                status=LoanStatus.APPROVED,
                approved_at=now,
                borrow_date=now,
                due_date=now + timedelta(days=STORED_TERM_DAYS),
                reviewed_by=admin_id,
                updated_at=now
            )
            .execution_options(synchronize_session=False)
        )
        loan = await LoanService.get_loan(db, loan_id)
        if result.rowcount == 0:
            logger.warning(f"Loan {loan_id} approval lost: status is {loan.status.value}")
            raise InvalidTransition(f"Loan is already {loan.status.value}")

        await AssetService.credit(db, loan.user_id, loan.amount, loan.currency)
        await WalletService.record_entry(
            db, loan.user_id, TransactionType.LOAN_DISBURSEMENT, loan.amount,
            note=f"Loan {loan.id} disbursement",
            related_entity_type="loan", related_entity_id=loan.id,
            currency=loan.currency
        )
        await NotificationService.notify(
            db, loan.user_id, NotificationType.LOAN,
            "Loan approved",
            f"Your loan of {loan.amount} {loan.currency} was approved and credited to your balance. "
            f"The first {accrual.GRACE_DAYS} days are interest free.",
            related_entity_type="loan", related_entity_id=loan.id
        )
        logger.info(f"Loan {loan.id} approved by admin {admin_id}, {loan.amount} {loan.currency} disbursed")
        return loan

    @staticmethod
    async def reject_loan(db: AsyncSession, loan_id: int, admin_id: int, reason: Optional[str] = None) -> Loan:
        result = await db.execute(
            update(Loan)
            .where(Loan.id == loan_id, Loan.status == LoanStatus.PENDING)
            .values(
                status=LoanStatus.REJECTED,
                reject_reason=reason,
                reviewed_by=admin_id,
                updated_at=utcnow()
            )
            .execution_options(synchronize_session=False)
        )
        loan = await LoanService.get_loan(db, loan_id)
        if result.rowcount == 0:
            raise InvalidTransition(f"Loan is already {loan.status.value}")

        await NotificationService.notify(
            db, loan.user_id, NotificationType.LOAN,
            "Loan rejected",
            f"Your loan application for {loan.amount} {loan.currency} was rejected."
            + (f" Reason: {reason}" if reason else ""),
            related_entity_type="loan", related_entity_id=loan.id
        )
        logger.info(f"Loan {loan.id} rejected by admin {admin_id}")
        return loan

    @staticmethod
    async def approve_repayment(
        db: AsyncSession,
        repayment_id: int,
        admin_id: int,
        now: Optional[datetime] = None
    ) -> LoanRepayment:
        """
        Accept a repayment and settle the loan when it is covered.

        The amount is applied to penalty, then interest, then principal. The
        loan closes once nothing is left owed as of ``now``; only one approval
        can win that transition.
        """
        now = now or utcnow()
        repayment = await LoanService.get_repayment(db, repayment_id)
        loan = await LoanService.get_loan(db, repayment.loan_id)
        if loan.status not in ACTIVE_STATUSES:
            raise InvalidTransition(f"Loan is already {loan.status.value}")

        owed = accrual.calculate_owed(loan.amount, loan.borrow_date, now)
        remaining = accrual.remaining_owed(
            owed, loan.penalty_paid, loan.interest_paid, loan.principal_paid
        )
        allocation = accrual.allocate_repayment(repayment.amount, remaining)

        result = await db.execute(
            update(LoanRepayment)
            .where(
                LoanRepayment.id == repayment_id,
                LoanRepayment.status == RepaymentStatus.PENDING
            )
            .values(
                status=RepaymentStatus.APPROVED,
                reviewed_by=admin_id,
                reviewed_at=now,
                applied_to_penalty=allocation.penalty,
                applied_to_interest=allocation.interest,
                applied_to_principal=allocation.principal
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(f"Repayment {repayment_id} is no longer pending ({repayment.status.value})")
            raise InvalidTransition(f"Repayment is already {repayment.status.value}")

        await db.execute(
            update(Loan)
            .where(Loan.id == loan.id)
            .values(
                penalty_paid=Loan.penalty_paid + allocation.penalty,
                interest_paid=Loan.interest_paid + allocation.interest,
                principal_paid=Loan.principal_paid + allocation.principal,
                updated_at=now
            )
            .execution_options(synchronize_session=False)
        )
        await WalletService.record_entry(
            db, loan.user_id, TransactionType.LOAN_REPAYMENT, repayment.amount,
            note=(
                f"Loan {loan.id} repayment: penalty {allocation.penalty}, "
                f"interest {allocation.interest}, principal {allocation.principal}"
            ),
            related_entity_type="loan", related_entity_id=loan.id,
            currency=loan.currency
        )

        # A full repayment recorded before more interest accrued may fall short
        if remaining.total - allocation.applied <= 0:
            await LoanService._settle(db, loan.id, now)

        await NotificationService.notify(
            db, loan.user_id, NotificationType.REPAYMENT,
            "Repayment approved",
            f"Your repayment of {repayment.amount} {loan.currency} for loan {loan.id} was approved.",
            related_entity_type="loan", related_entity_id=loan.id
        )
        logger.info(f"Repayment {repayment_id} approved by admin {admin_id}")
        return await LoanService.get_repayment(db, repayment_id)

    @staticmethod
    async def _settle(db: AsyncSession, loan_id: int, now: datetime) -> bool:
        """{approved, overdue} -> repaid. Returns False if someone else settled first."""
        result = await db.execute(
            update(Loan)
            .where(Loan.id == loan_id, Loan.status.in_(ACTIVE_STATUSES))
            .values(status=LoanStatus.REPAID, repaid_date=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        loan = await LoanService.get_loan(db, loan_id)
        if result.rowcount == 0:
            logger.warning(f"Loan {loan_id} already settled ({loan.status.value})")
            return False

        await NotificationService.notify(
            db, loan.user_id, NotificationType.LOAN,
            "Loan repaid",
            f"Your loan of {loan.amount} {loan.currency} is fully repaid.",
            related_entity_type="loan", related_entity_id=loan.id
        )
        logger.info(f"Loan {loan_id} repaid")
        return True

    @staticmethod
    async def reject_repayment(
        db: AsyncSession,
        repayment_id: int,
        admin_id: int,
        reason: Optional[str] = None
    ) -> LoanRepayment:
        result = await db.execute(
            update(LoanRepayment)
            .where(
                LoanRepayment.id == repayment_id,
                LoanRepayment.status == RepaymentStatus.PENDING
            )
            .values(
                status=RepaymentStatus.REJECTED,
                reject_reason=reason,
                reviewed_by=admin_id,
                reviewed_at=utcnow()
            )
            .execution_options(synchronize_session=False)
        )
        repayment = await LoanService.get_repayment(db, repayment_id)
        if result.rowcount == 0:
            raise InvalidTransition(f"Repayment is already {repayment.status.value}")

        await NotificationService.notify(
            db, repayment.user_id, NotificationType.REPAYMENT,
            "Repayment rejected",
            f"Your repayment of {repayment.amount} for loan {repayment.loan_id} was rejected."
            + (f" Reason: {reason}" if reason else ""),
            related_entity_type="loan", related_entity_id=repayment.loan_id
        )
        logger.info(f"Repayment {repayment_id} rejected by admin {admin_id}")
        return repayment

    @staticmethod
    async def mark_overdue_loans(db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Store the overdue status for approved loans past day 15 and apply the
        daily credit deduction to every overdue loan.
        """
        now = now or utcnow()
        result = await db.execute(
            select(Loan)
            .where(Loan.status.in_(ACTIVE_STATUSES))
            .execution_options(populate_existing=True)
        )
        loans = list(result.scalars().all())

        marked = 0
        deductions = 0
        for loan in loans:
            days = accrual.days_elapsed(loan.borrow_date, now)
            if not accrual.is_overdue(days):
                continue

            if loan.status == LoanStatus.APPROVED:
                cas = await db.execute(
                    update(Loan)
                    .where(Loan.id == loan.id, Loan.status == LoanStatus.APPROVED)
                    .values(status=LoanStatus.OVERDUE, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if cas.rowcount:
                    marked += 1
                    await NotificationService.notify(
                        db, loan.user_id, NotificationType.LOAN,
                        "Loan overdue",
                        f"Loan {loan.id} is past day {accrual.INTEREST_CAP_DAY}. A "
                        f"{accrual.DAILY_PENALTY_RATE * 100:.0f}% daily penalty now applies.",
                        related_entity_type="loan", related_entity_id=loan.id
                    )

            log = await CreditService.deduct_for_overdue_loan(
                db, loan.user_id, loan.id, accrual.days_overdue(days), now
            )
            if log is not None:
                deductions += 1

        logger.info(f"Overdue sweep: {len(loans)} active, {marked} newly overdue, {deductions} deductions")
        return {"checked": len(loans), "marked_overdue": marked, "credit_deductions": deductions}
