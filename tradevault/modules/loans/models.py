from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Text, Enum as SQLEnum
from tradevault.core.database import Base, utcnow
from tradevault.modules.loans.validation import RepaymentType
import enum


class LoanStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    OVERDUE = "overdue"
    REPAID = "repaid"


class RepaymentStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Statuses that count toward the concurrent loan limit and accept repayments
ACTIVE_STATUSES = (LoanStatus.APPROVED, LoanStatus.OVERDUE)


class Loan(Base):
    __tablename__ = "loans"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    amount = Column(Numeric(18, 2), nullable=False)  # principal, never changes
    guarantor_id = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    currency = Column(String(10), nullable=False, default="USDT")
    status = Column(SQLEnum(LoanStatus), default=LoanStatus.PENDING, nullable=False, index=True)

    # Nominal terms shown to admins; what is owed comes from the accrual schedule
    interest_rate = Column(Numeric(6, 3), nullable=False, default=1.0)  # % per day
    term_days = Column(Integer, nullable=False, default=30)

    # Accrual clock
    borrow_date = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    repaid_date = Column(DateTime(timezone=True), nullable=True)

    # Totals of approved repayments, per category
    penalty_paid = Column(Numeric(18, 2), nullable=False, default=0)
    interest_paid = Column(Numeric(18, 2), nullable=False, default=0)
    principal_paid = Column(Numeric(18, 2), nullable=False, default=0)

    reject_reason = Column(Text, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Loan(id={self.id}, user_id={self.user_id}, amount={self.amount}, status={self.status})>"


class LoanRepayment(Base):
    """A borrower's repayment submission, settled or refused by an admin"""
    __tablename__ = "loan_repayments"

    id = Column(Integer, primary_key=True, index=True)
    loan_id = Column(Integer, ForeignKey("loans.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)

    amount = Column(Numeric(18, 2), nullable=False)
    repayment_type = Column(SQLEnum(RepaymentType), nullable=False)
    status = Column(SQLEnum(RepaymentStatus), default=RepaymentStatus.PENDING, nullable=False, index=True)
    receipt_image_url = Column(String(500), nullable=True)
    reject_reason = Column(Text, nullable=True)

    # How the amount was split when approved
    applied_to_penalty = Column(Numeric(18, 2), nullable=False, default=0)
    applied_to_interest = Column(Numeric(18, 2), nullable=False, default=0)
    applied_to_principal = Column(Numeric(18, 2), nullable=False, default=0)

    reviewed_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<LoanRepayment(id={self.id}, loan_id={self.loan_id}, amount={self.amount}, status={self.status})>"
