from sqlalchemy import Column, Integer, DateTime, Text, ForeignKey, Enum as SQLEnum
from tradevault.core.database import Base, utcnow
import enum


class AttemptKind(str, enum.Enum):
    """Actions whose frequency is limited per trailing hour"""
    WITHDRAW = "withdraw"
    TRADE = "trade"


class CreditRule(str, enum.Enum):
    """Why a score changed"""
    WITHDRAW_LIMIT = "withdraw_limit"   # 3+ withdrawal attempts in an hour
    TRADE_LIMIT = "trade_limit"         # 3+ trade attempts in an hour
    OVERDUE_LOAN = "overdue_loan"       # loan past day 15
    RESTORE = "restore"                 # admin adjustment


class CreditAttempt(Base):
    """One withdrawal or trade attempt, counted by the hourly rules"""
    __tablename__ = "credit_attempts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    kind = Column(SQLEnum(AttemptKind), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<CreditAttempt(user_id={self.user_id}, kind={self.kind})>"


class CreditScoreLog(Base):
    """
    Immutable record of a credit score change.
    Rows are only ever inserted.
    """
    __tablename__ = "credit_score_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)

    previous_score = Column(Integer, nullable=False)
    new_score = Column(Integer, nullable=False)
    change_amount = Column(Integer, nullable=False)  # negative for deductions
    rule = Column(SQLEnum(CreditRule), nullable=False, index=True)
    reason = Column(Text, nullable=False)

    loan_id = Column(Integer, ForeignKey("loans.id"), nullable=True, index=True)
    admin_id = Column(Integer, ForeignKey("profiles.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<CreditScoreLog(user_id={self.user_id}, change={self.change_amount}, rule={self.rule})>"
