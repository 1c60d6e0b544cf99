from sqlalchemy import Column, Integer, String, DateTime, Numeric, Text, ForeignKey, UniqueConstraint, Enum as SQLEnum
from tradevault.core.database import Base, utcnow
import enum


class TransactionType(str, enum.Enum):
    """Ledger entry kinds"""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    LOAN_DISBURSEMENT = "loan_disbursement"
    LOAN_REPAYMENT = "loan_repayment"
    MINING_LOCK = "mining_lock"
    MINING_SETTLEMENT = "mining_settlement"
    ADJUSTMENT = "adjustment"
    TRADE = "trade"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Asset(Base):
    """Per-user, per-currency balance"""
    __tablename__ = "assets"
    __table_args__ = (
        UniqueConstraint("user_id", "currency", name="uq_assets_user_currency"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    currency = Column(String(10), nullable=False, default="USDT")
    balance = Column(Numeric(18, 2), nullable=False, default=0)
    # Held for pending withdrawals
    frozen_balance = Column(Numeric(18, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Asset(user_id={self.user_id}, currency={self.currency}, balance={self.balance})>"


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    reference_code = Column(String(30), unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    type = Column(SQLEnum(TransactionType), nullable=False, index=True)
    status = Column(SQLEnum(TransactionStatus), default=TransactionStatus.PENDING, nullable=False, index=True)
    amount = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(10), nullable=False, default="USDT")
    fee = Column(Numeric(18, 2), nullable=False, default=0)

    # Deposit / withdrawal details
    network = Column(String(30), nullable=True)
    address = Column(String(120), nullable=True)
    tx_hash = Column(String(120), nullable=True)
    receipt_url = Column(String(500), nullable=True)
    note = Column(Text, nullable=True)

    # Link to the loan / mining record that produced this entry
    related_entity_type = Column(String(30), nullable=True)
    related_entity_id = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Transaction(id={self.id}, type={self.type}, status={self.status}, amount={self.amount})>"
