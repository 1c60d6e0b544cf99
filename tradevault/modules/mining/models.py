from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, Text, Enum as SQLEnum
from tradevault.core.database import Base, utcnow
import enum


class MiningStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"
    SETTLED = "settled"


class MiningInvestment(Base):
    """Funds locked for a fixed term at a daily rate"""
    __tablename__ = "mining_investments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)

    amount = Column(Numeric(18, 2), nullable=False)
    tier = Column(Integer, nullable=False)
    daily_rate = Column(Numeric(6, 3), nullable=False)  # percent per day
    lock_days = Column(Integer, nullable=False)

    status = Column(SQLEnum(MiningStatus), default=MiningStatus.PENDING, nullable=False, index=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    total_earnings = Column(Numeric(18, 2), nullable=False, default=0)
    admin_note = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<MiningInvestment(id={self.id}, tier={self.tier}, amount={self.amount}, status={self.status})>"
