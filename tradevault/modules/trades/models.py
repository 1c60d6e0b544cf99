from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Enum as SQLEnum
from tradevault.core.database import Base, utcnow
import enum


class TradeDirection(str, enum.Enum):
    LONG = "long"
    SHORT = "short"


class TradeStatus(str, enum.Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"


class TradeMode(str, enum.Enum):
    """Per-user outcome policy, stored in system_config"""
    MANUAL = "manual"
    ALWAYS_WIN = "always_win"
    ALWAYS_LOSE = "always_lose"


class OutcomeSource(str, enum.Enum):
    TIMER = "timer"    # random draw when the countdown ends
    MODE = "mode"      # forced by the user's trade mode
    ADMIN = "admin"    # set by an administrator


class Trade(Base):
    """Fixed-duration directional bet; the stake leaves the balance when placed"""
    __tablename__ = "trades"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)

    symbol = Column(String(20), nullable=False)
    direction = Column(SQLEnum(TradeDirection), nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)  # stake
    currency = Column(String(10), nullable=False, default="USDT")
    entry_price = Column(Numeric(24, 8), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    profit_rate = Column(Numeric(5, 2), nullable=False)

    status = Column(SQLEnum(TradeStatus), default=TradeStatus.PENDING, nullable=False, index=True)
    outcome_source = Column(SQLEnum(OutcomeSource), nullable=True)
    profit = Column(Numeric(18, 2), nullable=False, default=0)  # negative on a loss
    payout = Column(Numeric(18, 2), nullable=False, default=0)

    settle_at = Column(DateTime(timezone=True), nullable=False, index=True)
    settled_at = Column(DateTime(timezone=True), nullable=True)
    settled_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Trade(id={self.id}, {self.direction} {self.symbol}, amount={self.amount}, status={self.status})>"
