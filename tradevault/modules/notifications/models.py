from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Enum as SQLEnum
from tradevault.core.database import Base, utcnow
import enum


class NotificationType(str, enum.Enum):
    """Type of notification"""
    LOAN = "loan"              # Loan approval, rejection, settlement
    REPAYMENT = "repayment"    # Repayment approved / rejected
    KYC = "kyc"                # Verification outcome
    WALLET = "wallet"          # Deposit and withdrawal decisions
    MINING = "mining"          # Staking approval and settlement
    CREDIT = "credit"          # Credit score changes
    TRADE = "trade"            # Smart trade results
    SYSTEM = "system"


class Notification(Base):
    """In-app notification shown to a single user"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)

    type = Column(SQLEnum(NotificationType), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    # Related entity (optional) - for linking to loans, transactions, etc.
    related_entity_type = Column(String(50), nullable=True)
    related_entity_id = Column(Integer, nullable=True)

    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def __repr__(self):
        return f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type})>"
