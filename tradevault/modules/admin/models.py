from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from tradevault.core.database import Base, utcnow

# system_config keys holding the deposit address for each network
RECHARGE_ADDRESS_PREFIX = "recharge_address_"
# Per-user smart trade outcome policy
TRADE_MODE_PREFIX = "user_trade_mode_"


class AuditLog(Base):
    """Audit log for all admin actions"""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Who
    admin_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)

    # What
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(50), nullable=False, index=True)  # loan, repayment, kyc, transaction, user, mining
    resource_id = Column(Integer, nullable=True)

    # Details
    description = Column(Text, nullable=True)

    # When
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action={self.action}, resource={self.resource_type})>"


class SystemConfig(Base):
    """Runtime-editable key/value configuration"""
    __tablename__ = "system_config"

    id = Column(Integer, primary_key=True, index=True)

    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=True)
    description = Column(Text, nullable=True)

    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    updated_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)

    def __repr__(self):
        return f"<SystemConfig(key={self.key})>"
