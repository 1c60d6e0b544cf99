from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Enum as SQLEnum
from tradevault.core.database import Base, utcnow
import enum


class IDType(str, enum.Enum):
    """Government ID type enumeration"""
    PASSPORT = "passport"
    DRIVER_LICENSE = "driver_license"
    NATIONAL_ID = "national_id"
    OTHER = "other"


class KYCStatus(str, enum.Enum):
    """Review status of one submission"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class KYCRecord(Base):
    """Identity verification submission, reviewed by an admin"""
    __tablename__ = "kyc_records"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)

    # Identity
    real_name = Column(String(200), nullable=False)
    id_type = Column(SQLEnum(IDType), nullable=False)
    id_number = Column(String(100), nullable=False)

    # Documents
    front_image_url = Column(String(500), nullable=True)
    back_image_url = Column(String(500), nullable=True)
    selfie_url = Column(String(500), nullable=True)

    # Verification Status
    status = Column(SQLEnum(KYCStatus), default=KYCStatus.PENDING, nullable=False, index=True)
    reject_reason = Column(Text, nullable=True)

    # Review Information
    reviewed_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<KYCRecord(id={self.id}, user_id={self.user_id}, status={self.status})>"
