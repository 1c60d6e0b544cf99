from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SQLEnum
from tradevault.core.database import Base, utcnow
import enum

INITIAL_CREDIT_SCORE = 100


class UserRole(str, enum.Enum):
    """Role supplied to every request by the identity layer"""
    USER = "user"
    ADMIN = "admin"


class User(Base):
    """User profile: identity, role, freeze flag and credit score"""
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    
    # Authentication
    username = Column(String(50), unique=True, index=True, nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    
    role = Column(SQLEnum(UserRole), default=UserRole.USER, nullable=False)
    
    # Admin-imposed block on money movements
    is_frozen = Column(Boolean, default=False, nullable=False)
    
    # Non-increasing except for explicit admin restores
    credit_score = Column(Integer, default=INITIAL_CREDIT_SCORE, nullable=False)
    
    wallet_address = Column(String(100), nullable=True)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
