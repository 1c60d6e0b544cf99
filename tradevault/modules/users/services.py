from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from fastapi import HTTPException, status
from typing import Optional
import logging
from redis import asyncio as aioredis

from tradevault.core.security import (
    get_password_hash,
    verify_password,
    create_access_token,
    create_refresh_token,
    validate_password_strength
)
from tradevault.core.config import settings
from tradevault.core.exceptions import NotFound
from tradevault.modules.users.models import User, UserRole
from tradevault.modules.users import schemas

logger = logging.getLogger(__name__)


class UserService:
    """Service layer for user management operations"""
    
    @staticmethod
    async def register_user(db: AsyncSession, user_data: schemas.UserRegistrationRequest) -> User:
        """Register a new user"""
        is_valid, error_msg = validate_password_strength(user_data.password)
        if not is_valid:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=error_msg
            )
        
        result = await db.execute(
            select(User).where(
                or_(User.email == user_data.email, User.username == user_data.username)
            )
        )
        if result.scalars().first():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email or username already registered"
            )
        
        user = User(
            username=user_data.username,
            email=user_data.email,
            hashed_password=get_password_hash(user_data.password),
            role=UserRole.USER
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        
        logger.info(f"Registered user {user.id}")
        return user
    
    @staticmethod
    async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
        """Authenticate user with email and password"""
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        
        if not user or not verify_password(password, user.hashed_password):
            return None
        
        return user
    
    @staticmethod
    async def get_user(db: AsyncSession, user_id: int) -> User:
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise NotFound("User not found")
        return user
    
    @staticmethod
    async def create_tokens(user_id: int) -> dict:
        """Create access and refresh tokens"""
        access_token = create_access_token(data={"sub": str(user_id)})
        refresh_token = create_refresh_token(data={"sub": str(user_id)})
        
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        }
    
    @staticmethod
    async def logout_user(redis: aioredis.Redis, token: str):
        """Logout user by blacklisting token"""
        await redis.setex(
            f"blacklist:{token}",
            settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            "1"
        )
    
    @staticmethod
    async def update_wallet_address(db: AsyncSession, user: User, wallet_address: str) -> User:
        user.wallet_address = wallet_address
        await db.flush()
        await db.refresh(user)
        return user
