from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from redis import asyncio as aioredis

from tradevault.core.database import get_db, get_redis
from tradevault.core.dependencies import get_current_user, oauth2_scheme
from tradevault.modules.users.models import User
from tradevault.modules.users import schemas, services
from tradevault.modules.credit.services import CreditService
from tradevault.modules.kyc.services import KYCService
from tradevault.modules.wallet.services import AssetService

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.post("/register", response_model=schemas.UserProfileResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    user_data: schemas.UserRegistrationRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new user.

    - Checks email and username uniqueness
    - Starts with a credit score of 100
    """
    user = await services.UserService.register_user(db, user_data)
    return user


@router.post("/login", response_model=schemas.TokenResponse)
async def login(
    login_data: schemas.UserLoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """Login with email and password, returns JWT access and refresh tokens"""
    user = await services.UserService.authenticate_user(db, login_data.email, login_data.password)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password"
        )

    tokens = await services.UserService.create_tokens(user.id)
    return tokens


@router.post("/logout", status_code=status.HTTP_200_OK)
async def logout(
    token: str = Depends(oauth2_scheme),
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(get_current_user)
):
    """Logout current user by revoking the access token"""
    await services.UserService.logout_user(redis, token)
    return {"message": "Successfully logged out"}


@router.get("/me", response_model=schemas.UserOverviewResponse)
async def get_current_user_profile(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Profile with credit score, frozen flag, KYC status and balances"""
    profile = schemas.UserProfileResponse.model_validate(current_user).model_dump()
    return {
        **profile,
        "kyc_status": await KYCService.get_kyc_status(db, current_user.id),
        "can_withdraw": CreditService.can_withdraw(current_user),
        "balances": await AssetService.get_balances(db, current_user.id)
    }


@router.put("/me/wallet-address", response_model=schemas.UserProfileResponse)
async def update_wallet_address(
    address_data: schemas.WalletAddressUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Set the default withdrawal address"""
    return await services.UserService.update_wallet_address(db, current_user, address_data.wallet_address)
