from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from decimal import Decimal
from dataclasses import asdict

from tradevault.core.database import get_db
from tradevault.core.dependencies import get_current_user
from tradevault.modules.users.models import User
from tradevault.modules.wallet.services import WalletService
from tradevault.modules.mining import schemas
from tradevault.modules.mining.models import MiningStatus
from tradevault.modules.mining.services import MiningService
from tradevault.modules.mining.tiers import MINING_TIERS, MIN_TOTAL_DEPOSITS

router = APIRouter(prefix="/api/v1/mining", tags=["mining"])


@router.get("/tiers", response_model=schemas.MiningTiersResponse)
async def get_tiers(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Available lock periods and whether the current user may join"""
    total_deposits = await WalletService.completed_deposit_total(db, current_user.id)
    return {
        "tiers": [{**asdict(tier), "label": tier.label} for tier in MINING_TIERS],
        "min_total_deposits": MIN_TOTAL_DEPOSITS,
        "total_deposits": total_deposits,
        "is_eligible": total_deposits >= MIN_TOTAL_DEPOSITS
    }


@router.get("", response_model=schemas.MiningOverviewResponse)
async def list_investments(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """The current user's investments with earnings accrued so far"""
    investments = await MiningService.get_user_investments(db, current_user.id)
    details = [MiningService.describe(inv) for inv in investments]
    active = [d for d in details if d["investment"].status == MiningStatus.ACTIVE]
    return {
        "investments": details,
        "total_locked": sum((d["investment"].amount for d in active), Decimal("0")),
        "pending_earnings": sum((d["accrued_earnings"] for d in active), Decimal("0"))
    }


@router.post("/apply", response_model=schemas.MiningInvestmentResponse, status_code=status.HTTP_201_CREATED)
async def apply(
    application: schemas.MiningApplicationRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Apply for a mining tier.

    - Requires 5,000 USDT of completed deposits
    - The amount is deducted from the balance when an administrator approves
    """
    return await MiningService.submit_application(db, current_user, application.amount, application.tier)
