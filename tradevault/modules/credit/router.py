from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tradevault.core.database import get_db
from tradevault.core.dependencies import get_current_user, require_not_frozen
from tradevault.modules.users.models import User
from tradevault.modules.credit import schemas
from tradevault.modules.credit.services import CreditService, WITHDRAW_MIN_SCORE

router = APIRouter(prefix="/api/v1/credit", tags=["credit"])


@router.get("", response_model=schemas.CreditScoreResponse)
async def get_credit_score(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Current credit score, withdrawal eligibility and the last 50 changes"""
    score = await CreditService.get_score(db, current_user.id)
    logs = await CreditService.get_logs(db, current_user.id)
    return schemas.CreditScoreResponse(
        credit_score=score,
        can_withdraw=score >= WITHDRAW_MIN_SCORE,
        logs=[schemas.CreditScoreLogResponse.model_validate(log) for log in logs]
    )


@router.post("/trade-check", response_model=schemas.TradeCheckResponse)
async def check_trade(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_not_frozen)
):
    """
    Called by an external trading client before placing a trade.

    - The attempt is recorded first
    - 429 on the third attempt within the last hour (costs 10 points, once
      per hour)
    """
    attempts = await CreditService.register_trade_attempt(db, current_user.id)
    return schemas.TradeCheckResponse(attempts_in_window=attempts)
