from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from tradevault.core.database import get_db
from tradevault.core.dependencies import get_current_user, require_not_frozen
from tradevault.modules.users.models import User
from tradevault.modules.trades import schemas
from tradevault.modules.trades.models import TradeDirection, TradeStatus
from tradevault.modules.trades.rates import PROFIT_RATES
from tradevault.modules.trades.services import TradeService

router = APIRouter(prefix="/api/v1/trades", tags=["trades"])


@router.get("/options", response_model=schemas.TradeOptionsResponse)
async def get_options():
    """Countdown lengths and the profit each pays on a win"""
    return {
        "options": [
            {"duration_minutes": minutes, "profit_rate": rate}
            for minutes, rate in PROFIT_RATES.items()
        ]
    }


@router.post("", response_model=schemas.TradeResponse, status_code=status.HTTP_201_CREATED)
async def place_trade(
    trade_data: schemas.TradeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_not_frozen)
):
    """
    Place a smart trade.

    - The stake is deducted immediately
    - Three trades within an hour are blocked and cost 10 credit points
    - A win pays the stake plus 10/20/30/40% for 1/3/5/15 minute countdowns
    """
    return await TradeService.place_trade(
        db, current_user,
        trade_data.symbol,
        TradeDirection(trade_data.direction.value),
        trade_data.amount,
        trade_data.duration_minutes,
        trade_data.entry_price
    )


@router.get("", response_model=schemas.TradeListResponse)
async def list_trades(
    status: Optional[TradeStatus] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Trade history of the current user, newest first"""
    trades, total = await TradeService.list_trades(db, current_user.id, status, page, page_size)
    return {"trades": trades, "total": total, "page": page, "page_size": page_size}


@router.get("/{trade_id}", response_model=schemas.TradeResponse)
async def get_trade(
    trade_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await TradeService.get_user_trade(db, trade_id, current_user.id)


@router.post("/{trade_id}/settle", response_model=schemas.TradeResponse)
async def settle_trade(
    trade_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Settle a trade whose countdown has ended; 409 before that or if already settled"""
    return await TradeService.settle_trade(db, trade_id, user_id=current_user.id)
