"""
Admin smart trade endpoints: pending trades, outcome overrides and per-user
trade modes.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from tradevault.core.database import get_db
from tradevault.core.dependencies import require_admin
from tradevault.modules.users.models import User
from tradevault.modules.trades.models import TradeMode, TradeStatus
from tradevault.modules.trades.schemas import TradeListResponse, TradeResponse
from tradevault.modules.trades.services import TradeService
from tradevault.modules.admin import schemas
from tradevault.modules.admin.services import AdminService

router = APIRouter(tags=["admin-trades"])


@router.get("/trades", response_model=TradeListResponse)
async def list_trades(
    user_id: Optional[int] = None,
    status: Optional[TradeStatus] = TradeStatus.PENDING,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """Trades awaiting a result by default; filter by user or status"""
    trades, total = await TradeService.list_trades(db, user_id, status, page, page_size)
    return {"trades": trades, "total": total, "page": page, "page_size": page_size}


@router.put("/trades/{trade_id}/outcome", response_model=TradeResponse)
async def set_trade_outcome(
    trade_id: int,
    outcome: schemas.TradeOutcomeRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """
    Settle a pending trade now.

    - win: the stake plus its profit is credited
    - loss: the stake stays deducted
    """
    won = outcome.outcome == schemas.TradeOutcome.WIN
    return await AdminService(db).set_trade_outcome(admin.id, trade_id, won)


@router.post("/trades/settle-due", response_model=schemas.TradeSweepResponse)
async def settle_due_trades(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """Settle every trade whose countdown has ended, honouring trade modes"""
    return await AdminService(db).run_trade_settlement(admin.id)


@router.put("/users/{user_id}/trade-mode", response_model=schemas.TradeModeResponse)
async def set_trade_mode(
    user_id: int,
    request: schemas.TradeModeRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """
    Set a user's outcome policy.

    always_win / always_lose also settle the user's pending trades at once;
    manual leaves results to the countdown or an administrator.
    """
    mode = TradeMode(request.mode.value)
    settled = await AdminService(db).set_trade_mode(admin.id, user_id, mode)
    return {"user_id": user_id, "mode": mode.value, "settled": settled}
