from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple
import logging

from tradevault.core.config import settings
from tradevault.core.database import utcnow
from tradevault.core.exceptions import (
    AccountFrozen, InvalidAmount, InvalidTransition, NotFound
)
from tradevault.core.security import generate_reference
from tradevault.modules.users.models import User
from tradevault.modules.admin.models import SystemConfig, TRADE_MODE_PREFIX
from tradevault.modules.credit.services import CreditService
from tradevault.modules.notifications.models import NotificationType
from tradevault.modules.notifications.services import NotificationService
from tradevault.modules.wallet.models import Transaction, TransactionType, TransactionStatus
from tradevault.modules.wallet.services import AssetService, to_money
from tradevault.modules.loans.accrual import as_utc
from tradevault.modules.trades.models import (
    Trade, TradeDirection, TradeMode, TradeStatus, OutcomeSource
)
from tradevault.modules.trades.rates import profit_rate, resolve_outcome, settlement_amounts

logger = logging.getLogger(__name__)


class TradeService:
    """
    Smart trades: a stake on the direction of a symbol over a fixed
    countdown.

    The stake is debited when the trade is placed. Settlement is a
    compare-and-set from pending, so a trade pays out at most once whoever
    settles it: the countdown, the user's trade mode or an administrator.
    """

    # ============ Queries ============

    @staticmethod
    async def get_trade(db: AsyncSession, trade_id: int) -> Trade:
        result = await db.execute(
            select(Trade).where(Trade.id == trade_id).execution_options(populate_existing=True)
        )
        trade = result.scalar_one_or_none()
        if not trade:
            raise NotFound("Trade not found")
        return trade

    @staticmethod
    async def get_user_trade(db: AsyncSession, trade_id: int, user_id: int) -> Trade:
        trade = await TradeService.get_trade(db, trade_id)
        if trade.user_id != user_id:
            raise NotFound("Trade not found")
        return trade

    @staticmethod
    async def list_trades(
        db: AsyncSession,
        user_id: Optional[int] = None,
        status: Optional[TradeStatus] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[Trade], int]:
        query = select(Trade)
        if user_id is not None:
            query = query.where(Trade.user_id == user_id)
        if status:
            query = query.where(Trade.status == status)

        total = await db.scalar(select(func.count()).select_from(query.subquery()))

        query = query.order_by(Trade.created_at.desc(), Trade.id.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await db.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all()), total or 0

    @staticmethod
    async def get_trade_mode(db: AsyncSession, user_id: int) -> TradeMode:
        value = await db.scalar(
            select(SystemConfig.value).where(SystemConfig.key == f"{TRADE_MODE_PREFIX}{user_id}")
        )
        try:
            return TradeMode(value) if value else TradeMode.MANUAL
        except ValueError:
            logger.error(f"Unknown trade mode {value!r} for user {user_id}; using manual")
            return TradeMode.MANUAL

    # ============ Placement ============

    @staticmethod
    async def place_trade(
        db: AsyncSession,
        user: User,
        symbol: str,
        direction: TradeDirection,
        amount: Decimal,
        duration_minutes: int,
        entry_price: Decimal,
        now: Optional[datetime] = None
    ) -> Trade:
        """
        Debit the stake and start the countdown.

        Order: frozen account, amount, duration, then the attempt is recorded
        and the hourly trade limit applied before any money moves.
        """
        now = now or utcnow()
        if user.is_frozen:
            raise AccountFrozen()
        if amount is None or not amount.is_finite() or amount <= 0:
            raise InvalidAmount()
        rate = profit_rate(duration_minutes)

        await CreditService.register_trade_attempt(db, user.id, now)

        amount = to_money(amount)
        await AssetService.debit(db, user.id, amount)

        txn = Transaction(
            reference_code=generate_reference("TRD"),
            user_id=user.id,
            type=TransactionType.TRADE,
            status=TransactionStatus.PENDING,
            amount=amount,
            currency=settings.DEFAULT_CURRENCY,
            note=f"Smart trade: {direction.value.upper()} {symbol} @ {entry_price} for {duration_minutes} min",
            related_entity_type="trade"
        )
        db.add(txn)
        await db.flush()

        trade = Trade(
            user_id=user.id,
            transaction_id=txn.id,
            symbol=symbol,
            direction=direction,
            amount=amount,
            currency=txn.currency,
            entry_price=entry_price,
            duration_minutes=duration_minutes,
            profit_rate=rate,
            status=TradeStatus.PENDING,
            settle_at=now + timedelta(minutes=duration_minutes),
            created_at=now
        )
        db.add(trade)
        await db.flush()
        txn.related_entity_id = trade.id
        await db.flush()
        await db.refresh(trade)

        logger.info(
            f"Trade {trade.id} placed by user {user.id}: {direction.value} {symbol} "
            f"{amount} for {duration_minutes} min"
        )
        return trade

    # ============ Settlement ============

    @staticmethod
    async def _settle(
        db: AsyncSession,
        trade: Trade,
        won: bool,
        source: OutcomeSource,
        admin_id: Optional[int],
        now: datetime
    ) -> Trade:
        """pending -> won / lost; credits the payout on a win"""
        profit, payout = settlement_amounts(trade.amount, trade.profit_rate, won)
        result = await db.execute(
            update(Trade)
            .where(Trade.id == trade.id, Trade.status == TradeStatus.PENDING)
            .values(
                status=TradeStatus.WON if won else TradeStatus.LOST,
                outcome_source=source,
                profit=profit,
                payout=payout,
                settled_at=now,
                settled_by=admin_id,
                updated_at=now
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(f"Trade {trade.id} already settled")
            raise InvalidTransition("Trade is already settled")

        if payout > 0:
            await AssetService.credit(db, trade.user_id, payout, trade.currency)

        outcome = f"WIN | Profit: +{profit}" if won else f"LOSS | Lost: {profit}"
        await db.execute(
            update(Transaction)
            .where(
                Transaction.id == trade.transaction_id,
                Transaction.status == TransactionStatus.PENDING
            )
            .values(
                status=TransactionStatus.COMPLETED,
                note=func.coalesce(Transaction.note, "") + f" | Result: {outcome} {trade.currency}",
                updated_at=now
            )
            .execution_options(synchronize_session=False)
        )
        await NotificationService.notify(
            db, trade.user_id, NotificationType.TRADE,
            "Trade won" if won else "Trade lost",
            (f"Your {trade.symbol} trade won: {payout} {trade.currency} was credited to your balance."
             if won else
             f"Your {trade.symbol} trade lost {trade.amount} {trade.currency}."),
            related_entity_type="trade", related_entity_id=trade.id
        )
        logger.info(f"Trade {trade.id} settled {'won' if won else 'lost'} ({source.value}), payout {payout}")
        return await TradeService.get_trade(db, trade.id)

    @staticmethod
    async def settle_trade(
        db: AsyncSession,
        trade_id: int,
        user_id: Optional[int] = None,
        now: Optional[datetime] = None,
        rng: Optional[Callable[[], float]] = None
    ) -> Trade:
        """Countdown settlement; only once ``settle_at`` has passed"""
        now = now or utcnow()
        if user_id is None:
            trade = await TradeService.get_trade(db, trade_id)
        else:
            trade = await TradeService.get_user_trade(db, trade_id, user_id)
        if trade.status != TradeStatus.PENDING:
            raise InvalidTransition(f"Trade is already {trade.status.value}")
        if as_utc(now) < as_utc(trade.settle_at):
            raise InvalidTransition("Trade countdown has not finished")

        mode = await TradeService.get_trade_mode(db, trade.user_id)
        won, source = resolve_outcome(mode, rng)
        return await TradeService._settle(db, trade, won, source, None, now)

    @staticmethod
    async def set_outcome(
        db: AsyncSession,
        trade_id: int,
        won: bool,
        admin_id: int,
        now: Optional[datetime] = None
    ) -> Trade:
        """Admin decision; allowed before the countdown ends"""
        trade = await TradeService.get_trade(db, trade_id)
        if trade.status != TradeStatus.PENDING:
            raise InvalidTransition(f"Trade is already {trade.status.value}")
        return await TradeService._settle(db, trade, won, OutcomeSource.ADMIN, admin_id, now or utcnow())

    @staticmethod
    async def settle_due_trades(
        db: AsyncSession,
        now: Optional[datetime] = None,
        rng: Optional[Callable[[], float]] = None
    ) -> Dict[str, int]:
        """Settle every pending trade whose countdown has ended"""
        now = now or utcnow()
        result = await db.execute(
            select(Trade.id)
            .where(Trade.status == TradeStatus.PENDING, Trade.settle_at <= now)
            .order_by(Trade.settle_at, Trade.id)
        )
        trade_ids = list(result.scalars().all())

        summary = {"checked": len(trade_ids), "settled": 0, "won": 0, "lost": 0}
        for trade_id in trade_ids:
            try:
                trade = await TradeService.settle_trade(db, trade_id, now=now, rng=rng)
            except InvalidTransition as e:
                logger.warning(f"Trade {trade_id} skipped by settlement sweep: {e.detail}")
                continue
            summary["settled"] += 1
            summary["won" if trade.status == TradeStatus.WON else "lost"] += 1

        logger.info(f"Trade settlement sweep: {summary}")
        return summary

    @staticmethod
    async def set_trade_mode(
        db: AsyncSession,
        user_id: int,
        mode: TradeMode,
        admin_id: int,
        now: Optional[datetime] = None
    ) -> List[Trade]:
        """
        Store the user's outcome policy. A forcing mode also settles the
        user's pending trades right away; returns the trades it settled.
        """
        now = now or utcnow()
        key = f"{TRADE_MODE_PREFIX}{user_id}"
        result = await db.execute(select(SystemConfig).where(SystemConfig.key == key))
        entry = result.scalar_one_or_none()
        if entry is None:
            entry = SystemConfig(key=key, description=f"Smart trade mode for user {user_id}")
            db.add(entry)
        entry.value = mode.value
        entry.updated_by = admin_id
        entry.updated_at = now
        await db.flush()

        settled = []
        if mode != TradeMode.MANUAL:
            pending, _ = await TradeService.list_trades(
                db, user_id=user_id, status=TradeStatus.PENDING, page_size=1000
            )
            for trade in pending:
                settled.append(await TradeService._settle(
                    db, trade, mode == TradeMode.ALWAYS_WIN, OutcomeSource.MODE, admin_id, now
                ))

        logger.info(f"Trade mode of user {user_id} set to {mode.value} by admin {admin_id}")
        return settled
