from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional
import logging

from tradevault.core.database import utcnow
from tradevault.core.exceptions import (
    AccountFrozen, InvalidTransition, NotEligible, NotFound, OutOfRange
)
from tradevault.modules.users.models import User
from tradevault.modules.notifications.models import NotificationType
from tradevault.modules.notifications.services import NotificationService
from tradevault.modules.wallet.models import TransactionType
from tradevault.modules.wallet.services import AssetService, WalletService
from tradevault.modules.loans.accrual import as_utc
from tradevault.modules.mining.models import MiningInvestment, MiningStatus
from tradevault.modules.mining.tiers import (
    MIN_TOTAL_DEPOSITS, get_tier, earnings_for_days, accrued_earnings
)

logger = logging.getLogger(__name__)


class MiningService:
    """Staking applications, activation and settlement"""

    @staticmethod
    async def get_investment(db: AsyncSession, investment_id: int) -> MiningInvestment:
        result = await db.execute(
            select(MiningInvestment)
            .where(MiningInvestment.id == investment_id)
            .execution_options(populate_existing=True)
        )
        investment = result.scalar_one_or_none()
        if not investment:
            raise NotFound("Mining investment not found")
        return investment

    @staticmethod
    async def get_user_investments(db: AsyncSession, user_id: int) -> List[MiningInvestment]:
        result = await db.execute(
            select(MiningInvestment)
            .where(MiningInvestment.user_id == user_id)
            .order_by(MiningInvestment.created_at.desc(), MiningInvestment.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_investments(
        db: AsyncSession,
        status: Optional[MiningStatus] = None,
        page: int = 1,
        page_size: int = 20
    ) -> tuple[List[MiningInvestment], int]:
        query = select(MiningInvestment)
        if status:
            query = query.where(MiningInvestment.status == status)

        total = await db.scalar(select(func.count()).select_from(query.subquery()))

        query = query.order_by(MiningInvestment.created_at.desc(), MiningInvestment.id.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await db.execute(query)
        return list(result.scalars().all()), total or 0

    @staticmethod
    async def is_eligible(db: AsyncSession, user_id: int) -> bool:
        return await WalletService.completed_deposit_total(db, user_id) >= MIN_TOTAL_DEPOSITS

    @staticmethod
    async def submit_application(db: AsyncSession, user: User, amount: Decimal, tier: int) -> MiningInvestment:
        """Queue an application; the amount is only locked on approval"""
        if user.is_frozen:
            raise AccountFrozen()

        tier_config = get_tier(tier)
        if amount < tier_config.min_amount:
            raise OutOfRange(f"Tier {tier} requires at least {tier_config.min_amount}")

        if not await MiningService.is_eligible(db, user.id):
            raise NotEligible(f"Mining requires at least {MIN_TOTAL_DEPOSITS} USDT in completed deposits")

        investment = MiningInvestment(
            user_id=user.id,
            amount=amount,
            tier=tier_config.tier,
            daily_rate=tier_config.daily_rate,
            lock_days=tier_config.lock_days,
            status=MiningStatus.PENDING
        )
        db.add(investment)
        await db.flush()
        await db.refresh(investment)

        logger.info(f"Mining application {investment.id} (tier {tier}, {amount}) from user {user.id}")
        return investment

    @staticmethod
    async def approve(
        db: AsyncSession,
        investment_id: int,
        admin_id: int,
        now: Optional[datetime] = None
    ) -> MiningInvestment:
        """pending -> active; the amount leaves the balance for the lock period"""
        now = now or utcnow()
        investment = await MiningService.get_investment(db, investment_id)
        result = await db.execute(
            update(MiningInvestment)
            .where(
                MiningInvestment.id == investment_id,
                MiningInvestment.status == MiningStatus.PENDING
            )
            .values(
                status=MiningStatus.ACTIVE,
                start_date=now,
                end_date=now + timedelta(days=investment.lock_days),
                updated_at=now
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidTransition(f"Investment is already {investment.status.value}")

        # InsufficientFunds here aborts the whole approval
        await AssetService.debit(db, investment.user_id, investment.amount)
        await WalletService.record_entry(
            db, investment.user_id, TransactionType.MINING_LOCK, investment.amount,
            note=f"Mining tier {investment.tier} lock for {investment.lock_days} days",
            related_entity_type="mining", related_entity_id=investment.id
        )
        await NotificationService.notify(
            db, investment.user_id, NotificationType.MINING,
            "Mining started",
            f"{investment.amount} USDT is locked for {investment.lock_days} days "
            f"at {investment.daily_rate}% per day.",
            related_entity_type="mining", related_entity_id=investment.id
        )
        logger.info(f"Mining investment {investment_id} activated by admin {admin_id}")
        return await MiningService.get_investment(db, investment_id)

    @staticmethod
    async def reject(
        db: AsyncSession,
        investment_id: int,
        admin_id: int,
        note: Optional[str] = None
    ) -> MiningInvestment:
        result = await db.execute(
            update(MiningInvestment)
            .where(
                MiningInvestment.id == investment_id,
                MiningInvestment.status == MiningStatus.PENDING
            )
            .values(status=MiningStatus.REJECTED, admin_note=note, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        investment = await MiningService.get_investment(db, investment_id)
        if result.rowcount == 0:
            raise InvalidTransition(f"Investment is already {investment.status.value}")

        await NotificationService.notify(
            db, investment.user_id, NotificationType.MINING,
            "Mining application rejected",
            f"Your mining application for {investment.amount} USDT was rejected."
            + (f" Note: {note}" if note else ""),
            related_entity_type="mining", related_entity_id=investment.id
        )
        logger.info(f"Mining investment {investment_id} rejected by admin {admin_id}")
        return investment

    @staticmethod
    async def settle(
        db: AsyncSession,
        investment_id: int,
        admin_id: int,
        now: Optional[datetime] = None
    ) -> MiningInvestment:
        """active -> settled after maturity; pays back the amount plus full-term earnings"""
        now = now or utcnow()
        investment = await MiningService.get_investment(db, investment_id)
        if investment.status != MiningStatus.ACTIVE:
            raise InvalidTransition(f"Investment is {investment.status.value}")
        if investment.end_date is None or as_utc(now) < as_utc(investment.end_date):
            raise InvalidTransition("Investment has not matured yet")

        earnings = earnings_for_days(
            investment.amount, investment.daily_rate, investment.lock_days, investment.lock_days
        )
        result = await db.execute(
            update(MiningInvestment)
            .where(
                MiningInvestment.id == investment_id,
                MiningInvestment.status == MiningStatus.ACTIVE
            )
            .values(status=MiningStatus.SETTLED, total_earnings=earnings, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(f"Mining investment {investment_id} already settled")
            raise InvalidTransition("Investment was settled concurrently")

        payout = investment.amount + earnings
        await AssetService.credit(db, investment.user_id, payout)
        await WalletService.record_entry(
            db, investment.user_id, TransactionType.MINING_SETTLEMENT, payout,
            note=f"Mining tier {investment.tier} settlement: principal {investment.amount}, earnings {earnings}",
            related_entity_type="mining", related_entity_id=investment.id
        )
        await NotificationService.notify(
            db, investment.user_id, NotificationType.MINING,
            "Mining settled",
            f"{payout} USDT ({earnings} earnings) was credited to your balance.",
            related_entity_type="mining", related_entity_id=investment.id
        )
        logger.info(f"Mining investment {investment_id} settled by admin {admin_id}: payout {payout}")
        return await MiningService.get_investment(db, investment_id)

    @staticmethod
    def describe(investment: MiningInvestment, now: Optional[datetime] = None) -> dict:
        accrued = Decimal("0.00")
        matured = False
        if investment.status == MiningStatus.ACTIVE:
            accrued = accrued_earnings(
                investment.amount, investment.daily_rate,
                investment.start_date, investment.lock_days, now
            )
            matured = investment.end_date is not None and as_utc(now or utcnow()) >= as_utc(investment.end_date)
        return {"investment": investment, "accrued_earnings": accrued, "matured": matured}
