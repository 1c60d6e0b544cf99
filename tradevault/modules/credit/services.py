from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from datetime import datetime, timedelta, timezone
from typing import List, Optional
import logging

from tradevault.core.database import utcnow
from tradevault.core.exceptions import InvalidAmount, NotFound, RateLimited
from tradevault.modules.users.models import User, INITIAL_CREDIT_SCORE
from tradevault.modules.credit.models import (
    CreditAttempt, CreditScoreLog, AttemptKind, CreditRule
)

logger = logging.getLogger(__name__)

# Hourly frequency rules
ATTEMPT_WINDOW = timedelta(hours=1)
MAX_ATTEMPTS_PER_WINDOW = 3
RATE_LIMIT_PENALTY = 10

# Overdue loans cost this many points per day past the interest cap
OVERDUE_POINTS_PER_DAY = 2

# Withdrawals require an untouched score
WITHDRAW_MIN_SCORE = INITIAL_CREDIT_SCORE


def start_of_utc_day(now: datetime) -> datetime:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class CreditService:
    """
    Per-user credit score.

    The score starts at 100 and only moves through ``_apply_change`` so that
    every change leaves a log row. Deductions floor at zero.
    """

    @staticmethod
    def can_withdraw(user: User) -> bool:
        return user.credit_score >= WITHDRAW_MIN_SCORE

    @staticmethod
    async def get_score(db: AsyncSession, user_id: int) -> int:
        result = await db.execute(select(User.credit_score).where(User.id == user_id))
        score = result.scalar_one_or_none()
        if score is None:
            raise NotFound("User not found")
        return score

    @staticmethod
    async def get_logs(db: AsyncSession, user_id: int, limit: int = 50) -> List[CreditScoreLog]:
        result = await db.execute(
            select(CreditScoreLog)
            .where(CreditScoreLog.user_id == user_id)
            .order_by(CreditScoreLog.created_at.desc(), CreditScoreLog.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def _apply_change(
        db: AsyncSession,
        user_id: int,
        delta: int,
        rule: CreditRule,
        reason: str,
        loan_id: Optional[int] = None,
        admin_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> CreditScoreLog:
        """Row-locked read-modify-write of the score plus its log entry"""
        result = await db.execute(
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFound("User not found")

        previous = user.credit_score
        new_score = max(previous + delta, 0)
        user.credit_score = new_score

        log = CreditScoreLog(
            user_id=user_id,
            previous_score=previous,
            new_score=new_score,
            change_amount=new_score - previous,
            rule=rule,
            reason=reason,
            loan_id=loan_id,
            admin_id=admin_id,
            created_at=now or utcnow()
        )
        db.add(log)
        await db.flush()

        logger.info(f"Credit score of user {user_id}: {previous} -> {new_score} ({rule.value})")
        return log

    @staticmethod
    async def deduct(
        db: AsyncSession,
        user_id: int,
        points: int,
        rule: CreditRule,
        reason: str,
        loan_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> CreditScoreLog:
        if points <= 0:
            raise InvalidAmount("Deduction must be a positive number of points")
        return await CreditService._apply_change(
            db, user_id, -points, rule, reason, loan_id=loan_id, now=now
        )

    @staticmethod
    async def restore(
        db: AsyncSession,
        user_id: int,
        points: int,
        reason: str,
        admin_id: int
    ) -> CreditScoreLog:
        """Admin-granted increase; the only way a score goes back up"""
        if points <= 0:
            raise InvalidAmount("Restored points must be positive")
        return await CreditService._apply_change(
            db, user_id, points, CreditRule.RESTORE, reason, admin_id=admin_id
        )

    @staticmethod
    async def record_attempt(
        db: AsyncSession,
        user_id: int,
        kind: AttemptKind,
        now: Optional[datetime] = None
    ) -> CreditAttempt:
        attempt = CreditAttempt(user_id=user_id, kind=kind, created_at=now or utcnow())
        db.add(attempt)
        await db.flush()
        return attempt

    @staticmethod
    async def count_recent_attempts(
        db: AsyncSession,
        user_id: int,
        kind: AttemptKind,
        now: Optional[datetime] = None
    ) -> int:
        since = (now or utcnow()) - ATTEMPT_WINDOW
        result = await db.execute(
            select(func.count(CreditAttempt.id)).where(
                CreditAttempt.user_id == user_id,
                CreditAttempt.kind == kind,
                CreditAttempt.created_at >= since
            )
        )
        return result.scalar() or 0

    @staticmethod
    async def _enforce_hourly_limit(
        db: AsyncSession,
        user_id: int,
        kind: AttemptKind,
        rule: CreditRule,
        reason: str,
        now: Optional[datetime] = None
    ) -> None:
        """
        Raise RateLimited once the trailing hour holds MAX_ATTEMPTS_PER_WINDOW
        attempts. The penalty is taken at most once per window.

        The deduction is committed before raising: the rejected request rolls
        back, the penalty must not.
        """
        now = now or utcnow()
        attempts = await CreditService.count_recent_attempts(db, user_id, kind, now)
        if attempts < MAX_ATTEMPTS_PER_WINDOW:
            return

        result = await db.execute(
            select(func.count(CreditScoreLog.id)).where(
                CreditScoreLog.user_id == user_id,
                CreditScoreLog.rule == rule,
                CreditScoreLog.created_at >= now - ATTEMPT_WINDOW
            )
        )
        if not result.scalar():
            await CreditService.deduct(db, user_id, RATE_LIMIT_PENALTY, rule, reason, now=now)
        logger.warning(f"User {user_id} hit the hourly {kind.value} limit ({attempts} attempts)")

        await db.commit()
        raise RateLimited(
            f"Too many {kind.value} attempts within the last hour. "
            f"Your credit score has been reduced."
        )

    @staticmethod
    async def check_withdrawal_limit(db: AsyncSession, user_id: int, now: Optional[datetime] = None) -> None:
        await CreditService._enforce_hourly_limit(
            db, user_id, AttemptKind.WITHDRAW, CreditRule.WITHDRAW_LIMIT,
            "Attempted to withdraw 3+ times within an hour", now
        )

    @staticmethod
    async def check_trade_limit(db: AsyncSession, user_id: int, now: Optional[datetime] = None) -> None:
        await CreditService._enforce_hourly_limit(
            db, user_id, AttemptKind.TRADE, CreditRule.TRADE_LIMIT,
            "Traded 3+ times within an hour", now
        )

    @staticmethod
    async def register_trade_attempt(db: AsyncSession, user_id: int, now: Optional[datetime] = None) -> int:
        """
        Record a trade attempt, then apply the hourly limit.

        The attempt counts before the check, as withdrawals do, so the third
        trade in an hour is the one that gets blocked. Returns the attempts in
        the window.
        """
        await CreditService.record_attempt(db, user_id, AttemptKind.TRADE, now)
        await CreditService.check_trade_limit(db, user_id, now)
        return await CreditService.count_recent_attempts(db, user_id, AttemptKind.TRADE, now)

    @staticmethod
    async def deduct_for_overdue_loan(
        db: AsyncSession,
        user_id: int,
        loan_id: int,
        days_overdue: int,
        now: Optional[datetime] = None
    ) -> Optional[CreditScoreLog]:
        """
        Take 2 points per overdue day, at most once per loan per UTC day.
        Returns None when nothing was deducted.
        """
        if days_overdue <= 0:
            return None

        now = now or utcnow()
        result = await db.execute(
            select(CreditScoreLog.id).where(
                CreditScoreLog.user_id == user_id,
                CreditScoreLog.loan_id == loan_id,
                CreditScoreLog.rule == CreditRule.OVERDUE_LOAN,
                CreditScoreLog.created_at >= start_of_utc_day(now)
            ).limit(1)
        )
        if result.scalar_one_or_none() is not None:
            return None

        log = await CreditService.deduct(
            db, user_id,
            OVERDUE_POINTS_PER_DAY * days_overdue,
            CreditRule.OVERDUE_LOAN,
            f"Loan {loan_id} is {days_overdue} days overdue (after day 15)",
            loan_id=loan_id,
            now=now
        )
