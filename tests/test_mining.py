"""
Tests for mining tiers, applications and settlement
"""
import pytest
from decimal import Decimal
from datetime import datetime, timedelta, timezone

from tradevault.core.exceptions import (
    InsufficientFunds, InvalidTransition, NotEligible, NotFound, OutOfRange
)
from tradevault.modules.mining.models import MiningStatus
from tradevault.modules.mining.services import MiningService
from tradevault.modules.mining.tiers import get_tier, earnings_for_days, accrued_earnings
from tradevault.modules.wallet.services import AssetService, WalletService

T0 = datetime(2024, 4, 1, 8, 0, tzinfo=timezone.utc)


async def _deposit(db, user, amount):
    txn = await WalletService.request_deposit(db, user, amount, "TRC20")
    await WalletService.approve_transaction(db, txn.id)


class TestTiers:

    @pytest.mark.unit
    def test_tier_table(self):
        assert (get_tier(1).lock_days, get_tier(1).daily_rate, get_tier(1).min_amount) == (15, Decimal("1"), Decimal("3000"))
        assert (get_tier(2).lock_days, get_tier(2).daily_rate, get_tier(2).min_amount) == (30, Decimal("1.5"), Decimal("7000"))
        assert (get_tier(3).lock_days, get_tier(3).daily_rate, get_tier(3).min_amount) == (60, Decimal("2"), Decimal("10000"))
        assert get_tier(2).label == "30 Days Lock"

    @pytest.mark.unit
    def test_unknown_tier(self):
        with pytest.raises(NotFound):
            get_tier(4)

    @pytest.mark.unit
    def test_earnings_are_capped_at_lock_period(self):
        assert earnings_for_days(Decimal("3000"), Decimal("1"), 10, 15) == Decimal("300.00")
        assert earnings_for_days(Decimal("3000"), Decimal("1"), 40, 15) == Decimal("450.00")

    @pytest.mark.unit
    def test_accrued_earnings(self):
        assert accrued_earnings(Decimal("7000"), Decimal("1.5"), T0, 30, T0 + timedelta(days=2, hours=5)) == Decimal("210.00")
        assert accrued_earnings(Decimal("7000"), Decimal("1.5"), None, 30, T0) == Decimal("0.00")


class TestApplications:

    @pytest.mark.integration
    async def test_requires_completed_deposits(self, db_session, funded_user):
        with pytest.raises(NotEligible):
            await MiningService.submit_application(db_session, funded_user, Decimal("3000"), 1)

    @pytest.mark.integration
    async def test_tier_minimum(self, db_session, test_user):
        await _deposit(db_session, test_user, Decimal("5000"))

        with pytest.raises(OutOfRange):
            await MiningService.submit_application(db_session, test_user, Decimal("6999"), 2)

    @pytest.mark.integration
    async def test_application_is_pending_and_locks_nothing(self, db_session, test_user):
        await _deposit(db_session, test_user, Decimal("5000"))

        investment = await MiningService.submit_application(db_session, test_user, Decimal("3000"), 1)

        assert investment.status == MiningStatus.PENDING
        assert investment.lock_days == 15
        assert await AssetService.get_balance(db_session, test_user.id) == Decimal("5000")


class TestLifecycle:

    @pytest.mark.integration
    async def test_approve_then_settle(self, db_session, test_user, admin_user):
        await _deposit(db_session, test_user, Decimal("5000"))
        investment = await MiningService.submit_application(db_session, test_user, Decimal("3000"), 1)

        investment = await MiningService.approve(db_session, investment.id, admin_user.id, now=T0)
        assert investment.status == MiningStatus.ACTIVE
        assert await AssetService.get_balance(db_session, test_user.id) == Decimal("2000")

        with pytest.raises(InvalidTransition):
            await MiningService.settle(db_session, investment.id, admin_user.id, now=T0 + timedelta(days=14))

        view = MiningService.describe(investment, T0 + timedelta(days=10))
        assert view["accrued_earnings"] == Decimal("300.00")
        assert not view["matured"]

        investment = await MiningService.settle(db_session, investment.id, admin_user.id, now=T0 + timedelta(days=15))
        assert investment.status == MiningStatus.SETTLED
        assert investment.total_earnings == Decimal("450.00")
        assert await AssetService.get_balance(db_session, test_user.id) == Decimal("5450")

        with pytest.raises(InvalidTransition):
            await MiningService.settle(db_session, investment.id, admin_user.id, now=T0 + timedelta(days=16))
        assert await AssetService.get_balance(db_session, test_user.id) == Decimal("5450")

    @pytest.mark.integration
    async def test_approval_needs_funds(self, db_session, test_user, admin_user):
        await _deposit(db_session, test_user, Decimal("5000"))
        investment = await MiningService.submit_application(db_session, test_user, Decimal("4000"), 1)
        await AssetService.debit(db_session, test_user.id, Decimal("2000"))

        with pytest.raises(InsufficientFunds):
            await MiningService.approve(db_session, investment.id, admin_user.id, now=T0)

    @pytest.mark.integration
    async def test_rejection(self, db_session, test_user, admin_user):
        await _deposit(db_session, test_user, Decimal("5000"))
        investment = await MiningService.submit_application(db_session, test_user, Decimal("3000"), 1)

        investment = await MiningService.reject(db_session, investment.id, admin_user.id, "Tier closed")

        assert investment.status == MiningStatus.REJECTED
        assert investment.admin_note == "Tier closed"
        with pytest.raises(InvalidTransition):
            await MiningService.approve(db_session, investment.id, admin_user.id)
