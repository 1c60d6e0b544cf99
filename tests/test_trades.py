"""
Tests for smart trades: placement, countdown settlement and outcome control
"""
import pytest
from decimal import Decimal
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from tradevault.core.exceptions import (
    InsufficientFunds, InvalidTransition, NotFound, OutOfRange, RateLimited
)
from tradevault.modules.admin.models import SystemConfig
from tradevault.modules.credit.services import CreditService
from tradevault.modules.trades.models import (
    TradeDirection, TradeMode, TradeStatus, OutcomeSource
)
from tradevault.modules.trades.rates import profit_rate, resolve_outcome, settlement_amounts
from tradevault.modules.trades.services import TradeService
from tradevault.modules.wallet.models import Transaction, TransactionStatus, TransactionType
from tradevault.modules.wallet.services import AssetService

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
ENTRY = Decimal("64250.5")


def win():
    return 0.1


def lose():
    return 0.9


async def _place(db, user, amount="1000", minutes=5, now=T0, direction=TradeDirection.LONG):
    return await TradeService.place_trade(
        db, user, "BTCUSDT", direction, Decimal(amount), minutes, ENTRY, now=now
    )


async def _transaction(db, trade):
    result = await db.execute(
        select(Transaction)
        .where(Transaction.id == trade.transaction_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


class TestRates:

    @pytest.mark.unit
    def test_profit_table(self):
        assert [profit_rate(m) for m in (1, 3, 5, 15)] == [
            Decimal("0.10"), Decimal("0.20"), Decimal("0.30"), Decimal("0.40")
        ]

    @pytest.mark.unit
    def test_unknown_duration(self):
        with pytest.raises(OutOfRange):
            profit_rate(10)

    @pytest.mark.unit
    def test_settlement_amounts(self):
        assert settlement_amounts(Decimal("1000"), Decimal("0.30"), True) == (Decimal("300.00"), Decimal("1300.00"))
        assert settlement_amounts(Decimal("33.33"), Decimal("0.10"), True) == (Decimal("3.33"), Decimal("36.66"))
        assert settlement_amounts(Decimal("1000"), Decimal("0.30"), False) == (Decimal("-1000"), Decimal("0.00"))

    @pytest.mark.unit
    def test_mode_forces_outcome(self):
        assert resolve_outcome(TradeMode.ALWAYS_WIN, lose) == (True, OutcomeSource.MODE)
        assert resolve_outcome(TradeMode.ALWAYS_LOSE, win) == (False, OutcomeSource.MODE)
        assert resolve_outcome(TradeMode.MANUAL, win) == (True, OutcomeSource.TIMER)
        assert resolve_outcome(TradeMode.MANUAL, lose) == (False, OutcomeSource.TIMER)


class TestPlacement:

    @pytest.mark.integration
    async def test_debits_stake_and_records_pending_transaction(self, db_session, funded_user):
        trade = await _place(db_session, funded_user)

        assert trade.status == TradeStatus.PENDING
        assert trade.profit_rate == Decimal("0.30")
        assert trade.settle_at.replace(tzinfo=timezone.utc) == T0 + timedelta(minutes=5)
        assert await AssetService.get_balance(db_session, funded_user.id) == Decimal("19000")

        txn = await _transaction(db_session, trade)
        assert txn.type == TransactionType.TRADE
        assert txn.status == TransactionStatus.PENDING
        assert txn.amount == Decimal("1000")
        assert txn.related_entity_id == trade.id
        assert txn.reference_code.startswith("TRD")

    @pytest.mark.integration
    async def test_third_trade_in_an_hour_is_blocked(self, db_session, funded_user):
        await _place(db_session, funded_user, now=T0)
        await _place(db_session, funded_user, now=T0 + timedelta(minutes=10))

        with pytest.raises(RateLimited):
            await _place(db_session, funded_user, now=T0 + timedelta(minutes=20))

        assert await CreditService.get_score(db_session, funded_user.id) == 90
        trades, total = await TradeService.list_trades(db_session, funded_user.id)
        assert total == 2
        assert await AssetService.get_balance(db_session, funded_user.id) == Decimal("18000")

    @pytest.mark.integration
    async def test_window_slides(self, db_session, funded_user):
        await _place(db_session, funded_user, now=T0)
        await _place(db_session, funded_user, now=T0 + timedelta(minutes=10))

        trade = await _place(db_session, funded_user, now=T0 + timedelta(hours=1, minutes=5))

        assert trade.status == TradeStatus.PENDING
        assert await CreditService.get_score(db_session, funded_user.id) == 100

    @pytest.mark.integration
    async def test_stake_above_balance(self, db_session, funded_user):
        with pytest.raises(InsufficientFunds):
            await _place(db_session, funded_user, amount="20000.01")

    @pytest.mark.integration
    async def test_unsupported_duration_moves_nothing(self, db_session, funded_user):
        with pytest.raises(OutOfRange):
            await _place(db_session, funded_user, minutes=2)

        assert await AssetService.get_balance(db_session, funded_user.id) == Decimal("20000")
        assert await TradeService.list_trades(db_session, funded_user.id) == ([], 0)


class TestSettlement:

    @pytest.mark.integration
    async def test_countdown_must_finish(self, db_session, funded_user):
        trade = await _place(db_session, funded_user)

        with pytest.raises(InvalidTransition):
            await TradeService.settle_trade(db_session, trade.id, now=T0 + timedelta(minutes=4), rng=win)

    @pytest.mark.integration
    async def test_win_pays_stake_plus_profit(self, db_session, funded_user):
        trade = await _place(db_session, funded_user, minutes=15)

        settled = await TradeService.settle_trade(
            db_session, trade.id, user_id=funded_user.id, now=T0 + timedelta(minutes=15), rng=win
        )

        assert settled.status == TradeStatus.WON
        assert settled.outcome_source == OutcomeSource.TIMER
        assert settled.profit == Decimal("400")
        assert settled.payout == Decimal("1400")
        assert await AssetService.get_balance(db_session, funded_user.id) == Decimal("20400")

        txn = await _transaction(db_session, trade)
        assert txn.status == TransactionStatus.COMPLETED
        assert "Result: WIN | Profit: +400.00" in txn.note

    @pytest.mark.integration
    async def test_loss_keeps_the_stake(self, db_session, funded_user):
        trade = await _place(db_session, funded_user, minutes=1)

        settled = await TradeService.settle_trade(db_session, trade.id, now=T0 + timedelta(minutes=2), rng=lose)

        assert settled.status == TradeStatus.LOST
        assert settled.profit == Decimal("-1000")
        assert settled.payout == Decimal("0")
        assert await AssetService.get_balance(db_session, funded_user.id) == Decimal("19000")
        assert "Result: LOSS" in (await _transaction(db_session, trade)).note

    @pytest.mark.integration
    async def test_settles_only_once(self, db_session, funded_user, admin_user):
        trade = await _place(db_session, funded_user)
        await TradeService.settle_trade(db_session, trade.id, now=T0 + timedelta(minutes=5), rng=win)

        with pytest.raises(InvalidTransition):
            await TradeService.settle_trade(db_session, trade.id, now=T0 + timedelta(minutes=6), rng=win)
        with pytest.raises(InvalidTransition):
            await TradeService.set_outcome(db_session, trade.id, True, admin_user.id)

        assert await AssetService.get_balance(db_session, funded_user.id) == Decimal("20300")

    @pytest.mark.integration
    async def test_other_users_trade_is_hidden(self, db_session, funded_user, admin_user):
        trade = await _place(db_session, funded_user)

        with pytest.raises(NotFound):
            await TradeService.settle_trade(
                db_session, trade.id, user_id=admin_user.id, now=T0 + timedelta(minutes=5)
            )

    @pytest.mark.integration
    async def test_admin_outcome_before_countdown_ends(self, db_session, funded_user, admin_user):
        trade = await _place(db_session, funded_user, minutes=3)

        settled = await TradeService.set_outcome(db_session, trade.id, True, admin_user.id, now=T0)

        assert settled.status == TradeStatus.WON
        assert settled.outcome_source == OutcomeSource.ADMIN
        assert settled.settled_by == admin_user.id
        assert await AssetService.get_balance(db_session, funded_user.id) == Decimal("20200")


class TestTradeMode:

    @pytest.mark.integration
    async def test_defaults_to_manual(self, db_session, funded_user):
        assert await TradeService.get_trade_mode(db_session, funded_user.id) == TradeMode.MANUAL

    @pytest.mark.integration
    async def test_forcing_mode_settles_pending_trades(self, db_session, funded_user, admin_user):
        first = await _place(db_session, funded_user, minutes=1)
        second = await _place(db_session, funded_user, minutes=15, direction=TradeDirection.SHORT)

        settled = await TradeService.set_trade_mode(
            db_session, funded_user.id, TradeMode.ALWAYS_LOSE, admin_user.id, now=T0
        )

        assert {t.id for t in settled} == {first.id, second.id}
        assert all(t.status == TradeStatus.LOST for t in settled)
        assert all(t.outcome_source == OutcomeSource.MODE for t in settled)
        assert await AssetService.get_balance(db_session, funded_user.id) == Decimal("18000")

        entry = await db_session.scalar(
            select(SystemConfig).where(SystemConfig.key == f"user_trade_mode_{funded_user.id}")
        )
        assert entry.value == "always_lose"
        assert entry.updated_by == admin_user.id

    @pytest.mark.integration
    async def test_mode_applies_at_countdown(self, db_session, funded_user, admin_user):
        await TradeService.set_trade_mode(db_session, funded_user.id, TradeMode.ALWAYS_WIN, admin_user.id)
        trade = await _place(db_session, funded_user, minutes=1)

        settled = await TradeService.settle_trade(db_session, trade.id, now=T0 + timedelta(minutes=1), rng=lose)

        assert settled.status == TradeStatus.WON
        assert settled.outcome_source == OutcomeSource.MODE

    @pytest.mark.integration
    async def test_manual_mode_leaves_pending_trades(self, db_session, funded_user, admin_user):
        trade = await _place(db_session, funded_user)

        settled = await TradeService.set_trade_mode(db_session, funded_user.id, TradeMode.MANUAL, admin_user.id)

        assert settled == []
        assert (await TradeService.get_trade(db_session, trade.id)).status == TradeStatus.PENDING


class TestSweep:

    @pytest.mark.integration
    async def test_settles_only_due_trades(self, db_session, funded_user):
        due = await _place(db_session, funded_user, minutes=1)
        later = await _place(db_session, funded_user, minutes=15)

        summary = await TradeService.settle_due_trades(db_session, now=T0 + timedelta(minutes=5), rng=win)

        assert summary == {"checked": 1, "settled": 1, "won": 1, "lost": 0}
        assert (await TradeService.get_trade(db_session, due.id)).status == TradeStatus.WON
        assert (await TradeService.get_trade(db_session, later.id)).status == TradeStatus.PENDING
        assert await AssetService.get_balance(db_session, funded_user.id) == Decimal("19100")
