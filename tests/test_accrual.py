"""
Unit tests for loan accrual and repayment allocation
"""
import pytest
from decimal import Decimal
from datetime import datetime, timedelta, timezone

from tradevault.modules.loans.accrual import (
    accrue, calculate_owed, days_elapsed, is_overdue, days_overdue,
    remaining_owed, allocate_repayment, Remaining
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
PRINCIPAL = Decimal("10000")


class TestScenarios:

    @pytest.mark.unit
    def test_inside_grace_window(self):
        owed = calculate_owed(PRINCIPAL, NOW - timedelta(days=3), NOW)

        assert owed.interest == Decimal("0")
        assert owed.penalty == Decimal("0")
        assert owed.total == Decimal("10000")
        assert owed.days_elapsed == 3

    @pytest.mark.unit
    def test_interest_tier(self):
        owed = calculate_owed(PRINCIPAL, NOW - timedelta(days=10), NOW)

        assert owed.interest == Decimal("300")
        assert owed.penalty == Decimal("0")
        assert owed.total == Decimal("10300")
        assert owed.days_elapsed == 10

    @pytest.mark.unit
    def test_penalty_tier(self):
        owed = calculate_owed(PRINCIPAL, NOW - timedelta(days=20), NOW)

        assert owed.interest == Decimal("800")
        assert owed.penalty == Decimal("1000")
        assert owed.total == Decimal("11800")
        assert owed.days_elapsed == 20


class TestDaysElapsed:

    @pytest.mark.unit
    def test_day_of_borrowing_is_zero(self):
        assert days_elapsed(NOW, NOW) == 0
        assert days_elapsed(NOW - timedelta(hours=23, minutes=59), NOW) == 0

    @pytest.mark.unit
    def test_partial_days_truncate(self):
        assert days_elapsed(NOW - timedelta(days=7, hours=23), NOW) == 7
        assert accrue(PRINCIPAL, 7).interest == Decimal("0")

    @pytest.mark.unit
    def test_future_borrow_date_clamps_to_zero(self):
        assert days_elapsed(NOW + timedelta(days=2), NOW) == 0

    @pytest.mark.unit
    def test_naive_timestamps_are_utc(self):
        naive = (NOW - timedelta(days=9)).replace(tzinfo=None)
        assert days_elapsed(naive, NOW) == 9


class TestTierProperties:

    @pytest.mark.unit
    @pytest.mark.parametrize("days", range(0, 8))
    def test_grace_days_are_free(self, days):
        owed = accrue(PRINCIPAL, days)
        assert owed.interest == 0 and owed.penalty == 0

    @pytest.mark.unit
    @pytest.mark.parametrize("days", range(8, 16))
    def test_interest_days(self, days):
        owed = accrue(PRINCIPAL, days)
        assert owed.interest == PRINCIPAL * Decimal("0.01") * (days - 7)
        assert owed.penalty == 0

    @pytest.mark.unit
    @pytest.mark.parametrize("days", [16, 17, 30, 90])
    def test_penalty_days(self, days):
        owed = accrue(PRINCIPAL, days)
        assert owed.interest == PRINCIPAL * Decimal("0.08")
        assert owed.penalty == PRINCIPAL * Decimal("0.02") * (days - 15)

    @pytest.mark.unit
    def test_total_is_sum_and_non_decreasing(self):
        principal = Decimal("12345.67")
        previous = None
        for days in range(0, 60):
            owed = accrue(principal, days)
            assert owed.total == owed.principal + owed.interest + owed.penalty
            assert owed.total >= principal
            if previous is not None:
                assert owed.total >= previous
            previous = owed.total

    @pytest.mark.unit
    def test_overdue_boundary(self):
        assert not is_overdue(15)
        assert is_overdue(16)
        assert days_overdue(15) == 0
        assert days_overdue(20) == 5


class TestAllocation:

    @pytest.mark.unit
    def test_remaining_subtracts_paid_amounts(self):
        owed = accrue(PRINCIPAL, 20)
        remaining = remaining_owed(owed, Decimal("1000"), Decimal("300"), Decimal("0"))

        assert remaining.penalty == Decimal("0")
        assert remaining.interest == Decimal("500")
        assert remaining.principal == Decimal("10000")
        assert remaining.total == Decimal("10500")

    @pytest.mark.unit
    def test_penalty_then_interest_then_principal(self):
        remaining = Remaining(principal=Decimal("10000"), interest=Decimal("800"), penalty=Decimal("1000"))

        allocation = allocate_repayment(Decimal("1500"), remaining)

        assert allocation.penalty == Decimal("1000")
        assert allocation.interest == Decimal("500")
        assert allocation.principal == Decimal("0")
        assert allocation.unapplied == Decimal("0")

    @pytest.mark.unit
    def test_overpayment_is_unapplied(self):
        remaining = Remaining(principal=Decimal("100"), interest=Decimal("0"), penalty=Decimal("0"))

        allocation = allocate_repayment(Decimal("101"), remaining)

        assert allocation.principal == Decimal("100")
        assert allocation.applied == Decimal("100")
        assert allocation.unapplied == Decimal("1")
