"""
Unit Tests for ROIAccrualEngine
"""

from datetime import date
from decimal import Decimal

import pytest

from roi_ledger.domain.models import Cadence, InvestmentPlan
from roi_ledger.domain.services.roi_accrual_engine import ROIAccrualEngine


def _plan(monthly="5", annual="60", cadence=Cadence.MONTHLY, duration=12):
    return InvestmentPlan(
        id=1,
        name="Gold",
        min_amount=Decimal("1000"),
        max_amount=Decimal("50000"),
        monthly_rate=Decimal(monthly),
        annual_rate=Decimal(annual),
        duration_in_periods=duration,
        cadence=cadence,
    )


class TestSnapshot:
    def test_monthly_uses_monthly_rate(self):
        snapshot = ROIAccrualEngine().snapshot(Decimal("2000"), _plan(), Cadence.MONTHLY)
        assert snapshot.rate == Decimal("5")
        assert snapshot.period_return_amount == Decimal("100.00")

    def test_annual_uses_annual_rate(self):
        snapshot = ROIAccrualEngine().snapshot(Decimal("2000"), _plan(), Cadence.ANNUALLY)
        assert snapshot.rate == Decimal("60")
        assert snapshot.period_return_amount == Decimal("1200.00")

    def test_rounds_half_up_to_cents(self):
        snapshot = ROIAccrualEngine().snapshot(Decimal("1234.57"), _plan(monthly="2.5"), Cadence.MONTHLY)
        # 1234.57 * 2.5 / 100 = 30.86425
        assert snapshot.period_return_amount == Decimal("30.86")

        snapshot = ROIAccrualEngine().snapshot(Decimal("1001"), _plan(monthly="1.25"), Cadence.MONTHLY)
        # 1001 * 1.25 / 100 = 12.5125
        assert snapshot.period_return_amount == Decimal("12.51")

    def test_zero_rate_gives_zero_payout(self):
        snapshot = ROIAccrualEngine().snapshot(Decimal("5000"), _plan(monthly="0"), Cadence.MONTHLY)
        assert snapshot.period_return_amount == Decimal("0.00")

    def test_rejects_non_positive_amount(self):
        with pytest.raises(ValueError):
            ROIAccrualEngine().snapshot(Decimal("0"), _plan(), Cadence.MONTHLY)


class TestNextDate:
    def test_monthly_adds_one_month(self):
        assert ROIAccrualEngine().next_date(Cadence.MONTHLY, date(2026, 3, 15)) == date(2026, 4, 15)

    def test_monthly_clamps_to_month_end(self):
        engine = ROIAccrualEngine()
        assert engine.next_date(Cadence.MONTHLY, date(2026, 1, 31)) == date(2026, 2, 28)
        assert engine.next_date(Cadence.MONTHLY, date(2028, 1, 31)) == date(2028, 2, 29)

    def test_monthly_rolls_over_year(self):
        assert ROIAccrualEngine().next_date(Cadence.MONTHLY, date(2026, 12, 10)) == date(2027, 1, 10)

    def test_annual_adds_one_year(self):
        engine = ROIAccrualEngine()
        assert engine.next_date(Cadence.ANNUALLY, date(2026, 6, 1)) == date(2027, 6, 1)
        assert engine.next_date(Cadence.ANNUALLY, date(2028, 2, 29)) == date(2029, 2, 28)
