"""
ROI ACCRUAL ENGINE

RESPONSIBILITIES:
- Pick the plan rate for a cadence
- Compute the fixed per-period return amount
- Compute the next payout date

RULES:
- Pure computation, no persistence
- The snapshot is taken once at activation; later plan edits never reach it
"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from roi_ledger.domain.models import Cadence, InvestmentPlan, RoiSnapshot
from roi_ledger.utils.time import add_months, add_years

_CENT = Decimal("0.01")


class ROIAccrualEngine:
    """Return-rate snapshot and payout calendar"""

    def snapshot(self, amount: Decimal, plan: InvestmentPlan, cadence: Cadence) -> RoiSnapshot:
        """
        Freeze the rate and per-period payout for an investment.

        Args:
            amount: Invested capital
            plan: Plan terms at activation time
            cadence: Payout cadence chosen by the investor

        Returns:
            RoiSnapshot with rate and period_return_amount (2dp, half-up)
        """
        if amount <= Decimal("0"):
            raise ValueError("Investment amount must be positive")

        rate = plan.monthly_rate if cadence == Cadence.MONTHLY else plan.annual_rate
        if rate < Decimal("0"):
            raise ValueError("Plan rate cannot be negative")

        period_return_amount = (amount * rate / Decimal("100")).quantize(_CENT, rounding=ROUND_HALF_UP)
        return RoiSnapshot(rate=rate, period_return_amount=period_return_amount)

    def next_date(self, cadence: Cadence, from_date: date) -> date:
        """from + 1 month (monthly) or + 1 year (annually)"""
        if cadence == Cadence.ANNUALLY:
            return add_years(from_date, 1)
        return add_months(from_date, 1)
