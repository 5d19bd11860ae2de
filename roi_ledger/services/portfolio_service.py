"""
PORTFOLIO SERVICE

Read models for investors and admins. No writes.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.domain.models import InvestmentStatus, PaymentType, ReturnStatus
from roi_ledger.infrastructure.db.repositories.investment_repository import InvestmentRepository
from roi_ledger.infrastructure.db.repositories.payment_repository import PaymentRepository
from roi_ledger.infrastructure.db.repositories.plan_repository import InvestmentPlanRepository
from roi_ledger.infrastructure.db.repositories.return_repository import ReturnRepository
from roi_ledger.infrastructure.db.repositories.roi_repository import RoiRepository
from roi_ledger.utils.time import to_iso


def _money(value: Decimal) -> str:
    return str(value.quantize(Decimal("0.01")))


class PortfolioService:
    def __init__(self, session: AsyncSession):
        self.investment_repo = InvestmentRepository(session)
        self.plan_repo = InvestmentPlanRepository(session)
        self.roi_repo = RoiRepository(session)
        self.return_repo = ReturnRepository(session)
        self.payment_repo = PaymentRepository(session)
        self._plan_names: Dict[int, str] = {}

    async def _plan_name(self, plan_id: int) -> Optional[str]:
        if plan_id not in self._plan_names:
            plan = await self.plan_repo.get(plan_id)
            self._plan_names[plan_id] = plan.name if plan else None
        return self._plan_names[plan_id]

    async def _investment_view(self, investment) -> Dict[str, Any]:
        return {
            "id": investment.id,
            "user_id": investment.user_id,
            "plan_id": investment.plan_id,
            "plan_name": await self._plan_name(investment.plan_id),
            "amount": _money(investment.amount),
            "cadence": investment.cadence.value,
            "status": investment.status.value,
            "total_payouts": investment.total_payouts,
            "payouts_made": investment.payouts_made,
            "remaining_payouts": investment.remaining_payouts,
            "start_date": to_iso(investment.start_date),
            "next_payout_date": to_iso(investment.next_payout_date),
        }

    @staticmethod
    def _return_view(record) -> Dict[str, Any]:
        return {
            "id": record.id,
            "user_id": record.user_id,
            "investment_id": record.investment_id,
            "amount": _money(record.amount),
            "payout_date": to_iso(record.payout_date),
            "status": record.status.value,
            "paid_at": to_iso(record.paid_at),
        }

    async def _roi_view(self, roi) -> Dict[str, Any]:
        investment = await self.investment_repo.get(roi.investment_id)
        view = {
            "id": roi.id,
            "user_id": roi.user_id,
            "investment_id": roi.investment_id,
            "rate": str(roi.rate),
            "period_return_amount": _money(roi.period_return_amount),
            "total_paid": _money(roi.total_paid),
            "payouts_made": roi.payouts_made,
            "last_payout_date": to_iso(roi.last_payout_date),
            "plan_name": None,
            "investment_status": None,
            "remaining_payouts": None,
            "next_payout_date": None,
        }
        if investment is not None:
            view.update(
                plan_name=await self._plan_name(investment.plan_id),
                investment_status=investment.status.value,
                remaining_payouts=investment.remaining_payouts,
                next_payout_date=to_iso(investment.next_payout_date),
            )
        return view

    # ------------------------------------------------------------------
    # Investor views
    # ------------------------------------------------------------------

    async def list_investments(self, user_id: int) -> List[Dict[str, Any]]:
        return [await self._investment_view(i) for i in await self.investment_repo.list_for_user(user_id)]

    async def list_returns(self, user_id: int) -> List[Dict[str, Any]]:
        return [self._return_view(r) for r in await self.return_repo.list_for_user(user_id)]

    async def list_roi(self, user_id: int) -> List[Dict[str, Any]]:
        return [await self._roi_view(r) for r in await self.roi_repo.list_for_user(user_id)]

    # ------------------------------------------------------------------
    # Admin views
    # ------------------------------------------------------------------

    async def list_all_investments(self, limit: int = 500) -> List[Dict[str, Any]]:
        return [await self._investment_view(i) for i in await self.investment_repo.list_all(limit)]

    async def list_all_returns(self, status: Optional[ReturnStatus] = None, limit: int = 500) -> List[Dict[str, Any]]:
        return [self._return_view(r) for r in await self.return_repo.list_all(status, limit)]

    async def list_all_roi(self, limit: int = 500) -> List[Dict[str, Any]]:
        return [await self._roi_view(r) for r in await self.roi_repo.list_all(limit)]

    async def dashboard_stats(self) -> Dict[str, Any]:
        """
        Totals for the admin dashboard.

        completion_rate = completed / (active + completed), in percent.
        """
        total_deposits = await self.payment_repo.get_total_success(
            [PaymentType.REGISTRATION, PaymentType.INVESTMENT]
        )
        total_active = await self.investment_repo.get_total_active_amount()
        total_roi_paid = await self.return_repo.get_total_paid()
        counts = await self.investment_repo.count_by_status()

        active = counts.get(InvestmentStatus.ACTIVE, 0)
        completed = counts.get(InvestmentStatus.COMPLETED, 0)
        started = active + completed
        completion_rate = (
            (Decimal(completed) * 100 / Decimal(started)).quantize(Decimal("0.01"))
            if started
            else Decimal("0.00")
        )

        return {
            "total_deposits": _money(total_deposits),
            "total_active_investment": _money(total_active),
            "total_roi_paid": _money(total_roi_paid),
            "completion_rate": str(completion_rate),
            "investments_by_status": {status.value: count for status, count in counts.items()},
        }
