"""
Repository for Investment Plans
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.domain.models import Cadence, InvestmentPlan
from roi_ledger.infrastructure.db.models import CadenceEnum, InvestmentPlanModel


class InvestmentPlanRepository:
    """CRUD for investment plans"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, plan_id: int) -> Optional[InvestmentPlan]:
        result = await self.session.execute(
            select(InvestmentPlanModel)
            .where(InvestmentPlanModel.id == plan_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def get_active(self, plan_id: int) -> Optional[InvestmentPlan]:
        plan = await self.get(plan_id)
        if plan is None or not plan.active:
            return None
        return plan

    async def list_active(self) -> List[InvestmentPlan]:
        result = await self.session.execute(
            select(InvestmentPlanModel)
            .where(InvestmentPlanModel.active.is_(True))
            .order_by(InvestmentPlanModel.min_amount)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def get_by_name(self, name: str) -> Optional[InvestmentPlan]:
        result = await self.session.execute(
            select(InvestmentPlanModel).where(InvestmentPlanModel.name == name)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def create(
        self,
        name: str,
        min_amount: Decimal,
        max_amount: Optional[Decimal],
        monthly_rate: Decimal,
        annual_rate: Decimal,
        duration_in_periods: int,
        cadence: Cadence,
        description: Optional[str] = None,
    ) -> InvestmentPlan:
        model = InvestmentPlanModel(
            name=name,
            description=description,
            min_amount=min_amount,
            max_amount=max_amount,
            monthly_rate=monthly_rate,
            annual_rate=annual_rate,
            duration_in_periods=duration_in_periods,
            cadence=CadenceEnum(cadence.value),
            active=True,
        )
        self.session.add(model)
        await self.session.flush()
        return self._to_domain(model)

    async def update_rates(
        self,
        plan_id: int,
        monthly_rate: Decimal,
        annual_rate: Decimal,
    ) -> bool:
        result = await self.session.execute(
            update(InvestmentPlanModel)
            .where(InvestmentPlanModel.id == plan_id)
            .values(monthly_rate=monthly_rate, annual_rate=annual_rate)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def _to_domain(model: InvestmentPlanModel) -> InvestmentPlan:
        return InvestmentPlan(
            id=model.id,
            name=model.name,
            description=model.description,
            min_amount=Decimal(str(model.min_amount)),
            max_amount=Decimal(str(model.max_amount)) if model.max_amount is not None else None,
            monthly_rate=Decimal(str(model.monthly_rate)),
            annual_rate=Decimal(str(model.annual_rate)),
            duration_in_periods=model.duration_in_periods,
            cadence=Cadence(model.cadence.value),
            active=bool(model.active),
        )
