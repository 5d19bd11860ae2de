"""
Plan catalog: read-mostly store of investment plan terms.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Protocol

from roi_ledger.core.errors import ConflictError, NotFoundError, ValidationError
from roi_ledger.domain.models import Cadence, InvestmentPlan

logger = logging.getLogger(__name__)


class PlanRepository(Protocol):
    """Protocol for plan data access - ASYNC"""

    async def get(self, plan_id: int) -> Optional[InvestmentPlan]:
        ...

    async def get_active(self, plan_id: int) -> Optional[InvestmentPlan]:
        ...

    async def get_by_name(self, name: str) -> Optional[InvestmentPlan]:
        ...

    async def list_active(self) -> List[InvestmentPlan]:
        ...

    async def create(self, **fields) -> InvestmentPlan:
        ...

    async def update_rates(self, plan_id: int, monthly_rate: Decimal, annual_rate: Decimal) -> bool:
        ...


class PlanCatalog:
    """Lookup and administration of investment plans"""

    def __init__(self, plan_repo: PlanRepository):
        self.plan_repo = plan_repo

    async def get_active_plan(self, plan_id: int) -> InvestmentPlan:
        plan = await self.plan_repo.get_active(plan_id)
        if plan is None:
            raise NotFoundError(f"Investment plan {plan_id} not found", reason="plan_not_found")
        return plan

    async def get_plan(self, plan_id: int) -> InvestmentPlan:
        """Any plan, active or not (used for already-selected investments)"""
        plan = await self.plan_repo.get(plan_id)
        if plan is None:
            raise NotFoundError(f"Investment plan {plan_id} not found", reason="plan_not_found")
        return plan

    async def list_active_plans(self) -> List[InvestmentPlan]:
        return await self.plan_repo.list_active()

    async def create_plan(
        self,
        name: str,
        min_amount: Decimal,
        max_amount: Optional[Decimal],
        monthly_rate: Decimal,
        annual_rate: Decimal,
        duration_in_periods: int,
        cadence: Cadence = Cadence.MONTHLY,
        description: Optional[str] = None,
    ) -> InvestmentPlan:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Plan name is required", reason="plan_name_required")
        if min_amount <= 0:
            raise ValidationError("Minimum amount must be positive", reason="invalid_plan_bounds")
        if max_amount is not None and max_amount < min_amount:
            raise ValidationError("Maximum amount is below the minimum", reason="invalid_plan_bounds")
        self._check_rates(monthly_rate, annual_rate)
        if duration_in_periods < 1:
            raise ValidationError("Duration must be at least one period", reason="invalid_plan_duration")
        if await self.plan_repo.get_by_name(name) is not None:
            raise ConflictError(f"A plan named '{name}' already exists", reason="plan_name_taken")

        plan = await self.plan_repo.create(
            name=name,
            min_amount=min_amount,
            max_amount=max_amount,
            monthly_rate=monthly_rate,
            annual_rate=annual_rate,
            duration_in_periods=duration_in_periods,
            cadence=cadence,
            description=description,
        )
        logger.info(f"Plan created: id={plan.id} name={plan.name}")
        return plan

    async def update_rates(self, plan_id: int, monthly_rate: Decimal, annual_rate: Decimal) -> InvestmentPlan:
        """
        Change the advertised rates. Existing ROI snapshots and Returns keep
        the rate they were created with.
        """
        self._check_rates(monthly_rate, annual_rate)
        if not await self.plan_repo.update_rates(plan_id, monthly_rate, annual_rate):
            raise NotFoundError(f"Investment plan {plan_id} not found", reason="plan_not_found")
        logger.info(f"Plan rates updated: id={plan_id} monthly={monthly_rate} annual={annual_rate}")
        return await self.get_plan(plan_id)

    @staticmethod
    def _check_rates(monthly_rate: Decimal, annual_rate: Decimal) -> None:
        for rate in (monthly_rate, annual_rate):
            if rate < 0 or rate > 100:
                raise ValidationError("Rates must be between 0 and 100 percent", reason="invalid_plan_rate")
