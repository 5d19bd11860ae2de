"""
Investment Plan API Routes
"""

from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.api.schemas import PlanResponse
from roi_ledger.domain.models import Cadence
from roi_ledger.domain.services.plan_catalog import PlanCatalog
from roi_ledger.infrastructure.db.database import get_db
from roi_ledger.infrastructure.db.repositories.plan_repository import InvestmentPlanRepository
from roi_ledger.infrastructure.db.unit_of_work import transactional

router = APIRouter()


class CreatePlanRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    min_amount: Decimal = Field(..., gt=0)
    max_amount: Optional[Decimal] = Field(None, gt=0, description="Omit for no upper bound")
    monthly_rate: Decimal = Field(..., ge=0, le=100, description="Percent per month")
    annual_rate: Decimal = Field(..., ge=0, le=100, description="Percent per year")
    duration_in_periods: int = Field(..., ge=1)
    cadence: Cadence = Cadence.MONTHLY


class UpdateRatesRequest(BaseModel):
    monthly_rate: Decimal = Field(..., ge=0, le=100)
    annual_rate: Decimal = Field(..., ge=0, le=100)


@router.get("", response_model=List[PlanResponse])
async def list_plans(db: AsyncSession = Depends(get_db)):
    catalog = PlanCatalog(InvestmentPlanRepository(db))
    return [PlanResponse.from_domain(p) for p in await catalog.list_active_plans()]


@router.get("/{plan_id}", response_model=PlanResponse)
async def get_plan(plan_id: int, db: AsyncSession = Depends(get_db)):
    catalog = PlanCatalog(InvestmentPlanRepository(db))
    return PlanResponse.from_domain(await catalog.get_active_plan(plan_id))


@router.post("", response_model=PlanResponse, status_code=201)
async def create_plan(request: CreatePlanRequest, db: AsyncSession = Depends(get_db)):
    catalog = PlanCatalog(InvestmentPlanRepository(db))
    async with transactional(db):
        plan = await catalog.create_plan(**request.model_dump())
    return PlanResponse.from_domain(plan)


@router.patch("/{plan_id}/rates", response_model=PlanResponse)
async def update_rates(plan_id: int, request: UpdateRatesRequest, db: AsyncSession = Depends(get_db)):
    """New rates apply to future activations only"""
    catalog = PlanCatalog(InvestmentPlanRepository(db))
    async with transactional(db):
        plan = await catalog.update_rates(plan_id, request.monthly_rate, request.annual_rate)
    return PlanResponse.from_domain(plan)
