"""
Investment API Routes
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.api.schemas import InvestmentResponse
from roi_ledger.domain.models import Cadence
from roi_ledger.domain.services.investment_manager import InvestmentManager
from roi_ledger.infrastructure.db.database import get_db
from roi_ledger.services.portfolio_service import PortfolioService

router = APIRouter()


class SelectPlanRequest(BaseModel):
    user_id: int
    plan_id: int
    amount: Decimal = Field(..., gt=0)
    cadence: Optional[Cadence] = Field(None, description="Defaults to the plan's cadence")


@router.post("/select", response_model=InvestmentResponse)
async def select_plan(request: SelectPlanRequest, db: AsyncSession = Depends(get_db)):
    """Create or update the user's pending investment"""
    investment = await InvestmentManager(db).select_plan(
        user_id=request.user_id,
        plan_id=request.plan_id,
        amount=request.amount,
        cadence=request.cadence,
    )
    return InvestmentResponse.from_domain(investment)


@router.post("/{investment_id}/cancel", response_model=InvestmentResponse)
async def cancel_investment(investment_id: int, db: AsyncSession = Depends(get_db)):
    return InvestmentResponse.from_domain(await InvestmentManager(db).cancel(investment_id))


@router.get("/user/{user_id}")
async def list_investments(user_id: int, db: AsyncSession = Depends(get_db)):
    investments = await PortfolioService(db).list_investments(user_id)
    return {"user_id": user_id, "count": len(investments), "investments": investments}
