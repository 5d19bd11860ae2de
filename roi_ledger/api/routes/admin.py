"""
Admin API Routes

- Release a due return (withdraw)
- Run the payout tick on demand
- Listings and dashboard
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.api.dependencies import get_notifier
from roi_ledger.domain.models import ReturnStatus
from roi_ledger.domain.services.payout_scheduler import PayoutScheduler
from roi_ledger.domain.services.ports import ReceiptNotifier
from roi_ledger.domain.services.settlement_service import SettlementService
from roi_ledger.infrastructure.db.database import get_db
from roi_ledger.services.portfolio_service import PortfolioService
from roi_ledger.utils.time import to_iso

router = APIRouter()


class WithdrawRequest(BaseModel):
    user_id: int
    investment_id: int
    return_id: int


class WithdrawResponse(BaseModel):
    payment_id: int
    payment_reference: str
    return_id: int
    amount: Decimal
    currency: str
    payout_method: str
    payout_details: str
    next_payout_date: Optional[date] = None
    investment_status: str


class TickRequest(BaseModel):
    as_of: Optional[date] = None


@router.post("/withdraw", response_model=WithdrawResponse)
async def withdraw_roi(
    request: WithdrawRequest,
    db: AsyncSession = Depends(get_db),
    notifier: ReceiptNotifier = Depends(get_notifier),
):
    result = await SettlementService(db, notifier=notifier).withdraw(
        user_id=request.user_id,
        investment_id=request.investment_id,
        return_id=request.return_id,
    )
    return WithdrawResponse(
        payment_id=result.payment_id,
        payment_reference=result.payment_reference,
        return_id=result.return_id,
        amount=result.amount,
        currency=result.currency,
        payout_method=result.payout_method.value,
        payout_details=result.payout_details,
        next_payout_date=result.next_payout_date,
        investment_status=result.investment_status.value,
    )


@router.post("/scheduler/tick")
async def run_tick(request: Optional[TickRequest] = None, db: AsyncSession = Depends(get_db)):
    as_of = request.as_of if request else None
    summary = await PayoutScheduler(db).run_tick(as_of)
    return {
        "run_date": to_iso(summary.run_date),
        "returns_created": summary.returns_created,
        "returns_promoted": summary.returns_promoted,
        "investments_skipped": summary.investments_skipped,
    }


@router.get("/dashboard")
async def dashboard(db: AsyncSession = Depends(get_db)):
    return await PortfolioService(db).dashboard_stats()


@router.get("/investments")
async def all_investments(limit: int = Query(500, ge=1, le=5000), db: AsyncSession = Depends(get_db)):
    investments = await PortfolioService(db).list_all_investments(limit)
    return {"count": len(investments), "investments": investments}


@router.get("/returns")
async def all_returns(
    status: Optional[ReturnStatus] = None,
    limit: int = Query(500, ge=1, le=5000),
    db: AsyncSession = Depends(get_db),
):
    returns = await PortfolioService(db).list_all_returns(status, limit)
    return {"count": len(returns), "returns": returns}


@router.get("/roi")
async def all_roi(limit: int = Query(500, ge=1, le=5000), db: AsyncSession = Depends(get_db)):
    records = await PortfolioService(db).list_all_roi(limit)
    return {"count": len(records), "roi": records}
