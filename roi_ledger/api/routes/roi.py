"""
ROI API Routes
Investor views of return snapshots and scheduled payouts
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.infrastructure.db.database import get_db
from roi_ledger.services.portfolio_service import PortfolioService

router = APIRouter()


@router.get("/user/{user_id}")
async def list_roi(user_id: int, db: AsyncSession = Depends(get_db)):
    """ROI records with plan name, remaining payouts and next payout date"""
    records = await PortfolioService(db).list_roi(user_id)
    return {"user_id": user_id, "count": len(records), "roi": records}


@router.get("/returns/user/{user_id}")
async def list_returns(user_id: int, db: AsyncSession = Depends(get_db)):
    returns = await PortfolioService(db).list_returns(user_id)
    return {"user_id": user_id, "count": len(returns), "returns": returns}
