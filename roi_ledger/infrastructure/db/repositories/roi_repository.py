"""
ROI Repository
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.domain.models import RoiRecord, RoiSnapshot
from roi_ledger.infrastructure.db.models import RoiModel
from roi_ledger.utils.time import now_utc_naive


class RoiRepository:
    """Repository for per-investment ROI snapshots"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_for(self, user_id: int, investment_id: int) -> Optional[RoiRecord]:
        result = await self.session.execute(
            select(RoiModel)
            .where(RoiModel.user_id == user_id, RoiModel.investment_id == investment_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def get_or_create(
        self,
        user_id: int,
        investment_id: int,
        snapshot: RoiSnapshot,
    ) -> RoiRecord:
        """
        Insert the snapshot unless a row for (user, investment) exists.
        An existing row is returned as-is: its rate is never recomputed.
        """
        existing = await self.get_for(user_id, investment_id)
        if existing is not None:
            return existing

        model = RoiModel(
            user_id=user_id,
            investment_id=investment_id,
            rate=snapshot.rate,
            period_return_amount=snapshot.period_return_amount,
            total_paid=Decimal("0"),
            payouts_made=0,
        )
        self.session.add(model)
        await self.session.flush()
        return self._to_domain(model)

    async def record_payout(self, roi_id: int, amount: Decimal, paid_at: datetime) -> bool:
        result = await self.session.execute(
            update(RoiModel)
            .where(RoiModel.id == roi_id)
            .values(
                total_paid=RoiModel.total_paid + amount,
                payouts_made=RoiModel.payouts_made + 1,
                last_payout_date=paid_at,
                updated_at=now_utc_naive(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_for_user(self, user_id: int) -> List[RoiRecord]:
        result = await self.session.execute(
            select(RoiModel)
            .where(RoiModel.user_id == user_id)
            .order_by(RoiModel.id)
            .execution_options(populate_existing=True)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def list_all(self, limit: int = 500) -> List[RoiRecord]:
        result = await self.session.execute(
            select(RoiModel).order_by(RoiModel.id.desc()).limit(limit)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    @staticmethod
    def _to_domain(model: RoiModel) -> RoiRecord:
        return RoiRecord(
            id=model.id,
            user_id=model.user_id,
            investment_id=model.investment_id,
            rate=Decimal(str(model.rate)),
            period_return_amount=Decimal(str(model.period_return_amount)),
            total_paid=Decimal(str(model.total_paid)),
            payouts_made=model.payouts_made,
            last_payout_date=model.last_payout_date,
        )
