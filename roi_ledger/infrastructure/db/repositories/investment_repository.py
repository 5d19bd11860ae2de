"""
Investment Repository
State transitions are conditional updates on the current status so two
writers can never both move the same row.
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.domain.models import Cadence, Investment, InvestmentStatus
from roi_ledger.infrastructure.db.models import (
    CadenceEnum,
    InvestmentModel,
    InvestmentStatusEnum,
)
from roi_ledger.utils.time import now_utc_naive


class InvestmentRepository:
    """Repository for Investment"""

    def __init__(self, session: AsyncSession):
        """Initialize with database session"""
        self.session = session

    async def get(self, investment_id: int) -> Optional[Investment]:
        result = await self.session.execute(
            select(InvestmentModel)
            .where(InvestmentModel.id == investment_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def get_for_user_with_status(
        self,
        user_id: int,
        status: InvestmentStatus,
    ) -> Optional[Investment]:
        result = await self.session.execute(
            select(InvestmentModel)
            .where(
                InvestmentModel.user_id == user_id,
                InvestmentModel.status == InvestmentStatusEnum(status.value),
            )
            .order_by(InvestmentModel.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def list_for_user(self, user_id: int) -> List[Investment]:
        result = await self.session.execute(
            select(InvestmentModel)
            .where(InvestmentModel.user_id == user_id)
            .order_by(InvestmentModel.created_at.desc(), InvestmentModel.id.desc())
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def list_all(self, limit: int = 500) -> List[Investment]:
        result = await self.session.execute(
            select(InvestmentModel).order_by(InvestmentModel.id.desc()).limit(limit)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def list_due(self, as_of: date) -> List[Investment]:
        """Active investments whose next payout date has arrived"""
        result = await self.session.execute(
            select(InvestmentModel)
            .where(
                InvestmentModel.status == InvestmentStatusEnum.ACTIVE,
                InvestmentModel.next_payout_date.is_not(None),
                InvestmentModel.next_payout_date <= as_of,
            )
            .order_by(InvestmentModel.next_payout_date, InvestmentModel.id)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def create_pending(
        self,
        user_id: int,
        plan_id: int,
        amount: Decimal,
        cadence: Cadence,
        total_payouts: int,
    ) -> Investment:
        model = InvestmentModel(
            user_id=user_id,
            plan_id=plan_id,
            amount=amount,
            cadence=CadenceEnum(cadence.value),
            total_payouts=total_payouts,
            payouts_made=0,
            status=InvestmentStatusEnum.PENDING,
        )
        self.session.add(model)
        await self.session.flush()
        return self._to_domain(model)

    async def update_pending_terms(
        self,
        investment_id: int,
        plan_id: int,
        amount: Decimal,
        cadence: Cadence,
        total_payouts: int,
    ) -> bool:
        result = await self.session.execute(
            update(InvestmentModel)
            .where(
                InvestmentModel.id == investment_id,
                InvestmentModel.status == InvestmentStatusEnum.PENDING,
            )
            .values(
                plan_id=plan_id,
                amount=amount,
                cadence=CadenceEnum(cadence.value),
                total_payouts=total_payouts,
                updated_at=now_utc_naive(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def transition(
        self,
        investment_id: int,
        from_status: InvestmentStatus,
        to_status: InvestmentStatus,
        **values,
    ) -> bool:
        """
        Compare-and-set the status. Returns False when the row was not in
        ``from_status`` (or does not exist).
        """
        result = await self.session.execute(
            update(InvestmentModel)
            .where(
                InvestmentModel.id == investment_id,
                InvestmentModel.status == InvestmentStatusEnum(from_status.value),
            )
            .values(
                status=InvestmentStatusEnum(to_status.value),
                updated_at=now_utc_naive(),
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def increment_payouts(self, investment_id: int) -> bool:
        """
        payouts_made += 1 for an active investment that still has payouts left.
        """
        result = await self.session.execute(
            update(InvestmentModel)
            .where(
                InvestmentModel.id == investment_id,
                InvestmentModel.status == InvestmentStatusEnum.ACTIVE,
                InvestmentModel.payouts_made < InvestmentModel.total_payouts,
            )
            .values(
                payouts_made=InvestmentModel.payouts_made + 1,
                updated_at=now_utc_naive(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_next_payout_date(self, investment_id: int, next_payout_date: Optional[date]) -> None:
        await self.session.execute(
            update(InvestmentModel)
            .where(InvestmentModel.id == investment_id)
            .values(next_payout_date=next_payout_date, updated_at=now_utc_naive())
            .execution_options(synchronize_session=False)
        )

    async def get_total_active_amount(self) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(InvestmentModel.amount), 0))
            .where(InvestmentModel.status == InvestmentStatusEnum.ACTIVE)
        )
        total = result.scalar()
        return Decimal(str(total)) if total else Decimal("0")

    async def count_by_status(self) -> dict:
        result = await self.session.execute(
            select(InvestmentModel.status, func.count(InvestmentModel.id))
            .group_by(InvestmentModel.status)
        )
        return {InvestmentStatus(status.value): count for status, count in result.all()}

    @staticmethod
    def _to_domain(model: InvestmentModel) -> Investment:
        return Investment(
            id=model.id,
            user_id=model.user_id,
            plan_id=model.plan_id,
            amount=Decimal(str(model.amount)),
            cadence=Cadence(model.cadence.value),
            total_payouts=model.total_payouts,
            payouts_made=model.payouts_made,
            status=InvestmentStatus(model.status.value),
            next_payout_date=model.next_payout_date,
            start_date=model.start_date,
            created_at=model.created_at,
        )
