"""
Return Repository
One row per (investment, payout date). Creation is insert-or-ignore on that
key, so overlapping scheduler ticks or several scheduler processes can race
without producing duplicates.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.domain.models import ReturnRecord, ReturnStatus
from roi_ledger.infrastructure.db.models import ReturnModel, ReturnStatusEnum
from roi_ledger.utils.time import now_utc_naive


class ReturnRepository:
    """Repository for scheduled payouts"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, return_id: int) -> Optional[ReturnRecord]:
        result = await self.session.execute(
            select(ReturnModel)
            .where(ReturnModel.id == return_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def get_for_period(self, investment_id: int, payout_date: date) -> Optional[ReturnRecord]:
        result = await self.session.execute(
            select(ReturnModel)
            .where(
                ReturnModel.investment_id == investment_id,
                ReturnModel.payout_date == payout_date,
            )
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def find_or_create(
        self,
        user_id: int,
        investment_id: int,
        payout_date: date,
        amount: Decimal,
    ) -> Tuple[ReturnRecord, bool]:
        """
        Returns (record, created). ``created`` is False when the period
        already had a row; the existing amount is left untouched.
        """
        values = dict(
            user_id=user_id,
            investment_id=investment_id,
            payout_date=payout_date,
            amount=amount,
            status=ReturnStatusEnum.PENDING,
            created_at=now_utc_naive(),
        )
        stmt = self._insert()(ReturnModel).values(**values).on_conflict_do_nothing(
            index_elements=["investment_id", "payout_date"]
        )
        result = await self.session.execute(stmt)
        created = bool(result.rowcount)

        record = await self.get_for_period(investment_id, payout_date)
        return record, created

    async def promote_pending_to_due(self, as_of: date) -> int:
        result = await self.session.execute(
            update(ReturnModel)
            .where(
                ReturnModel.status == ReturnStatusEnum.PENDING,
                ReturnModel.payout_date <= as_of,
            )
            .values(status=ReturnStatusEnum.DUE)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def mark_paid(self, return_id: int, paid_at: datetime) -> bool:
        """
        Compare-and-set to paid. False means another settlement got there first.
        """
        result = await self.session.execute(
            update(ReturnModel)
            .where(
                ReturnModel.id == return_id,
                ReturnModel.status != ReturnStatusEnum.PAID,
            )
            .values(status=ReturnStatusEnum.PAID, paid_at=paid_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_for_user(self, user_id: int) -> List[ReturnRecord]:
        result = await self.session.execute(
            select(ReturnModel)
            .where(ReturnModel.user_id == user_id)
            .order_by(ReturnModel.payout_date, ReturnModel.id)
            .execution_options(populate_existing=True)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def list_for_investment(self, investment_id: int) -> List[ReturnRecord]:
        result = await self.session.execute(
            select(ReturnModel)
            .where(ReturnModel.investment_id == investment_id)
            .order_by(ReturnModel.payout_date, ReturnModel.id)
            .execution_options(populate_existing=True)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def list_all(self, status: Optional[ReturnStatus] = None, limit: int = 500) -> List[ReturnRecord]:
        query = select(ReturnModel)
        if status is not None:
            query = query.where(ReturnModel.status == ReturnStatusEnum(status.value))
        result = await self.session.execute(
            query.order_by(ReturnModel.payout_date.desc(), ReturnModel.id.desc()).limit(limit)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def get_total_paid(self) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(ReturnModel.amount), 0))
            .where(ReturnModel.status == ReturnStatusEnum.PAID)
        )
        total = result.scalar()
        return Decimal(str(total)) if total else Decimal("0")

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert
        if dialect == "sqlite":
            return sqlite_insert
        raise RuntimeError(f"Unsupported database dialect for returns: {dialect}")

    @staticmethod
    def _to_domain(model: ReturnModel) -> ReturnRecord:
        return ReturnRecord(
            id=model.id,
            user_id=model.user_id,
            investment_id=model.investment_id,
            amount=Decimal(str(model.amount)),
            payout_date=model.payout_date,
            status=ReturnStatus(model.status.value),
            paid_at=model.paid_at,
        )
