"""
Payment Repository
Reference-keyed ledger of money movements. Status changes go through
``transition`` which only matches rows still in the expected state.
"""

from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select, update, func, exists
from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.domain.models import (
    Payment,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
)
from roi_ledger.infrastructure.db.models import (
    PaymentMethodEnum,
    PaymentModel,
    PaymentStatusEnum,
    PaymentTypeEnum,
)


class PaymentRepository:
    """Repository for Payment"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        reference: str,
        user_id: int,
        amount: Decimal,
        currency: str,
        method: PaymentMethod,
        payment_type: PaymentType,
        status: PaymentStatus = PaymentStatus.PENDING,
        investment_id: Optional[int] = None,
        confirmed_at=None,
    ) -> Payment:
        model = PaymentModel(
            reference=reference,
            user_id=user_id,
            investment_id=investment_id,
            amount=amount,
            currency=currency,
            method=PaymentMethodEnum(method.value),
            type=PaymentTypeEnum(payment_type.value),
            status=PaymentStatusEnum(status.value),
            confirmed_at=confirmed_at,
        )
        self.session.add(model)
        await self.session.flush()
        return self._to_domain(model)

    async def get(self, payment_id: int) -> Optional[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.id == payment_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def get_by_reference(self, reference: str) -> Optional[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.reference == reference)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def set_checkout_url(self, payment_id: int, checkout_url: str) -> None:
        await self.session.execute(
            update(PaymentModel)
            .where(PaymentModel.id == payment_id)
            .values(checkout_url=checkout_url)
            .execution_options(synchronize_session=False)
        )

    async def transition(
        self,
        reference: str,
        from_status: PaymentStatus,
        to_status: PaymentStatus,
        **values,
    ) -> bool:
        """
        Atomic compare-and-set on status. Exactly one concurrent caller
        gets True for a given reference.
        """
        result = await self.session.execute(
            update(PaymentModel)
            .where(
                PaymentModel.reference == reference,
                PaymentModel.status == PaymentStatusEnum(from_status.value),
            )
            .values(status=PaymentStatusEnum(to_status.value), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def find_by_query(
        self,
        user_id: int,
        payment_type: PaymentType,
        status: PaymentStatus,
        method: Optional[PaymentMethod] = None,
        investment_id: Optional[int] = None,
    ) -> Optional[Payment]:
        """Oldest payment matching the filters"""
        query = select(PaymentModel).where(
            PaymentModel.user_id == user_id,
            PaymentModel.type == PaymentTypeEnum(payment_type.value),
            PaymentModel.status == PaymentStatusEnum(status.value),
        )
        if method is not None:
            query = query.where(PaymentModel.method == PaymentMethodEnum(method.value))
        if investment_id is not None:
            query = query.where(PaymentModel.investment_id == investment_id)

        result = await self.session.execute(
            query.order_by(PaymentModel.created_at, PaymentModel.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def has_success(self, user_id: int, payment_type: PaymentType) -> bool:
        result = await self.session.execute(
            select(
                exists().where(
                    PaymentModel.user_id == user_id,
                    PaymentModel.type == PaymentTypeEnum(payment_type.value),
                    PaymentModel.status == PaymentStatusEnum.SUCCESS,
                )
            )
        )
        return bool(result.scalar())

    async def fail_pending_for_investment(self, investment_id: int, reason: str) -> int:
        """Mark every still-pending payment of an investment failed"""
        result = await self.session.execute(
            update(PaymentModel)
            .where(
                PaymentModel.investment_id == investment_id,
                PaymentModel.status == PaymentStatusEnum.PENDING,
            )
            .values(status=PaymentStatusEnum.FAILED, failure_reason=reason)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def list_for_user(self, user_id: int) -> List[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.user_id == user_id)
            .order_by(PaymentModel.created_at.desc(), PaymentModel.id.desc())
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def get_total_success(self, payment_types: Iterable[PaymentType]) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(PaymentModel.amount), 0)).where(
                PaymentModel.type.in_([PaymentTypeEnum(t.value) for t in payment_types]),
                PaymentModel.status == PaymentStatusEnum.SUCCESS,
            )
        )
        total = result.scalar()
        return Decimal(str(total)) if total else Decimal("0")

    @staticmethod
    def _to_domain(model: PaymentModel) -> Payment:
        return Payment(
            id=model.id,
            reference=model.reference,
            user_id=model.user_id,
            investment_id=model.investment_id,
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            method=PaymentMethod(model.method.value),
            type=PaymentType(model.type.value),
            status=PaymentStatus(model.status.value),
            checkout_url=model.checkout_url,
            failure_reason=model.failure_reason,
            created_at=model.created_at,
            confirmed_at=model.confirmed_at,
        )
