"""
INVESTMENT MANAGER

RESPONSIBILITIES:
- Plan selection with eligibility checks
- Lifecycle transitions: pending -> active -> completed, pending -> cancelled
- Payout counter and calendar after each settlement

RULES:
- At most one pending and one active investment per user
- payouts_made never exceeds total_payouts
- completed <=> payouts_made == total_payouts
"""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.core.errors import (
    ConflictError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from roi_ledger.domain.models import Cadence, Investment, InvestmentStatus, PaymentType
from roi_ledger.domain.services.plan_catalog import PlanCatalog
from roi_ledger.domain.services.ports import IdentityStore
from roi_ledger.domain.services.roi_accrual_engine import ROIAccrualEngine
from roi_ledger.infrastructure.db.repositories.investment_repository import InvestmentRepository
from roi_ledger.infrastructure.db.repositories.payment_repository import PaymentRepository
from roi_ledger.infrastructure.db.repositories.plan_repository import InvestmentPlanRepository
from roi_ledger.infrastructure.db.repositories.profile_repository import UserProfileRepository
from roi_ledger.infrastructure.db.unit_of_work import transactional
from roi_ledger.utils.time import today_utc

logger = logging.getLogger(__name__)


class InvestmentManager:
    """Owns every write to the investment table"""

    def __init__(
        self,
        session: AsyncSession,
        identity: Optional[IdentityStore] = None,
        plan_catalog: Optional[PlanCatalog] = None,
        accrual_engine: Optional[ROIAccrualEngine] = None,
    ):
        self.session = session
        self.investment_repo = InvestmentRepository(session)
        self.payment_repo = PaymentRepository(session)
        self.identity = identity or UserProfileRepository(session)
        self.plan_catalog = plan_catalog or PlanCatalog(InvestmentPlanRepository(session))
        self.accrual_engine = accrual_engine or ROIAccrualEngine()

    async def select_plan(
        self,
        user_id: int,
        plan_id: int,
        amount: Decimal,
        cadence: Optional[Cadence] = None,
    ) -> Investment:
        """
        Create (or re-point) the user's pending investment.

        Calling again while the investment is still pending updates it in
        place; still-open payments for the old terms are failed so they can
        never activate the new terms.
        """
        async with transactional(self.session):
            user = await self.identity.get_user(user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found", reason="user_not_found")

            plan = await self.plan_catalog.get_active_plan(plan_id)

            if amount is None or amount <= 0:
                raise ValidationError("Investment amount must be positive", reason="invalid_amount")
            if not plan.accepts_amount(amount):
                upper = f" and {plan.max_amount}" if plan.max_amount is not None else ""
                raise ValidationError(
                    f"Amount must be between {plan.min_amount}{upper} for plan '{plan.name}'",
                    reason="amount_out_of_range",
                )

            if not await self.identity.has_successful_registration_payment(user_id):
                raise PreconditionError("Registration fee has not been paid", reason="registration_unpaid")
            if not await self.identity.is_kyc_approved(user_id):
                raise PreconditionError("KYC is not approved", reason="kyc_not_approved")
            if await self.identity.get_payout_method(user_id) is None:
                raise PreconditionError("No payout destination configured", reason="payout_method_missing")

            if await self.investment_repo.get_for_user_with_status(user_id, InvestmentStatus.ACTIVE):
                raise ConflictError("User already has an active investment", reason="active_investment_exists")
            if await self.payment_repo.has_success(user_id, PaymentType.INVESTMENT):
                raise ConflictError("Investment payment already received", reason="investment_already_paid")

            cadence = cadence or plan.cadence
            total_payouts = plan.total_payouts_for(cadence)

            pending = await self.investment_repo.get_for_user_with_status(user_id, InvestmentStatus.PENDING)
            if pending is not None:
                unchanged = (
                    pending.plan_id == plan.id
                    and pending.amount == amount
                    and pending.cadence == cadence
                )
                if unchanged:
                    return pending

                if not await self.investment_repo.update_pending_terms(
                    pending.id, plan.id, amount, cadence, total_payouts
                ):
                    raise ConflictError("Investment is no longer pending", reason="investment_not_pending")
                superseded = await self.payment_repo.fail_pending_for_investment(pending.id, "superseded")
                logger.info(
                    f"Pending investment updated: id={pending.id} user={user_id} plan={plan.id} "
                    f"amount={amount} cadence={cadence.value} superseded_payments={superseded}"
                )
                return await self.investment_repo.get(pending.id)

            try:
                investment = await self.investment_repo.create_pending(
                    user_id, plan.id, amount, cadence, total_payouts
                )
            except IntegrityError as exc:
                raise ConflictError(
                    "Another pending investment was created concurrently",
                    reason="pending_investment_exists",
                ) from exc

            logger.info(
                f"Investment selected: id={investment.id} user={user_id} plan={plan.id} "
                f"amount={amount} cadence={cadence.value} payouts={total_payouts}"
            )
            return investment

    async def activate(self, investment_id: int, today: Optional[date] = None) -> Investment:
        """pending -> active, first payout one period from today"""
        today = today or today_utc()
        async with transactional(self.session):
            investment = await self.investment_repo.get(investment_id)
            if investment is None:
                raise NotFoundError(f"Investment {investment_id} not found", reason="investment_not_found")

            next_payout_date = self.accrual_engine.next_date(investment.cadence, today)
            try:
                moved = await self.investment_repo.transition(
                    investment_id,
                    InvestmentStatus.PENDING,
                    InvestmentStatus.ACTIVE,
                    start_date=today,
                    next_payout_date=next_payout_date,
                )
            except IntegrityError as exc:
                raise ConflictError("User already has an active investment", reason="active_investment_exists") from exc
            if not moved:
                raise ConflictError(
                    f"Investment {investment_id} is {investment.status.value}, not pending",
                    reason="investment_not_pending",
                )

            logger.info(f"Investment activated: id={investment_id} next_payout={next_payout_date}")
            return await self.investment_repo.get(investment_id)

    async def advance_after_settlement(self, investment_id: int, today: Optional[date] = None) -> Investment:
        """
        Count one settled payout and move the calendar on.

        The next date is anchored on the scheduled date, not on when the
        admin happened to release the payout.
        """
        async with transactional(self.session):
            investment = await self.investment_repo.get(investment_id)
            if investment is None:
                raise NotFoundError(f"Investment {investment_id} not found", reason="investment_not_found")
            if investment.status != InvestmentStatus.ACTIVE:
                raise ConflictError(
                    f"Investment {investment_id} is {investment.status.value}, not active",
                    reason="investment_not_active",
                )
            if not await self.investment_repo.increment_payouts(investment_id):
                raise ConflictError("All payouts already made", reason="payouts_exhausted")

            # another settlement may have incremented since the read above
            payouts_made = (await self.investment_repo.get(investment_id)).payouts_made
            if payouts_made >= investment.total_payouts:
                await self.investment_repo.transition(
                    investment_id,
                    InvestmentStatus.ACTIVE,
                    InvestmentStatus.COMPLETED,
                    next_payout_date=None,
                )
                logger.info(f"Investment completed: id={investment_id} payouts={payouts_made}")
            else:
                anchor = investment.next_payout_date or today or today_utc()
                next_payout_date = self.accrual_engine.next_date(investment.cadence, anchor)
                await self.investment_repo.set_next_payout_date(investment_id, next_payout_date)
                logger.info(
                    f"Investment advanced: id={investment_id} payouts={payouts_made}/"
                    f"{investment.total_payouts} next_payout={next_payout_date}"
                )

            return await self.investment_repo.get(investment_id)

    async def cancel(self, investment_id: int) -> Investment:
        async with transactional(self.session):
            investment = await self.investment_repo.get(investment_id)
            if investment is None:
                raise NotFoundError(f"Investment {investment_id} not found", reason="investment_not_found")
            if not await self.investment_repo.transition(
                investment_id, InvestmentStatus.PENDING, InvestmentStatus.CANCELLED
            ):
                raise ConflictError(
                    f"Investment {investment_id} is {investment.status.value}, not pending",
                    reason="investment_not_pending",
                )
            await self.payment_repo.fail_pending_for_investment(investment_id, "investment_cancelled")
            logger.info(f"Investment cancelled: id={investment_id}")
            return await self.investment_repo.get(investment_id)

    async def list_investments(self, user_id: int) -> List[Investment]:
        return await self.investment_repo.list_for_user(user_id)
