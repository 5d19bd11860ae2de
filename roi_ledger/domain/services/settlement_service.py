"""
SETTLEMENT SERVICE

RESPONSIBILITIES:
- Release one scheduled Return to the investor's payout destination

RULES:
- The only writer that marks a Return paid and advances ROI/investment counters
- Return paid + ROI totals + investment advance + roi Payment commit together
- Concurrent withdraws on one Return: exactly one wins, the rest get Conflict
- Receipts and operator alerts go out after commit; their failures are logged only
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.config import settings
from roi_ledger.core.errors import ConflictError, NotFoundError, PreconditionError
from roi_ledger.domain.models import (
    BankPayout,
    CardPayout,
    CashPayout,
    CryptoPayout,
    PaymentStatus,
    PaymentType,
    PayoutDestination,
    ReturnStatus,
    SettlementResult,
)
from roi_ledger.domain.services.investment_manager import InvestmentManager
from roi_ledger.domain.services.payment_ledger import make_reference
from roi_ledger.domain.services.payout_scheduler import PayoutScheduler
from roi_ledger.domain.services.ports import IdentityStore, ReceiptNotice, ReceiptNotifier
from roi_ledger.infrastructure.db.repositories.investment_repository import InvestmentRepository
from roi_ledger.infrastructure.db.repositories.payment_repository import PaymentRepository
from roi_ledger.infrastructure.db.repositories.plan_repository import InvestmentPlanRepository
from roi_ledger.infrastructure.db.repositories.profile_repository import UserProfileRepository
from roi_ledger.infrastructure.db.repositories.return_repository import ReturnRepository
from roi_ledger.infrastructure.db.repositories.roi_repository import RoiRepository
from roi_ledger.infrastructure.db.unit_of_work import transactional
from roi_ledger.services.notification_service import notify_safely
from roi_ledger.utils.keyed_lock import KeyedLock
from roi_ledger.utils.notifications import send_tiered_telegram_message
from roi_ledger.utils.time import now_utc_naive

logger = logging.getLogger(__name__)

# Serializes withdraws of the same Return within this process; the
# conditional update on the Return row covers other processes.
_return_locks = KeyedLock()


def mask_account_number(account_number: str) -> str:
    digits = (account_number or "").strip()
    if len(digits) <= 4:
        return "****"
    return f"****{digits[-4:]}"


def describe_payout(destination: PayoutDestination) -> str:
    """Human-readable payout line for receipts"""
    if isinstance(destination, BankPayout):
        return (
            f"Bank: {destination.bank_name}, "
            f"Account: {mask_account_number(destination.account_number)}, "
            f"Holder: {destination.account_holder_name}"
        )
    if isinstance(destination, CryptoPayout):
        return f"Wallet: {destination.wallet_address}, Coin: {destination.coin_type}"
    if isinstance(destination, CashPayout):
        return "Cash payout at office"
    if isinstance(destination, CardPayout):
        return f"Card ending {destination.last4}"
    raise TypeError(f"Unsupported payout destination: {type(destination).__name__}")


class SettlementService:
    """Admin-triggered release of scheduled payouts"""

    def __init__(
        self,
        session: AsyncSession,
        identity: Optional[IdentityStore] = None,
        notifier: Optional[ReceiptNotifier] = None,
    ):
        self.session = session
        self.identity = identity or UserProfileRepository(session)
        self.investment_repo = InvestmentRepository(session)
        self.return_repo = ReturnRepository(session)
        self.roi_repo = RoiRepository(session)
        self.payment_repo = PaymentRepository(session)
        self.plan_repo = InvestmentPlanRepository(session)
        self.investment_manager = InvestmentManager(session, identity=self.identity)
        self.scheduler = PayoutScheduler(session)
        self.notifier = notifier

    async def withdraw(self, user_id: int, investment_id: int, return_id: int) -> SettlementResult:
        """
        Pay out one Return.

        Raises:
            NotFoundError: user, investment, return or ROI snapshot missing
            ConflictError: return already paid
            PreconditionError: no payout destination on the profile
        """
        async with _return_locks.hold(return_id):
            async with transactional(self.session):
                result, notice = await self._settle(user_id, investment_id, return_id)

        await notify_safely(self.notifier, notice)
        await send_tiered_telegram_message(
            tier="PAYOUT",
            title="ROI payout released",
            body=(
                f"Reference: {result.payment_reference}\n"
                f"User: {user_id}\n"
                f"Investment: {investment_id}\n"
                f"Amount: {result.amount} {result.currency}\n"
                f"Method: {result.payout_method.value}"
            ),
        )
        return result

    async def _settle(self, user_id: int, investment_id: int, return_id: int):
        user = await self.identity.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", reason="user_not_found")

        investment = await self.investment_repo.get(investment_id)
        if investment is None or investment.user_id != user_id:
            raise NotFoundError(f"Investment {investment_id} not found", reason="investment_not_found")

        record = await self.return_repo.get(return_id)
        if record is None or record.investment_id != investment_id or record.user_id != user_id:
            raise NotFoundError(f"Return {return_id} not found", reason="return_not_found")
        if record.status == ReturnStatus.PAID:
            raise ConflictError(f"Return {return_id} already paid", reason="return_already_paid")

        roi = await self.roi_repo.get_for(user_id, investment_id)
        if roi is None:
            raise NotFoundError(f"No ROI record for investment {investment_id}", reason="roi_not_found")

        destination = await self.identity.get_payout_method(user_id)
        if destination is None:
            raise PreconditionError("No payout destination configured", reason="payout_method_missing")

        paid_at = now_utc_naive()
        if not await self.return_repo.mark_paid(return_id, paid_at):
            raise ConflictError(f"Return {return_id} already paid", reason="return_already_paid")

        await self.roi_repo.record_payout(roi.id, record.amount, paid_at)
        advanced = await self.investment_manager.advance_after_settlement(investment_id)
        await self.scheduler.create_next_return_if_needed(advanced)

        payout_details = describe_payout(destination)
        payment = await self.payment_repo.create(
            reference=make_reference(PaymentType.ROI, user_id),
            user_id=user_id,
            amount=record.amount,
            currency=settings.DEFAULT_CURRENCY,
            method=destination.method,
            payment_type=PaymentType.ROI,
            status=PaymentStatus.SUCCESS,
            investment_id=investment_id,
            confirmed_at=paid_at,
        )

        logger.info(
            f"Return settled: return={return_id} investment={investment_id} "
            f"amount={record.amount} reference={payment.reference} "
            f"payouts={advanced.payouts_made}/{advanced.total_payouts}"
        )

        plan = await self.plan_repo.get(investment.plan_id)
        plan_name = plan.name if plan else f"plan {investment.plan_id}"

        result = SettlementResult(
            payment_id=payment.id,
            payment_reference=payment.reference,
            return_id=return_id,
            amount=record.amount,
            currency=payment.currency,
            payout_method=destination.method,
            payout_details=payout_details,
            next_payout_date=advanced.next_payout_date,
            investment_status=advanced.status,
        )
        notice = ReceiptNotice(
            payment_id=payment.id,
            payment_reference=payment.reference,
            amount=record.amount,
            currency=payment.currency,
            user_id=user_id,
            description=f"ROI Payout for {plan_name}",
            payout_details=payout_details,
        )
        return result, notice
