"""
PAYMENT LEDGER

RESPONSIBILITIES:
- Open pending payments (registration / investment) under a unique reference
- Confirm payments exactly once and apply their side effects
- Record gateway callbacks

RULES:
- pending -> success/failed happens once, via a conditional update
- A replayed confirmation returns already_confirmed instead of re-applying
- Registration and investment are paid once per user; a second pending
  payment that gets confirmed is failed as a duplicate and flagged for refund
- Gateway-asserted amount/currency must match the stored payment
- Receipts go out only after the transaction commits
"""

import dataclasses
import logging
import time
import uuid
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.config import settings
from roi_ledger.core.errors import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from roi_ledger.domain.models import (
    ConfirmationResult,
    InvestmentStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
)
from roi_ledger.domain.services.investment_manager import InvestmentManager
from roi_ledger.domain.services.payout_scheduler import PayoutScheduler
from roi_ledger.domain.services.plan_catalog import PlanCatalog
from roi_ledger.domain.services.ports import (
    IdentityStore,
    PaymentGateway,
    ReceiptNotice,
    ReceiptNotifier,
)
from roi_ledger.domain.services.roi_accrual_engine import ROIAccrualEngine
from roi_ledger.infrastructure.db.repositories.investment_repository import InvestmentRepository
from roi_ledger.infrastructure.db.repositories.payment_repository import PaymentRepository
from roi_ledger.infrastructure.db.repositories.plan_repository import InvestmentPlanRepository
from roi_ledger.infrastructure.db.repositories.profile_repository import UserProfileRepository
from roi_ledger.infrastructure.db.repositories.roi_repository import RoiRepository
from roi_ledger.infrastructure.db.unit_of_work import transactional
from roi_ledger.services.notification_service import notify_safely
from roi_ledger.utils.keyed_lock import KeyedLock
from roi_ledger.utils.notifications import send_tiered_telegram_message
from roi_ledger.utils.time import now_utc_naive

logger = logging.getLogger(__name__)

_REFERENCE_PREFIX = {
    PaymentType.REGISTRATION: "REG",
    PaymentType.INVESTMENT: "INV",
    PaymentType.ROI: "ROI",
}

HOSTED_METHODS = (PaymentMethod.CARD, PaymentMethod.CRYPTO)

GATEWAY_SUCCESS_STATUSES = {"success", "successful", "paid", "finished", "completed", "confirmed"}

ONE_TIME_PAYMENT_TYPES = (PaymentType.REGISTRATION, PaymentType.INVESTMENT)

DUPLICATE_PAYMENT_REASON = "duplicate_payment"

# Serializes confirmations of one reference within this process; the
# conditional status update covers other processes.
_payment_locks = KeyedLock()


def make_reference(payment_type: PaymentType, user_id: int) -> str:
    """TYPE-user-epoch_ms-RANDOM, unique without a DB round trip"""
    millis = int(time.time() * 1000)
    suffix = uuid.uuid4().hex[:8].upper()
    return f"{_REFERENCE_PREFIX[payment_type]}-{user_id}-{millis}-{suffix}"


def _as_decimal(value) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Invalid amount: {value!r}", reason="invalid_amount") from exc


class PaymentLedger:
    """Money-in ledger and its confirmation side effects"""

    def __init__(
        self,
        session: AsyncSession,
        identity: Optional[IdentityStore] = None,
        gateway: Optional[PaymentGateway] = None,
        notifier: Optional[ReceiptNotifier] = None,
    ):
        self.session = session
        self.payment_repo = PaymentRepository(session)
        self.investment_repo = InvestmentRepository(session)
        self.roi_repo = RoiRepository(session)
        self.identity = identity or UserProfileRepository(session)
        self.plan_catalog = PlanCatalog(InvestmentPlanRepository(session))
        self.accrual_engine = ROIAccrualEngine()
        self.investment_manager = InvestmentManager(
            session,
            identity=self.identity,
            plan_catalog=self.plan_catalog,
            accrual_engine=self.accrual_engine,
        )
        self.scheduler = PayoutScheduler(session)
        self.gateway = gateway
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Opening
    # ------------------------------------------------------------------

    async def open_pending(
        self,
        user_id: int,
        amount: Decimal,
        method: PaymentMethod,
        payment_type: PaymentType,
        currency: Optional[str] = None,
        investment_id: Optional[int] = None,
    ) -> Payment:
        """
        Record a pending payment. Card/crypto payments also get a hosted
        checkout URL; bank/cash wait for an admin confirmation.
        """
        if payment_type == PaymentType.ROI:
            raise ValidationError("ROI payments are created by settlement only", reason="invalid_payment_type")

        amount = _as_decimal(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be positive", reason="invalid_amount")

        currency = (currency or settings.DEFAULT_CURRENCY).strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError(f"Invalid currency code: {currency}", reason="invalid_currency")

        async with transactional(self.session):
            user = await self.identity.get_user(user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found", reason="user_not_found")

            if payment_type == PaymentType.REGISTRATION:
                investment_id = None
                if await self.identity.has_successful_registration_payment(user_id):
                    raise ConflictError("Registration fee already paid", reason="registration_already_paid")
                if amount != settings.REGISTRATION_FEE:
                    raise ValidationError(
                        f"Registration fee is {settings.REGISTRATION_FEE}",
                        reason="registration_fee_mismatch",
                    )
            else:
                investment_id = await self._check_investment_payment(user_id, amount, investment_id)

            payment = await self.payment_repo.create(
                reference=make_reference(payment_type, user_id),
                user_id=user_id,
                amount=amount,
                currency=currency,
                method=method,
                payment_type=payment_type,
                investment_id=investment_id,
            )

        logger.info(
            f"Payment opened: reference={payment.reference} type={payment_type.value} "
            f"method={method.value} amount={amount} {currency}"
        )

        if method not in HOSTED_METHODS:
            return payment

        try:
            if self.gateway is None:
                raise ExternalServiceError("Payment gateway is not configured", reason="gateway_not_configured")
            checkout_url = await self.gateway.create_checkout(payment, user)
        except ExternalServiceError as exc:
            async with transactional(self.session):
                await self.payment_repo.transition(
                    payment.reference,
                    PaymentStatus.PENDING,
                    PaymentStatus.FAILED,
                    failure_reason=exc.reason,
                )
            logger.error(f"Checkout failed for {payment.reference}: {exc.message}")
            raise

        async with transactional(self.session):
            await self.payment_repo.set_checkout_url(payment.id, checkout_url)
        return dataclasses.replace(payment, checkout_url=checkout_url)

    async def _check_investment_payment(
        self,
        user_id: int,
        amount: Decimal,
        investment_id: Optional[int],
    ) -> int:
        if not await self.identity.has_successful_registration_payment(user_id):
            raise PreconditionError("Registration fee has not been paid", reason="registration_unpaid")
        if await self.payment_repo.has_success(user_id, PaymentType.INVESTMENT):
            raise ConflictError("Investment payment already received", reason="investment_already_paid")

        if investment_id is None:
            investment = await self.investment_repo.get_for_user_with_status(user_id, InvestmentStatus.PENDING)
        else:
            investment = await self.investment_repo.get(investment_id)

        if investment is None or investment.user_id != user_id:
            raise NotFoundError("No pending investment to pay for", reason="investment_not_found")
        if investment.status != InvestmentStatus.PENDING:
            raise ConflictError(
                f"Investment {investment.id} is {investment.status.value}, not pending",
                reason="investment_not_pending",
            )
        if amount != investment.amount:
            raise ValidationError(
                f"Amount {amount} does not match investment amount {investment.amount}",
                reason="amount_mismatch",
            )
        return investment.id

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------

    async def confirm(
        self,
        reference: str,
        amount: Optional[Decimal] = None,
        currency: Optional[str] = None,
    ) -> ConfirmationResult:
        """
        pending -> success plus side effects, in one transaction.

        ``amount``/``currency`` are what the gateway says was paid; when
        given they must match the stored payment.
        """
        async with _payment_locks.hold(reference):
            async with transactional(self.session):
                result, notice, flagged = await self._confirm_in_transaction(reference, amount, currency)

        await self._after_commit(result, notice, flagged)
        return result

    async def _after_commit(
        self,
        result: ConfirmationResult,
        notice: Optional[ReceiptNotice],
        flagged: bool,
    ) -> None:
        if notice is not None:
            await notify_safely(self.notifier, notice)
        if flagged:
            payment = result.payment
            await send_tiered_telegram_message(
                tier="ALERT",
                title="Duplicate payment received",
                body=(
                    f"Reference: {payment.reference}\n"
                    f"User: {payment.user_id}\n"
                    f"Type: {payment.type.value}\n"
                    f"Amount: {payment.amount} {payment.currency}\n"
                    f"Action: refund required"
                ),
            )

    async def confirm_by_query(
        self,
        user_id: int,
        payment_type: PaymentType,
        method: Optional[PaymentMethod] = None,
        investment_id: Optional[int] = None,
    ) -> ConfirmationResult:
        """Confirm the oldest pending payment matching the filters (admin flow)"""
        async with transactional(self.session):
            pending = await self.payment_repo.find_by_query(
                user_id, payment_type, PaymentStatus.PENDING, method=method, investment_id=investment_id
            )
            if pending is None:
                done = await self.payment_repo.find_by_query(
                    user_id, payment_type, PaymentStatus.SUCCESS, method=method, investment_id=investment_id
                )
                if done is not None:
                    return ConfirmationResult(payment=done, already_confirmed=True)
                raise NotFoundError("No pending payment matches", reason="payment_not_found")

            result, notice, flagged = await self._confirm_in_transaction(pending.reference, None, None)

        await self._after_commit(result, notice, flagged)
        return result

    async def handle_gateway_callback(
        self,
        reference: str,
        status: str,
        amount: Optional[Decimal] = None,
        currency: Optional[str] = None,
    ) -> ConfirmationResult:
        """
        Gateway webhook entry point. Success statuses confirm; anything else
        marks the pending payment failed with no further side effects.
        """
        if (status or "").strip().lower() in GATEWAY_SUCCESS_STATUSES:
            return await self.confirm(reference, amount=amount, currency=currency)

        async with _payment_locks.hold(reference):
            async with transactional(self.session):
                payment = await self.payment_repo.get_by_reference(reference)
                if payment is None:
                    raise NotFoundError(f"Payment {reference} not found", reason="payment_not_found")

                if payment.status == PaymentStatus.SUCCESS:
                    logger.warning(f"Ignoring '{status}' callback for confirmed payment {reference}")
                    return ConfirmationResult(payment=payment, already_confirmed=True)
                if payment.status == PaymentStatus.FAILED:
                    logger.info(f"Payment {reference} already failed; '{status}' callback ignored")
                    return ConfirmationResult(payment=payment, already_confirmed=False)

                await self.payment_repo.transition(
                    reference,
                    PaymentStatus.PENDING,
                    PaymentStatus.FAILED,
                    failure_reason=f"gateway:{status}"[:255],
                )
                failed = await self.payment_repo.get_by_reference(reference)

        logger.info(f"Payment failed by gateway: reference={reference} status={status}")
        return ConfirmationResult(payment=failed, already_confirmed=False)

    async def _confirm_in_transaction(
        self,
        reference: str,
        amount: Optional[Decimal],
        currency: Optional[str],
    ) -> Tuple[ConfirmationResult, Optional[ReceiptNotice], bool]:
        """Returns the result, the receipt to send and whether a duplicate was just flagged"""
        payment = await self.payment_repo.get_by_reference(reference)
        if payment is None:
            raise NotFoundError(f"Payment {reference} not found", reason="payment_not_found")
        if payment.status == PaymentStatus.SUCCESS:
            return ConfirmationResult(payment=payment, already_confirmed=True), None, False
        if payment.status == PaymentStatus.FAILED:
            if payment.failure_reason == DUPLICATE_PAYMENT_REASON:
                return ConfirmationResult(payment=payment, duplicate=True), None, False
            raise ConflictError(f"Payment {reference} has failed", reason="payment_failed")

        if amount is not None and _as_decimal(amount) != payment.amount:
            raise ValidationError(
                f"Paid amount {amount} does not match expected {payment.amount}",
                reason="amount_mismatch",
            )
        if currency is not None and currency.strip().upper() != payment.currency:
            raise ValidationError(
                f"Paid currency {currency} does not match expected {payment.currency}",
                reason="currency_mismatch",
            )

        if payment.type in ONE_TIME_PAYMENT_TYPES and await self.payment_repo.has_success(
            payment.user_id, payment.type
        ):
            return await self._fail_duplicate(payment)

        if not await self.payment_repo.transition(
            reference,
            PaymentStatus.PENDING,
            PaymentStatus.SUCCESS,
            confirmed_at=now_utc_naive(),
        ):
            current = await self.payment_repo.get_by_reference(reference)
            if current is not None and current.status == PaymentStatus.SUCCESS:
                return ConfirmationResult(payment=current, already_confirmed=True), None, False
            if current is not None and current.failure_reason == DUPLICATE_PAYMENT_REASON:
                return ConfirmationResult(payment=current, duplicate=True), None, False
            raise ConflictError(f"Payment {reference} is no longer pending", reason="payment_not_pending")

        description = await self._apply_side_effects(payment)
        confirmed = await self.payment_repo.get_by_reference(reference)
        logger.info(
            f"Payment confirmed: reference={reference} type={payment.type.value} "
            f"amount={payment.amount} {payment.currency}"
        )

        notice = ReceiptNotice(
            payment_id=confirmed.id,
            payment_reference=confirmed.reference,
            amount=confirmed.amount,
            currency=confirmed.currency,
            user_id=confirmed.user_id,
            description=description,
        )
        return ConfirmationResult(payment=confirmed, already_confirmed=False), notice, False

    async def _fail_duplicate(
        self, payment: Payment
    ) -> Tuple[ConfirmationResult, Optional[ReceiptNotice], bool]:
        """The money arrived but the purpose is already paid for: fail it and flag for refund"""
        if not await self.payment_repo.transition(
            payment.reference,
            PaymentStatus.PENDING,
            PaymentStatus.FAILED,
            failure_reason=DUPLICATE_PAYMENT_REASON,
        ):
            raise ConflictError(f"Payment {payment.reference} is no longer pending", reason="payment_not_pending")

        failed = await self.payment_repo.get_by_reference(payment.reference)
        logger.warning(
            f"Duplicate {payment.type.value} payment: reference={payment.reference} "
            f"user={payment.user_id} amount={payment.amount} {payment.currency}"
        )
        return ConfirmationResult(payment=failed, duplicate=True), None, True

    async def _apply_side_effects(self, payment: Payment) -> str:
        if payment.type == PaymentType.REGISTRATION:
            code = await self.identity.assign_member_code_if_missing(
                payment.user_id, settings.MEMBER_CODE_PREFIX
            )
            if not await self.identity.mark_registration_paid(payment.user_id):
                raise ConflictError("Registration fee already paid", reason="registration_already_paid")
            if code:
                logger.info(f"Member code assigned: user={payment.user_id} code={code}")
            return "Registration fee"

        if payment.type == PaymentType.INVESTMENT:
            if payment.investment_id is None:
                raise NotFoundError(
                    f"Payment {payment.reference} is not linked to an investment",
                    reason="investment_not_found",
                )
            investment = await self.investment_manager.activate(payment.investment_id)
            plan = await self.plan_catalog.get_plan(investment.plan_id)
            snapshot = self.accrual_engine.snapshot(investment.amount, plan, investment.cadence)
            roi = await self.roi_repo.get_or_create(investment.user_id, investment.id, snapshot)
            await self.scheduler.create_return_for_period(investment, investment.next_payout_date)
            logger.info(
                f"ROI snapshot: investment={investment.id} rate={roi.rate} "
                f"per_period={roi.period_return_amount}"
            )
            return f"Investment in {plan.name}"

        return "ROI payout"
