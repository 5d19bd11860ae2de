"""
PaymentLedger against a real (SQLite) session
"""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from roi_ledger.config import settings
from roi_ledger.core.errors import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from roi_ledger.domain.models import (
    InvestmentStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    ReturnStatus,
)
from roi_ledger.domain.services import payment_ledger
from roi_ledger.domain.services.investment_manager import InvestmentManager
from roi_ledger.domain.services.payment_ledger import DUPLICATE_PAYMENT_REASON, PaymentLedger
from roi_ledger.domain.services.profile_service import ProfileService
from roi_ledger.infrastructure.db.models import PaymentModel, PaymentStatusEnum, ReturnModel, RoiModel
from roi_ledger.infrastructure.db.repositories.investment_repository import InvestmentRepository
from roi_ledger.infrastructure.db.repositories.payment_repository import PaymentRepository
from roi_ledger.infrastructure.db.repositories.return_repository import ReturnRepository
from roi_ledger.infrastructure.db.repositories.roi_repository import RoiRepository
from roi_ledger.utils.time import add_months, now_utc_naive, today_utc


@pytest.fixture()
def alerts(monkeypatch):
    sent = []

    async def record(tier, title, body, extra_text=None):
        sent.append((tier, title, body))
        return True

    monkeypatch.setattr(payment_ledger, "send_tiered_telegram_message", record)
    return sent


async def _count(session, model, **filters):
    query = select(func.count(model.id))
    for column, value in filters.items():
        query = query.where(getattr(model, column) == value)
    return (await session.execute(query)).scalar()


async def _open_investment_payment(session, user, plan, amount="2000", method=PaymentMethod.BANK, gateway=None):
    investment = await InvestmentManager(session).select_plan(user.id, plan.id, Decimal(amount))
    payment = await PaymentLedger(session, gateway=gateway).open_pending(
        user_id=user.id,
        amount=Decimal(amount),
        method=method,
        payment_type=PaymentType.INVESTMENT,
    )
    return investment, payment


@pytest.mark.asyncio
@pytest.mark.integration
class TestRegistration:
    async def test_confirm_assigns_member_code_once(self, db_session, make_user, notifier):
        user = await make_user(registered=False)
        ledger = PaymentLedger(db_session, notifier=notifier)
        payment = await ledger.open_pending(
            user.id, settings.REGISTRATION_FEE, PaymentMethod.CASH, PaymentType.REGISTRATION
        )
        assert payment.status == PaymentStatus.PENDING
        assert payment.reference.startswith(f"REG-{user.id}-")

        first = await ledger.confirm(payment.reference)
        assert first.already_confirmed is False
        assert first.payment.status == PaymentStatus.SUCCESS

        profile = await ProfileService(db_session).get_user(user.id)
        assert profile.registration_paid is True
        assert profile.member_code == "PRB00001"

        second = await ledger.confirm(payment.reference)
        assert second.already_confirmed is True
        profile = await ProfileService(db_session).get_user(user.id)
        assert profile.member_code == "PRB00001"
        assert len(notifier.notices) == 1

    async def test_member_codes_are_sequential(self, db_session, make_user):
        first = await make_user(email="a@example.com")
        second = await make_user(email="b@example.com")
        assert first.member_code == "PRB00001"
        assert second.member_code == "PRB00002"

    async def test_second_pending_registration_is_failed_as_duplicate(
        self, db_session, make_user, notifier, alerts
    ):
        user = await make_user(registered=False)
        ledger = PaymentLedger(db_session, notifier=notifier)
        bank = await ledger.open_pending(
            user.id, settings.REGISTRATION_FEE, PaymentMethod.BANK, PaymentType.REGISTRATION
        )
        cash = await ledger.open_pending(
            user.id, settings.REGISTRATION_FEE, PaymentMethod.CASH, PaymentType.REGISTRATION
        )

        first = await ledger.confirm(bank.reference)
        duplicate = await ledger.confirm(cash.reference)

        assert first.payment.status == PaymentStatus.SUCCESS
        assert duplicate.duplicate is True
        assert duplicate.already_confirmed is False
        assert duplicate.payment.status == PaymentStatus.FAILED
        assert duplicate.payment.failure_reason == DUPLICATE_PAYMENT_REASON
        assert await _count(
            db_session, PaymentModel, user_id=user.id, status=PaymentStatusEnum.SUCCESS
        ) == 1

        profile = await ProfileService(db_session).get_user(user.id)
        assert profile.member_code == "PRB00001"
        assert len(notifier.notices) == 1
        assert len(alerts) == 1
        tier, title, body = alerts[0]
        assert tier == "ALERT"
        assert cash.reference in body

        # a replay reports the duplicate again without another alert
        replay = await ledger.confirm(cash.reference)
        assert replay.duplicate is True
        assert len(alerts) == 1

        # no member code was burned by the duplicate
        other = await make_user(email="b@example.com")
        assert other.member_code == "PRB00002"

    async def test_registration_paid_elsewhere_rolls_back_confirmation(
        self, db_session, make_user, monkeypatch, alerts
    ):
        user = await make_user(registered=False)
        ledger = PaymentLedger(db_session)
        bank = await ledger.open_pending(
            user.id, settings.REGISTRATION_FEE, PaymentMethod.BANK, PaymentType.REGISTRATION
        )
        cash = await ledger.open_pending(
            user.id, settings.REGISTRATION_FEE, PaymentMethod.CASH, PaymentType.REGISTRATION
        )
        await ledger.confirm(bank.reference)

        has_success = ledger.payment_repo.has_success

        async def not_yet_visible(user_id, payment_type):
            return False

        # the other success has not become visible to this transaction yet
        monkeypatch.setattr(ledger.payment_repo, "has_success", not_yet_visible)
        with pytest.raises(ConflictError) as exc_info:
            await ledger.confirm(cash.reference)
        assert exc_info.value.reason == "registration_already_paid"

        stored = await PaymentRepository(db_session).get_by_reference(cash.reference)
        assert stored.status == PaymentStatus.PENDING

        monkeypatch.setattr(ledger.payment_repo, "has_success", has_success)
        retried = await ledger.confirm(cash.reference)
        assert retried.duplicate is True
        assert retried.payment.status == PaymentStatus.FAILED

    async def test_second_registration_payment_rejected(self, db_session, make_user):
        user = await make_user()
        with pytest.raises(ConflictError) as exc_info:
            await PaymentLedger(db_session).open_pending(
                user.id, settings.REGISTRATION_FEE, PaymentMethod.BANK, PaymentType.REGISTRATION
            )
        assert exc_info.value.reason == "registration_already_paid"

    async def test_wrong_fee_rejected(self, db_session, make_user):
        user = await make_user(registered=False)
        with pytest.raises(ValidationError) as exc_info:
            await PaymentLedger(db_session).open_pending(
                user.id, Decimal("10"), PaymentMethod.BANK, PaymentType.REGISTRATION
            )
        assert exc_info.value.reason == "registration_fee_mismatch"

    async def test_roi_payments_cannot_be_opened(self, db_session, make_user):
        user = await make_user()
        with pytest.raises(ValidationError):
            await PaymentLedger(db_session).open_pending(
                user.id, Decimal("100"), PaymentMethod.BANK, PaymentType.ROI
            )


@pytest.mark.asyncio
@pytest.mark.integration
class TestInvestmentConfirmation:
    async def test_confirm_activates_and_schedules_first_return(self, db_session, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()
        investment, payment = await _open_investment_payment(db_session, user, plan)
        assert payment.investment_id == investment.id

        result = await PaymentLedger(db_session).confirm(payment.reference)
        assert result.already_confirmed is False

        activated = await InvestmentRepository(db_session).get(investment.id)
        assert activated.status == InvestmentStatus.ACTIVE
        assert activated.start_date == today_utc()
        assert activated.next_payout_date == add_months(today_utc(), 1)
        assert activated.payouts_made == 0
        assert activated.total_payouts == 12

        roi = await RoiRepository(db_session).get_for(user.id, investment.id)
        assert roi.rate == Decimal("5")
        assert roi.period_return_amount == Decimal("100.00")
        assert roi.total_paid == Decimal("0")

        returns = await ReturnRepository(db_session).list_for_investment(investment.id)
        assert len(returns) == 1
        assert returns[0].amount == Decimal("100.00")
        assert returns[0].payout_date == activated.next_payout_date
        assert returns[0].status == ReturnStatus.PENDING

    async def test_callback_delivered_twice_applies_once(self, db_session, make_user, make_plan, notifier, gateway):
        user = await make_user()
        plan = await make_plan()
        investment, payment = await _open_investment_payment(
            db_session, user, plan, method=PaymentMethod.CARD, gateway=gateway
        )
        ledger = PaymentLedger(db_session, notifier=notifier)

        first = await ledger.handle_gateway_callback(payment.reference, "success", Decimal("2000.00"), "aed")
        second = await ledger.handle_gateway_callback(payment.reference, "success", Decimal("2000.00"), "AED")

        assert first.already_confirmed is False
        assert second.already_confirmed is True
        assert await _count(db_session, RoiModel, investment_id=investment.id) == 1
        assert await _count(db_session, ReturnModel, investment_id=investment.id) == 1
        assert len(notifier.notices) == 1
        assert notifier.notices[0].description == "Investment in Gold"

    async def test_amount_mismatch_leaves_payment_pending(self, db_session, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()
        investment, payment = await _open_investment_payment(db_session, user, plan)

        with pytest.raises(ValidationError) as exc_info:
            await PaymentLedger(db_session).handle_gateway_callback(payment.reference, "success", Decimal("1999"), "AED")
        assert exc_info.value.reason == "amount_mismatch"

        with pytest.raises(ValidationError) as exc_info:
            await PaymentLedger(db_session).confirm(payment.reference, currency="USD")
        assert exc_info.value.reason == "currency_mismatch"

        stored = await PaymentRepository(db_session).get_by_reference(payment.reference)
        assert stored.status == PaymentStatus.PENDING
        assert (await InvestmentRepository(db_session).get(investment.id)).status == InvestmentStatus.PENDING
        assert await _count(db_session, RoiModel) == 0

    async def test_failed_callback_has_no_side_effects(self, db_session, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()
        investment, payment = await _open_investment_payment(db_session, user, plan)

        result = await PaymentLedger(db_session).handle_gateway_callback(payment.reference, "cancelled")
        assert result.payment.status == PaymentStatus.FAILED
        assert result.already_confirmed is False
        assert (await InvestmentRepository(db_session).get(investment.id)).status == InvestmentStatus.PENDING

        with pytest.raises(ConflictError):
            await PaymentLedger(db_session).confirm(payment.reference)

    async def test_repeated_failure_callback_is_not_reported_as_confirmed(self, db_session, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()
        _, payment = await _open_investment_payment(db_session, user, plan)
        ledger = PaymentLedger(db_session)

        first = await ledger.handle_gateway_callback(payment.reference, "failed")
        second = await ledger.handle_gateway_callback(payment.reference, "cancelled")

        assert first.already_confirmed is False
        assert second.already_confirmed is False
        assert second.payment.status == PaymentStatus.FAILED
        assert second.payment.failure_reason == "gateway:failed"

    async def test_second_pending_investment_payment_is_failed_as_duplicate(
        self, db_session, make_user, make_plan, alerts
    ):
        user = await make_user()
        plan = await make_plan()
        investment, first_payment = await _open_investment_payment(db_session, user, plan)
        second_payment = await PaymentLedger(db_session).open_pending(
            user.id, Decimal("2000"), PaymentMethod.CASH, PaymentType.INVESTMENT
        )
        ledger = PaymentLedger(db_session)

        first = await ledger.confirm(first_payment.reference)
        duplicate = await ledger.confirm(second_payment.reference)

        assert first.already_confirmed is False
        assert duplicate.duplicate is True
        stored = await PaymentRepository(db_session).get_by_reference(second_payment.reference)
        assert stored.status == PaymentStatus.FAILED
        assert stored.failure_reason == DUPLICATE_PAYMENT_REASON

        assert (await InvestmentRepository(db_session).get(investment.id)).status == InvestmentStatus.ACTIVE
        assert await _count(db_session, RoiModel, investment_id=investment.id) == 1
        assert await _count(db_session, ReturnModel, investment_id=investment.id) == 1
        assert [tier for tier, _, _ in alerts] == ["ALERT"]

    async def test_concurrent_confirmations_apply_once(self, session_factory, db_session, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()
        investment, payment = await _open_investment_payment(db_session, user, plan)

        async def confirm_in_own_session():
            async with session_factory() as session:
                return await PaymentLedger(session).confirm(payment.reference)

        results = await asyncio.gather(confirm_in_own_session(), confirm_in_own_session())

        assert sorted(r.already_confirmed for r in results) == [False, True]
        assert all(r.payment.status == PaymentStatus.SUCCESS for r in results)
        activated = await InvestmentRepository(db_session).get(investment.id)
        assert activated.status == InvestmentStatus.ACTIVE
        assert await _count(db_session, RoiModel, investment_id=investment.id) == 1
        assert await _count(db_session, ReturnModel, investment_id=investment.id) == 1

    async def test_confirmation_committed_elsewhere_wins(
        self, session_factory, db_session, make_user, make_plan, monkeypatch
    ):
        user = await make_user()
        plan = await make_plan()
        investment, payment = await _open_investment_payment(db_session, user, plan)
        ledger = PaymentLedger(db_session)
        transition = ledger.payment_repo.transition

        async def transition_after_other_process(reference, from_status, to_status, **values):
            async with session_factory() as other:
                await other.execute(
                    update(PaymentModel)
                    .where(PaymentModel.reference == reference)
                    .values(status=PaymentStatusEnum.SUCCESS, confirmed_at=now_utc_naive())
                )
                await other.commit()
            return await transition(reference, from_status, to_status, **values)

        monkeypatch.setattr(ledger.payment_repo, "transition", transition_after_other_process)

        result = await ledger.confirm(payment.reference)

        assert result.already_confirmed is True
        assert result.payment.status == PaymentStatus.SUCCESS
        assert (await InvestmentRepository(db_session).get(investment.id)).status == InvestmentStatus.PENDING
        assert await _count(db_session, RoiModel, investment_id=investment.id) == 0

    async def test_second_investment_payment_rejected_after_success(self, db_session, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()
        _, payment = await _open_investment_payment(db_session, user, plan)
        await PaymentLedger(db_session).confirm(payment.reference)

        with pytest.raises(ConflictError) as exc_info:
            await PaymentLedger(db_session).open_pending(
                user.id, Decimal("2000"), PaymentMethod.BANK, PaymentType.INVESTMENT
            )
        assert exc_info.value.reason == "investment_already_paid"

    async def test_investment_payment_requires_registration(self, db_session, make_user):
        user = await make_user(registered=False)
        with pytest.raises(PreconditionError):
            await PaymentLedger(db_session).open_pending(
                user.id, Decimal("2000"), PaymentMethod.BANK, PaymentType.INVESTMENT
            )

    async def test_investment_payment_amount_must_match_investment(self, db_session, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()
        await InvestmentManager(db_session).select_plan(user.id, plan.id, Decimal("2000"))
        with pytest.raises(ValidationError):
            await PaymentLedger(db_session).open_pending(
                user.id, Decimal("2500"), PaymentMethod.BANK, PaymentType.INVESTMENT
            )


@pytest.mark.asyncio
@pytest.mark.integration
class TestConfirmByQuery:
    async def test_confirms_then_reports_already_confirmed(self, db_session, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()
        investment, _ = await _open_investment_payment(db_session, user, plan)
        ledger = PaymentLedger(db_session)

        first = await ledger.confirm_by_query(user.id, PaymentType.INVESTMENT, PaymentMethod.BANK)
        assert first.already_confirmed is False
        assert first.payment.investment_id == investment.id

        second = await ledger.confirm_by_query(user.id, PaymentType.INVESTMENT, PaymentMethod.BANK)
        assert second.already_confirmed is True
        assert second.payment.reference == first.payment.reference

    async def test_nothing_to_confirm(self, db_session, make_user):
        user = await make_user(registered=False)
        with pytest.raises(NotFoundError):
            await PaymentLedger(db_session).confirm_by_query(user.id, PaymentType.REGISTRATION)


@pytest.mark.asyncio
@pytest.mark.integration
class TestHostedCheckout:
    async def test_card_payment_gets_checkout_url(self, db_session, make_user, make_plan, gateway):
        user = await make_user()
        plan = await make_plan()
        _, payment = await _open_investment_payment(
            db_session, user, plan, method=PaymentMethod.CRYPTO, gateway=gateway
        )
        assert payment.checkout_url.endswith(payment.reference)
        assert gateway.calls == [payment.reference]

        stored = await PaymentRepository(db_session).get_by_reference(payment.reference)
        assert stored.checkout_url == payment.checkout_url

    async def test_gateway_failure_marks_payment_failed(self, db_session, make_user, make_plan, failing_gateway):
        user = await make_user()
        plan = await make_plan()
        await InvestmentManager(db_session).select_plan(user.id, plan.id, Decimal("2000"))

        with pytest.raises(ExternalServiceError):
            await PaymentLedger(db_session, gateway=failing_gateway).open_pending(
                user.id, Decimal("2000"), PaymentMethod.CARD, PaymentType.INVESTMENT
            )

        failed = await PaymentRepository(db_session).find_by_query(
            user.id, PaymentType.INVESTMENT, PaymentStatus.FAILED
        )
        assert failed is not None
        pending = await PaymentRepository(db_session).find_by_query(
            user.id, PaymentType.INVESTMENT, PaymentStatus.PENDING
        )
        assert pending is None

    async def test_bank_payment_skips_gateway(self, db_session, make_user, make_plan, gateway):
        user = await make_user()
        plan = await make_plan()
        _, payment = await _open_investment_payment(db_session, user, plan, gateway=gateway)
        assert payment.checkout_url is None
        assert gateway.calls == []
