from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from roi_ledger.domain.models import (
    Cadence,
    InvestmentStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    ReturnStatus,
    RoiSnapshot,
)
from roi_ledger.infrastructure.db.models import MemberCodeSequenceModel, UserProfileModel
from roi_ledger.infrastructure.db.repositories.investment_repository import InvestmentRepository
from roi_ledger.infrastructure.db.repositories.payment_repository import PaymentRepository
from roi_ledger.infrastructure.db.repositories.profile_repository import UserProfileRepository
from roi_ledger.infrastructure.db.repositories.return_repository import ReturnRepository
from roi_ledger.infrastructure.db.repositories.roi_repository import RoiRepository


async def _user(session, email="repo@example.com"):
    user = await UserProfileRepository(session).create("Repo User", email)
    await session.commit()
    return user


async def _pending_investment(session, user_id, plan_id):
    investment = await InvestmentRepository(session).create_pending(
        user_id, plan_id, Decimal("2000"), Cadence.MONTHLY, 12
    )
    await session.commit()
    return investment


@pytest.mark.asyncio
@pytest.mark.integration
async def test_return_find_or_create_ignores_duplicates(db_session, make_plan):
    plan = await make_plan()
    user = await _user(db_session)
    investment = await _pending_investment(db_session, user.id, plan.id)
    repo = ReturnRepository(db_session)

    first, created = await repo.find_or_create(user.id, investment.id, date(2026, 3, 1), Decimal("100.00"))
    second, created_again = await repo.find_or_create(user.id, investment.id, date(2026, 3, 1), Decimal("999.00"))
    await db_session.commit()

    assert created is True
    assert created_again is False
    assert second.id == first.id
    assert second.amount == Decimal("100.00")
    assert len(await repo.list_for_investment(investment.id)) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_return_mark_paid_is_compare_and_set(db_session, make_plan):
    plan = await make_plan()
    user = await _user(db_session)
    investment = await _pending_investment(db_session, user.id, plan.id)
    repo = ReturnRepository(db_session)
    record, _ = await repo.find_or_create(user.id, investment.id, date(2026, 3, 1), Decimal("100.00"))

    assert await repo.promote_pending_to_due(date(2026, 2, 28)) == 0
    assert await repo.promote_pending_to_due(date(2026, 3, 1)) == 1
    assert await repo.mark_paid(record.id, datetime(2026, 3, 1, 12, 0)) is True
    assert await repo.mark_paid(record.id, datetime(2026, 3, 1, 12, 0)) is False
    await db_session.commit()

    paid = await repo.get(record.id)
    assert paid.status == ReturnStatus.PAID
    assert await repo.get_total_paid() == Decimal("100.00")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_investment_transition_only_from_expected_state(db_session, make_plan):
    plan = await make_plan()
    user = await _user(db_session)
    investment = await _pending_investment(db_session, user.id, plan.id)
    repo = InvestmentRepository(db_session)

    moved = await repo.transition(
        investment.id,
        InvestmentStatus.PENDING,
        InvestmentStatus.ACTIVE,
        start_date=date(2026, 1, 1),
        next_payout_date=date(2026, 2, 1),
    )
    moved_again = await repo.transition(investment.id, InvestmentStatus.PENDING, InvestmentStatus.ACTIVE)
    await db_session.commit()

    assert moved is True
    assert moved_again is False
    active = await repo.get(investment.id)
    assert active.status == InvestmentStatus.ACTIVE
    assert active.next_payout_date == date(2026, 2, 1)
    assert [i.id for i in await repo.list_due(date(2026, 2, 1))] == [investment.id]
    assert await repo.list_due(date(2026, 1, 31)) == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_increment_payouts_stops_at_total(db_session, make_plan):
    plan = await make_plan()
    user = await _user(db_session)
    repo = InvestmentRepository(db_session)
    investment = await repo.create_pending(user.id, plan.id, Decimal("2000"), Cadence.MONTHLY, 1)
    await repo.transition(investment.id, InvestmentStatus.PENDING, InvestmentStatus.ACTIVE)

    assert await repo.increment_payouts(investment.id) is True
    assert await repo.increment_payouts(investment.id) is False
    await db_session.commit()
    assert (await repo.get(investment.id)).payouts_made == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_one_pending_investment_per_user(db_session, make_plan):
    plan = await make_plan()
    user = await _user(db_session)
    await _pending_investment(db_session, user.id, plan.id)

    with pytest.raises(IntegrityError):
        await InvestmentRepository(db_session).create_pending(
            user.id, plan.id, Decimal("3000"), Cadence.MONTHLY, 12
        )
    await db_session.rollback()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_payment_transition_and_query(db_session):
    user = await _user(db_session)
    repo = PaymentRepository(db_session)
    payment = await repo.create(
        reference="REG-1-test",
        user_id=user.id,
        amount=Decimal("50.00"),
        currency="AED",
        method=PaymentMethod.BANK,
        payment_type=PaymentType.REGISTRATION,
    )

    found = await repo.find_by_query(user.id, PaymentType.REGISTRATION, PaymentStatus.PENDING)
    assert found.reference == payment.reference
    assert await repo.transition(payment.reference, PaymentStatus.PENDING, PaymentStatus.SUCCESS) is True
    assert await repo.transition(payment.reference, PaymentStatus.PENDING, PaymentStatus.FAILED) is False
    await db_session.commit()

    assert (await repo.get_by_reference("REG-1-test")).status == PaymentStatus.SUCCESS
    assert await repo.has_success(user.id, PaymentType.REGISTRATION) is True
    assert await repo.get_total_success([PaymentType.REGISTRATION]) == Decimal("50.00")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_roi_snapshot_is_created_once(db_session, make_plan):
    plan = await make_plan()
    user = await _user(db_session)
    investment = await _pending_investment(db_session, user.id, plan.id)
    repo = RoiRepository(db_session)

    first = await repo.get_or_create(user.id, investment.id, RoiSnapshot(Decimal("5"), Decimal("100.00")))
    second = await repo.get_or_create(user.id, investment.id, RoiSnapshot(Decimal("9"), Decimal("180.00")))
    await db_session.commit()

    assert second.id == first.id
    assert second.rate == Decimal("5")
    assert second.period_return_amount == Decimal("100.00")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_member_codes_are_sequential(db_session):
    repo = UserProfileRepository(db_session)
    alice = await _user(db_session, "alice@example.com")
    bob = await _user(db_session, "bob@example.com")

    assert await repo.assign_member_code_if_missing(alice.id, "PRB") == "PRB00001"
    assert await repo.assign_member_code_if_missing(alice.id, "PRB") is None
    assert await repo.assign_member_code_if_missing(bob.id, "PRB") == "PRB00002"
    await db_session.commit()

    assert (await repo.get_user(bob.id)).member_code == "PRB00002"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_member_code_counter_starts_after_existing_codes(db_session):
    repo = UserProfileRepository(db_session)
    legacy = await _user(db_session, "legacy@example.com")
    await db_session.execute(
        update(UserProfileModel).where(UserProfileModel.id == legacy.id).values(member_code="PRB00041")
    )
    newcomer = await _user(db_session, "newcomer@example.com")

    assert await repo.assign_member_code_if_missing(newcomer.id, "PRB") == "PRB00042"
    await db_session.commit()

    counter = await db_session.get(MemberCodeSequenceModel, "PRB")
    assert counter.last_value == 42


@pytest.mark.asyncio
@pytest.mark.integration
async def test_member_code_numbers_come_from_counter_row(db_session):
    # numbers are consumed from the counter, not derived from profiles
    db_session.add(MemberCodeSequenceModel(prefix="PRB", last_value=99))
    await db_session.commit()
    user = await _user(db_session, "late@example.com")

    code = await UserProfileRepository(db_session).assign_member_code_if_missing(user.id, "PRB")
    await db_session.commit()

    assert code == "PRB00100"
