from decimal import Decimal
from typing import AsyncGenerator, List, Optional

import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from roi_ledger.api.dependencies import get_gateway, get_notifier
from roi_ledger.api.routes import admin, health, investments, payments, plans, roi, users
from roi_ledger.config import settings
from roi_ledger.core.errors import ExternalServiceError, LedgerError
from roi_ledger.domain.models import (
    BankPayout,
    Cadence,
    KycStatus,
    PaymentMethod,
    PaymentType,
)
from roi_ledger.domain.services.payment_ledger import PaymentLedger
from roi_ledger.domain.services.plan_catalog import PlanCatalog
from roi_ledger.domain.services.profile_service import ProfileService
from roi_ledger.infrastructure.db import models  # noqa: F401
from roi_ledger.infrastructure.db.database import Base, get_db
from roi_ledger.infrastructure.db.repositories.plan_repository import InvestmentPlanRepository
from roi_ledger.infrastructure.db.unit_of_work import transactional
from roi_ledger.main import ledger_error_handler


class FakeGateway:
    """Hosted checkout stand-in"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    async def create_checkout(self, payment, user) -> str:
        self.calls.append(payment.reference)
        if self.fail:
            raise ExternalServiceError("gateway down", reason="gateway_request_failed")
        return f"https://pay.example.test/checkout/{payment.reference}"


class RecordingNotifier:
    """Collects receipts; optionally fails every delivery"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.notices: List = []

    async def send_receipt(self, notice) -> None:
        if self.fail:
            raise ExternalServiceError("webhook down", reason="receipt_delivery_failed")
        self.notices.append(notice)


@pytest.fixture()
async def db_engine(tmp_path):
    db_path = tmp_path / "test.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def failing_gateway() -> FakeGateway:
    return FakeGateway(fail=True)


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(fail=True)


@pytest.fixture()
def make_plan(db_session):
    async def _make(
        name: str = "Gold",
        min_amount: str = "1000",
        max_amount: Optional[str] = "50000",
        monthly_rate: str = "5",
        annual_rate: str = "60",
        duration_in_periods: int = 12,
        cadence: Cadence = Cadence.MONTHLY,
    ):
        catalog = PlanCatalog(InvestmentPlanRepository(db_session))
        async with transactional(db_session):
            return await catalog.create_plan(
                name=name,
                min_amount=Decimal(min_amount),
                max_amount=Decimal(max_amount) if max_amount is not None else None,
                monthly_rate=Decimal(monthly_rate),
                annual_rate=Decimal(annual_rate),
                duration_in_periods=duration_in_periods,
                cadence=cadence,
            )

    return _make


@pytest.fixture()
def make_user(db_session):
    """
    Registers a user; by default also pays the registration fee, approves
    KYC and sets a bank payout destination.
    """

    async def _make(
        email: str = "investor@example.com",
        registered: bool = True,
        kyc: bool = True,
        payout: bool = True,
    ):
        profiles = ProfileService(db_session)
        user = await profiles.register_user("Test Investor", email)

        if registered:
            ledger = PaymentLedger(db_session)
            payment = await ledger.open_pending(
                user_id=user.id,
                amount=settings.REGISTRATION_FEE,
                method=PaymentMethod.BANK,
                payment_type=PaymentType.REGISTRATION,
            )
            await ledger.confirm(payment.reference)
        if kyc:
            await profiles.update_kyc_status(user.id, KycStatus.APPROVED)
        if payout:
            await profiles.set_payout_destination(
                user.id,
                BankPayout(
                    account_holder_name="Test Investor",
                    account_number="001234567890",
                    bank_name="Emirates Test Bank",
                    iban="AE070331234567890123456",
                ),
            )
        return await profiles.get_user(user.id)

    return _make


@pytest.fixture()
async def app(db_session, gateway, notifier) -> FastAPI:
    app = FastAPI()
    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.include_router(health.router, tags=["Health"])
    app.include_router(plans.router, prefix="/api/v1/plans", tags=["Plans"])
    app.include_router(users.router, prefix="/api/v1/users", tags=["Users"])
    app.include_router(investments.router, prefix="/api/v1/investments", tags=["Investments"])
    app.include_router(payments.router, prefix="/api/v1/payments", tags=["Payments"])
    app.include_router(roi.router, prefix="/api/v1/roi", tags=["ROI"])
    app.include_router(admin.router, prefix="/api/v1/admin", tags=["Admin"])

    async def override_get_db():
        try:
            yield db_session
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    return app


@pytest.fixture()
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
