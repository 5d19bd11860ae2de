"""
Database Models (SQLAlchemy ORM)
Ledger tables - rows change state, they are never deleted
"""

import enum

from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime,
    Boolean, ForeignKey, Text, Enum as SQLEnum, Index, JSON, UniqueConstraint, text,
)
from sqlalchemy.orm import relationship

from roi_ledger.infrastructure.db.database import Base
from roi_ledger.utils.time import now_utc_naive


# Enums
class CadenceEnum(str, enum.Enum):
    MONTHLY = "monthly"
    ANNUALLY = "annually"


class InvestmentStatusEnum(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethodEnum(str, enum.Enum):
    BANK = "bank"
    CASH = "cash"
    CARD = "card"
    CRYPTO = "crypto"


class PaymentTypeEnum(str, enum.Enum):
    REGISTRATION = "registration"
    INVESTMENT = "investment"
    ROI = "roi"


class PaymentStatusEnum(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class ReturnStatusEnum(str, enum.Enum):
    PENDING = "pending"
    DUE = "due"
    PAID = "paid"
    FAILED = "failed"


class KycStatusEnum(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _values(enum_cls):
    return [member.value for member in enum_cls]


def _enum(enum_cls, name):
    return SQLEnum(enum_cls, name=name, values_callable=_values, native_enum=False, length=20)


# Tables

class UserProfileModel(Base):
    """Identity/profile data the ledger reads"""
    __tablename__ = "user_profile"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(40), nullable=True)

    member_code = Column(String(20), nullable=True, unique=True)
    registration_paid = Column(Boolean, nullable=False, default=False)

    kyc_status = Column(_enum(KycStatusEnum, "kyc_status"), nullable=False, default=KycStatusEnum.PENDING)
    kyc_message = Column(Text, nullable=True)

    payout_method = Column(_enum(PaymentMethodEnum, "payout_method"), nullable=True)
    payout_details = Column(JSON, nullable=True)

    created_at = Column(DateTime, nullable=False, default=now_utc_naive)
    updated_at = Column(DateTime, nullable=False, default=now_utc_naive, onupdate=now_utc_naive)


class MemberCodeSequenceModel(Base):
    """Last member-code number issued per prefix"""
    __tablename__ = "member_code_sequence"

    prefix = Column(String(10), primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)


class InvestmentPlanModel(Base):
    """Investment plan terms"""
    __tablename__ = "investment_plan"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False, unique=True)
    description = Column(Text, nullable=True)

    min_amount = Column(Numeric(14, 2), nullable=False)
    max_amount = Column(Numeric(14, 2), nullable=True)
    monthly_rate = Column(Numeric(6, 3), nullable=False)
    annual_rate = Column(Numeric(6, 3), nullable=False)
    duration_in_periods = Column(Integer, nullable=False)
    cadence = Column(_enum(CadenceEnum, "plan_cadence"), nullable=False, default=CadenceEnum.MONTHLY)

    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)


class InvestmentModel(Base):
    """A user's capital commitment"""
    __tablename__ = "investment"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user_profile.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("investment_plan.id"), nullable=False)

    amount = Column(Numeric(14, 2), nullable=False)
    cadence = Column(_enum(CadenceEnum, "investment_cadence"), nullable=False)
    total_payouts = Column(Integer, nullable=False)
    payouts_made = Column(Integer, nullable=False, default=0)
    status = Column(_enum(InvestmentStatusEnum, "investment_status"), nullable=False, default=InvestmentStatusEnum.PENDING)

    start_date = Column(Date, nullable=True)
    next_payout_date = Column(Date, nullable=True)

    created_at = Column(DateTime, nullable=False, default=now_utc_naive)
    updated_at = Column(DateTime, nullable=False, default=now_utc_naive, onupdate=now_utc_naive)

    plan = relationship("InvestmentPlanModel")

    __table_args__ = (
        Index(
            "ux_investment_user_pending",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
        Index(
            "ux_investment_user_active",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
        Index("ix_investment_due", "status", "next_payout_date"),
    )


class PaymentModel(Base):
    """Payment ledger - reference is the idempotency key"""
    __tablename__ = "payment"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reference = Column(String(80), nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("user_profile.id"), nullable=False, index=True)
    investment_id = Column(Integer, ForeignKey("investment.id"), nullable=True)

    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    method = Column(_enum(PaymentMethodEnum, "payment_method"), nullable=False)
    type = Column(_enum(PaymentTypeEnum, "payment_type"), nullable=False)
    status = Column(_enum(PaymentStatusEnum, "payment_status"), nullable=False, default=PaymentStatusEnum.PENDING)

    checkout_url = Column(Text, nullable=True)
    failure_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=now_utc_naive)
    confirmed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_payment_user_type_status", "user_id", "type", "status"),
    )


class RoiModel(Base):
    """Per-investment ROI snapshot and running totals"""
    __tablename__ = "roi"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user_profile.id"), nullable=False)
    investment_id = Column(Integer, ForeignKey("investment.id"), nullable=False)

    rate = Column(Numeric(6, 3), nullable=False)
    period_return_amount = Column(Numeric(14, 2), nullable=False)
    total_paid = Column(Numeric(14, 2), nullable=False, default=0)
    payouts_made = Column(Integer, nullable=False, default=0)
    last_payout_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=now_utc_naive)
    updated_at = Column(DateTime, nullable=False, default=now_utc_naive, onupdate=now_utc_naive)

    __table_args__ = (
        UniqueConstraint("user_id", "investment_id", name="ux_roi_user_investment"),
    )


class ReturnModel(Base):
    """One payout period"""
    __tablename__ = "investment_return"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user_profile.id"), nullable=False, index=True)
    investment_id = Column(Integer, ForeignKey("investment.id"), nullable=False)

    amount = Column(Numeric(14, 2), nullable=False)
    payout_date = Column(Date, nullable=False)
    status = Column(_enum(ReturnStatusEnum, "return_status"), nullable=False, default=ReturnStatusEnum.PENDING)
    paid_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=now_utc_naive)

    __table_args__ = (
        UniqueConstraint("investment_id", "payout_date", name="ux_return_investment_period"),
        Index("ix_return_status_date", "status", "payout_date"),
    )
