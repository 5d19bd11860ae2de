"""
Domain Models - Entities
Pure domain objects with no infrastructure dependencies
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Union


class Cadence(str, Enum):
    """Payout periodicity"""
    MONTHLY = "monthly"
    ANNUALLY = "annually"


class InvestmentStatus(str, Enum):
    """Investment lifecycle state"""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    """How money moved"""
    BANK = "bank"
    CASH = "cash"
    CARD = "card"
    CRYPTO = "crypto"


class PaymentType(str, Enum):
    """What the money was for"""
    REGISTRATION = "registration"
    INVESTMENT = "investment"
    ROI = "roi"


class PaymentStatus(str, Enum):
    """Payment state, set exactly once after pending"""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class ReturnStatus(str, Enum):
    """Scheduled payout state"""
    PENDING = "pending"
    DUE = "due"
    PAID = "paid"
    FAILED = "failed"


class KycStatus(str, Enum):
    """KYC review outcome"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class InvestmentPlan:
    """Investment plan terms - Immutable"""
    id: int
    name: str
    min_amount: Decimal
    max_amount: Optional[Decimal]
    monthly_rate: Decimal
    annual_rate: Decimal
    duration_in_periods: int
    cadence: Cadence
    description: Optional[str] = None
    active: bool = True

    def accepts_amount(self, amount: Decimal) -> bool:
        """Check plan bounds (no max means unbounded)"""
        if amount < self.min_amount:
            return False
        if self.max_amount is not None and amount > self.max_amount:
            return False
        return True

    @property
    def duration_months(self) -> int:
        """Plan duration expressed in months"""
        if self.cadence == Cadence.ANNUALLY:
            return self.duration_in_periods * 12
        return self.duration_in_periods

    def total_payouts_for(self, cadence: Cadence) -> int:
        """
        Number of payouts an investment receives over the plan duration
        when paid at the given cadence. Annual payouts never drop below one.
        """
        if cadence == Cadence.ANNUALLY:
            return max(1, self.duration_months // 12)
        return self.duration_months


@dataclass(frozen=True)
class Investment:
    """User's capital commitment to a plan"""
    id: int
    user_id: int
    plan_id: int
    amount: Decimal
    cadence: Cadence
    total_payouts: int
    payouts_made: int
    status: InvestmentStatus
    next_payout_date: Optional[date]
    start_date: Optional[date]
    created_at: Optional[datetime] = None

    @property
    def remaining_payouts(self) -> int:
        return self.total_payouts - self.payouts_made


@dataclass(frozen=True)
class Payment:
    """Money-in or money-out ledger record"""
    id: int
    reference: str
    user_id: int
    investment_id: Optional[int]
    amount: Decimal
    currency: str
    method: PaymentMethod
    type: PaymentType
    status: PaymentStatus
    checkout_url: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None


@dataclass(frozen=True)
class RoiRecord:
    """Per-investment return snapshot and running payout totals"""
    id: int
    user_id: int
    investment_id: int
    rate: Decimal
    period_return_amount: Decimal
    total_paid: Decimal
    payouts_made: int
    last_payout_date: Optional[datetime]


@dataclass(frozen=True)
class ReturnRecord:
    """One scheduled or settled payout"""
    id: int
    user_id: int
    investment_id: int
    amount: Decimal
    payout_date: date
    status: ReturnStatus
    paid_at: Optional[datetime] = None


@dataclass(frozen=True)
class RoiSnapshot:
    """Rate and per-period payout fixed at activation"""
    rate: Decimal
    period_return_amount: Decimal


# ----------------------------------------------------------------------
# Payout destinations (closed union)
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class BankPayout:
    account_holder_name: str
    account_number: str
    bank_name: str
    iban: Optional[str] = None
    swift_code: Optional[str] = None
    method: PaymentMethod = field(default=PaymentMethod.BANK, init=False)


@dataclass(frozen=True)
class CashPayout:
    pickup_location: Optional[str] = None
    method: PaymentMethod = field(default=PaymentMethod.CASH, init=False)


@dataclass(frozen=True)
class CardPayout:
    card_token: str
    last4: str
    method: PaymentMethod = field(default=PaymentMethod.CARD, init=False)


@dataclass(frozen=True)
class CryptoPayout:
    wallet_address: str
    coin_type: str
    method: PaymentMethod = field(default=PaymentMethod.CRYPTO, init=False)


PayoutDestination = Union[BankPayout, CashPayout, CardPayout, CryptoPayout]


@dataclass(frozen=True)
class UserProfile:
    """Identity/profile view consumed by the ledger"""
    id: int
    name: str
    email: str
    member_code: Optional[str]
    registration_paid: bool
    kyc_status: KycStatus
    payout_destination: Optional[PayoutDestination]


# ----------------------------------------------------------------------
# Operation results
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class ConfirmationResult:
    """
    Outcome of a payment confirmation.

    ``already_confirmed`` is True when the payment had already transitioned
    to success before this call; nothing was mutated in that case.

    ``duplicate`` is True when the payment was failed instead because the
    user had already paid for the same one-time purpose; it needs a refund.
    """
    payment: Payment
    already_confirmed: bool = False
    duplicate: bool = False


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of a released return"""
    payment_id: int
    payment_reference: str
    return_id: int
    amount: Decimal
    currency: str
    payout_method: PaymentMethod
    payout_details: str
    next_payout_date: Optional[date]
    investment_status: InvestmentStatus


@dataclass(frozen=True)
class TickSummary:
    """What one scheduler tick did"""
    run_date: date
    returns_created: int
    returns_promoted: int
    investments_skipped: int
