"""
Request/response models shared by the routes.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from roi_ledger.core.errors import ValidationError
from roi_ledger.domain.models import (
    BankPayout,
    CardPayout,
    CashPayout,
    CryptoPayout,
    Investment,
    InvestmentPlan,
    Payment,
    PaymentMethod,
    PayoutDestination,
    UserProfile,
)


class PlanResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    min_amount: Decimal
    max_amount: Optional[Decimal] = None
    monthly_rate: Decimal
    annual_rate: Decimal
    duration_in_periods: int
    cadence: str
    active: bool

    @classmethod
    def from_domain(cls, plan: InvestmentPlan) -> "PlanResponse":
        return cls(
            id=plan.id,
            name=plan.name,
            description=plan.description,
            min_amount=plan.min_amount,
            max_amount=plan.max_amount,
            monthly_rate=plan.monthly_rate,
            annual_rate=plan.annual_rate,
            duration_in_periods=plan.duration_in_periods,
            cadence=plan.cadence.value,
            active=plan.active,
        )


class InvestmentResponse(BaseModel):
    id: int
    user_id: int
    plan_id: int
    amount: Decimal
    cadence: str
    status: str
    total_payouts: int
    payouts_made: int
    start_date: Optional[date] = None
    next_payout_date: Optional[date] = None

    @classmethod
    def from_domain(cls, investment: Investment) -> "InvestmentResponse":
        return cls(
            id=investment.id,
            user_id=investment.user_id,
            plan_id=investment.plan_id,
            amount=investment.amount,
            cadence=investment.cadence.value,
            status=investment.status.value,
            total_payouts=investment.total_payouts,
            payouts_made=investment.payouts_made,
            start_date=investment.start_date,
            next_payout_date=investment.next_payout_date,
        )


class PaymentResponse(BaseModel):
    id: int
    reference: str
    user_id: int
    investment_id: Optional[int] = None
    amount: Decimal
    currency: str
    method: str
    type: str
    status: str
    checkout_url: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            id=payment.id,
            reference=payment.reference,
            user_id=payment.user_id,
            investment_id=payment.investment_id,
            amount=payment.amount,
            currency=payment.currency,
            method=payment.method.value,
            type=payment.type.value,
            status=payment.status.value,
            checkout_url=payment.checkout_url,
            failure_reason=payment.failure_reason,
            created_at=payment.created_at,
            confirmed_at=payment.confirmed_at,
        )


class ConfirmationResponse(BaseModel):
    already_confirmed: bool
    duplicate: bool = False
    payment: PaymentResponse


class PayoutDestinationRequest(BaseModel):
    """Flat payload; which fields are required depends on ``method``"""
    method: PaymentMethod
    account_holder_name: Optional[str] = None
    account_number: Optional[str] = None
    bank_name: Optional[str] = None
    iban: Optional[str] = None
    swift_code: Optional[str] = None
    wallet_address: Optional[str] = None
    coin_type: Optional[str] = None
    card_token: Optional[str] = None
    last4: Optional[str] = Field(None, min_length=4, max_length=4)
    pickup_location: Optional[str] = None

    def to_domain(self) -> PayoutDestination:
        if self.method == PaymentMethod.BANK:
            return BankPayout(
                account_holder_name=self.account_holder_name or "",
                account_number=self.account_number or "",
                bank_name=self.bank_name or "",
                iban=self.iban,
                swift_code=self.swift_code,
            )
        if self.method == PaymentMethod.CRYPTO:
            return CryptoPayout(wallet_address=self.wallet_address or "", coin_type=self.coin_type or "")
        if self.method == PaymentMethod.CARD:
            return CardPayout(card_token=self.card_token or "", last4=self.last4 or "")
        if self.method == PaymentMethod.CASH:
            return CashPayout(pickup_location=self.pickup_location)
        raise ValidationError(f"Unsupported payout method: {self.method}", reason="invalid_payout_destination")


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    member_code: Optional[str] = None
    registration_paid: bool
    kyc_status: str
    payout_method: Optional[str] = None

    @classmethod
    def from_domain(cls, user: UserProfile) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            member_code=user.member_code,
            registration_paid=user.registration_paid,
            kyc_status=user.kyc_status.value,
            payout_method=user.payout_destination.method.value if user.payout_destination else None,
        )
