"""
Collaborator protocols.

The ledger talks to identity, gateway and notification services only
through these narrow interfaces.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol

from roi_ledger.domain.models import Payment, PayoutDestination, UserProfile


class IdentityStore(Protocol):
    """Identity/profile store - ASYNC"""

    async def get_user(self, user_id: int) -> Optional[UserProfile]:
        ...

    async def is_kyc_approved(self, user_id: int) -> bool:
        ...

    async def get_payout_method(self, user_id: int) -> Optional[PayoutDestination]:
        ...

    async def has_successful_registration_payment(self, user_id: int) -> bool:
        ...

    async def mark_registration_paid(self, user_id: int) -> bool:
        """Set the user's paid flag; False if already set"""
        ...

    async def assign_member_code_if_missing(self, user_id: int, prefix: str) -> Optional[str]:
        """Assign the permanent sequential member code once"""
        ...


class PaymentGateway(Protocol):
    """Hosted checkout for card/crypto payments"""

    async def create_checkout(self, payment: Payment, user: UserProfile) -> str:
        """Return the URL the payer is redirected to. Raises ExternalServiceError."""
        ...


@dataclass(frozen=True)
class ReceiptNotice:
    """Payload handed to the receipt/notification service"""
    payment_id: int
    payment_reference: str
    amount: Decimal
    currency: str
    user_id: int
    description: str
    payout_details: Optional[str] = None

    def to_payload(self) -> dict:
        return {
            "payment_id": self.payment_id,
            "payment_reference": self.payment_reference,
            "amount": str(self.amount),
            "currency": self.currency,
            "user_id": self.user_id,
            "description": self.description,
            "payout_details": self.payout_details,
        }


class ReceiptNotifier(Protocol):
    async def send_receipt(self, notice: ReceiptNotice) -> None:
        """Deliver a receipt. Raises ExternalServiceError on failure."""
        ...
