"""
Profile service: the write side of the identity/profile store.
"""

import logging
import re
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.core.errors import ConflictError, NotFoundError, ValidationError
from roi_ledger.domain.models import (
    BankPayout,
    CardPayout,
    CashPayout,
    CryptoPayout,
    KycStatus,
    PayoutDestination,
    UserProfile,
)
from roi_ledger.infrastructure.db.repositories.profile_repository import UserProfileRepository
from roi_ledger.infrastructure.db.unit_of_work import transactional

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ProfileService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.profile_repo = UserProfileRepository(session)

    async def register_user(self, name: str, email: str, phone: Optional[str] = None) -> UserProfile:
        name = (name or "").strip()
        email = (email or "").strip().lower()
        if not name:
            raise ValidationError("Name is required", reason="name_required")
        if not _EMAIL_RE.match(email):
            raise ValidationError(f"Invalid e-mail address: {email}", reason="invalid_email")

        async with transactional(self.session):
            if await self.profile_repo.get_by_email(email) is not None:
                raise ConflictError("E-mail already registered", reason="email_taken")
            try:
                user = await self.profile_repo.create(name, email, phone)
            except IntegrityError as exc:
                raise ConflictError("E-mail already registered", reason="email_taken") from exc

        logger.info(f"User registered: id={user.id}")
        return user

    async def get_user(self, user_id: int) -> UserProfile:
        user = await self.profile_repo.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", reason="user_not_found")
        return user

    async def update_kyc_status(
        self,
        user_id: int,
        status: KycStatus,
        message: Optional[str] = None,
    ) -> UserProfile:
        async with transactional(self.session):
            if not await self.profile_repo.update_kyc_status(user_id, status, message):
                raise NotFoundError(f"User {user_id} not found", reason="user_not_found")
            user = await self.profile_repo.get_user(user_id)

        logger.info(f"KYC updated: user={user_id} status={status.value}")
        return user

    async def set_payout_destination(self, user_id: int, destination: PayoutDestination) -> UserProfile:
        """Replace the user's payout destination; used by every later settlement"""
        self._validate_destination(destination)
        async with transactional(self.session):
            if not await self.profile_repo.set_payout_destination(user_id, destination):
                raise NotFoundError(f"User {user_id} not found", reason="user_not_found")
            user = await self.profile_repo.get_user(user_id)

        logger.info(f"Payout destination set: user={user_id} method={destination.method.value}")
        return user

    @staticmethod
    def _validate_destination(destination: PayoutDestination) -> None:
        if isinstance(destination, BankPayout):
            if not destination.account_number.strip() or not destination.bank_name.strip():
                raise ValidationError("Bank payouts need a bank name and account number", reason="invalid_payout_destination")
            if not destination.account_holder_name.strip():
                raise ValidationError("Bank payouts need an account holder", reason="invalid_payout_destination")
        elif isinstance(destination, CryptoPayout):
            if not destination.wallet_address.strip() or not destination.coin_type.strip():
                raise ValidationError("Crypto payouts need a wallet and coin", reason="invalid_payout_destination")
        elif isinstance(destination, CardPayout):
            if not destination.card_token.strip() or not re.fullmatch(r"\d{4}", destination.last4 or ""):
                raise ValidationError("Card payouts need a token and the last 4 digits", reason="invalid_payout_destination")
        elif not isinstance(destination, CashPayout):
            raise ValidationError("Unknown payout destination", reason="invalid_payout_destination")
