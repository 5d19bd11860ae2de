"""
User Profile Repository
Identity/profile store the ledger consumes: KYC state, payout destination,
member code and registration flag.
"""

from typing import Any, Dict, Optional

from sqlalchemy import select, update, exists
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.domain.models import (
    BankPayout,
    CardPayout,
    CashPayout,
    CryptoPayout,
    KycStatus,
    PaymentMethod,
    PayoutDestination,
    UserProfile,
)
from roi_ledger.infrastructure.db.models import (
    KycStatusEnum,
    MemberCodeSequenceModel,
    PaymentMethodEnum,
    PaymentModel,
    PaymentStatusEnum,
    PaymentTypeEnum,
    UserProfileModel,
)
from roi_ledger.utils.time import now_utc_naive


class UserProfileRepository:
    """Repository for UserProfile"""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Identity store interface
    # ------------------------------------------------------------------

    async def get_user(self, user_id: int) -> Optional[UserProfile]:
        model = await self._get_model(user_id)
        return self._to_domain(model) if model else None

    async def is_kyc_approved(self, user_id: int) -> bool:
        model = await self._get_model(user_id)
        return bool(model and model.kyc_status == KycStatusEnum.APPROVED)

    async def get_payout_method(self, user_id: int) -> Optional[PayoutDestination]:
        model = await self._get_model(user_id)
        if model is None:
            return None
        return self._destination_from_columns(model.payout_method, model.payout_details)

    async def has_successful_registration_payment(self, user_id: int) -> bool:
        result = await self.session.execute(
            select(
                exists().where(
                    PaymentModel.user_id == user_id,
                    PaymentModel.type == PaymentTypeEnum.REGISTRATION,
                    PaymentModel.status == PaymentStatusEnum.SUCCESS,
                )
            )
        )
        return bool(result.scalar())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, name: str, email: str, phone: Optional[str] = None) -> UserProfile:
        model = UserProfileModel(
            name=name,
            email=email.strip().lower(),
            phone=phone,
            registration_paid=False,
            kyc_status=KycStatusEnum.PENDING,
        )
        self.session.add(model)
        await self.session.flush()
        return self._to_domain(model)

    async def get_by_email(self, email: str) -> Optional[UserProfile]:
        result = await self.session.execute(
            select(UserProfileModel).where(UserProfileModel.email == email.strip().lower())
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def update_kyc_status(
        self,
        user_id: int,
        status: KycStatus,
        message: Optional[str] = None,
    ) -> bool:
        result = await self.session.execute(
            update(UserProfileModel)
            .where(UserProfileModel.id == user_id)
            .values(
                kyc_status=KycStatusEnum(status.value),
                kyc_message=message,
                updated_at=now_utc_naive(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_payout_destination(self, user_id: int, destination: PayoutDestination) -> bool:
        result = await self.session.execute(
            update(UserProfileModel)
            .where(UserProfileModel.id == user_id)
            .values(
                payout_method=PaymentMethodEnum(destination.method.value),
                payout_details=self._destination_to_details(destination),
                updated_at=now_utc_naive(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_registration_paid(self, user_id: int) -> bool:
        """Set the paid flag; returns False when it was already set"""
        result = await self.session.execute(
            update(UserProfileModel)
            .where(
                UserProfileModel.id == user_id,
                UserProfileModel.registration_paid.is_(False),
            )
            .values(registration_paid=True, updated_at=now_utc_naive())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def assign_member_code_if_missing(self, user_id: int, prefix: str) -> Optional[str]:
        """
        Give the user the next sequential member code (PREFIX + 5 digits).

        Returns the newly assigned code, or None when the user already had one.
        Numbers come from an atomic increment on the per-prefix counter row,
        so concurrent registrations for different users get distinct codes.
        """
        model = await self._get_model(user_id)
        if model is None or model.member_code:
            return None

        code = await self._next_member_code(prefix)
        result = await self.session.execute(
            update(UserProfileModel)
            .where(
                UserProfileModel.id == user_id,
                UserProfileModel.member_code.is_(None),
            )
            .values(member_code=code, updated_at=now_utc_naive())
            .execution_options(synchronize_session=False)
        )
        return code if result.rowcount == 1 else None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _next_member_code(self, prefix: str) -> str:
        existing = await self.session.execute(
            select(MemberCodeSequenceModel.prefix).where(MemberCodeSequenceModel.prefix == prefix)
        )
        if existing.scalar_one_or_none() is None:
            # first use of the prefix: continue after any codes already issued
            seed = await self._highest_member_code_number(prefix)
            await self.session.execute(
                self._insert()(MemberCodeSequenceModel)
                .values(prefix=prefix, last_value=seed)
                .on_conflict_do_nothing(index_elements=["prefix"])
            )

        result = await self.session.execute(
            update(MemberCodeSequenceModel)
            .where(MemberCodeSequenceModel.prefix == prefix)
            .values(last_value=MemberCodeSequenceModel.last_value + 1)
            .returning(MemberCodeSequenceModel.last_value)
            .execution_options(synchronize_session=False)
        )
        return f"{prefix}{result.scalar_one():05d}"

    async def _highest_member_code_number(self, prefix: str) -> int:
        result = await self.session.execute(
            select(UserProfileModel.member_code)
            .where(UserProfileModel.member_code.like(f"{prefix}%"))
        )
        highest = 0
        for code in result.scalars().all():
            suffix = code[len(prefix):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return highest

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert
        if dialect == "sqlite":
            return sqlite_insert
        raise RuntimeError(f"Unsupported database dialect for member codes: {dialect}")

    async def _get_model(self, user_id: int) -> Optional[UserProfileModel]:
        result = await self.session.execute(
            select(UserProfileModel)
            .where(UserProfileModel.id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _destination_to_details(destination: PayoutDestination) -> Dict[str, Any]:
        if isinstance(destination, BankPayout):
            return {
                "account_holder_name": destination.account_holder_name,
                "account_number": destination.account_number,
                "bank_name": destination.bank_name,
                "iban": destination.iban,
                "swift_code": destination.swift_code,
            }
        if isinstance(destination, CryptoPayout):
            return {
                "wallet_address": destination.wallet_address,
                "coin_type": destination.coin_type,
            }
        if isinstance(destination, CardPayout):
            return {"card_token": destination.card_token, "last4": destination.last4}
        if isinstance(destination, CashPayout):
            return {"pickup_location": destination.pickup_location}
        raise TypeError(f"Unsupported payout destination: {type(destination).__name__}")

    @staticmethod
    def _destination_from_columns(
        method: Optional[PaymentMethodEnum],
        details: Optional[Dict[str, Any]],
    ) -> Optional[PayoutDestination]:
        if method is None:
            return None
        details = details or {}
        kind = PaymentMethod(method.value)

        if kind == PaymentMethod.BANK:
            if not details.get("account_number"):
                return None
            return BankPayout(
                account_holder_name=details.get("account_holder_name") or "",
                account_number=details["account_number"],
                bank_name=details.get("bank_name") or "",
                iban=details.get("iban"),
                swift_code=details.get("swift_code"),
            )
        if kind == PaymentMethod.CRYPTO:
            if not details.get("wallet_address"):
                return None
            return CryptoPayout(
                wallet_address=details["wallet_address"],
                coin_type=details.get("coin_type") or "",
            )
        if kind == PaymentMethod.CARD:
            if not details.get("card_token"):
                return None
            return CardPayout(card_token=details["card_token"], last4=details.get("last4") or "")
        return CashPayout(pickup_location=details.get("pickup_location"))

    def _to_domain(self, model: UserProfileModel) -> UserProfile:
        return UserProfile(
            id=model.id,
            name=model.name,
            email=model.email,
            member_code=model.member_code,
            registration_paid=bool(model.registration_paid),
            kyc_status=KycStatus(model.kyc_status.value),
            payout_destination=self._destination_from_columns(model.payout_method, model.payout_details),
        )
