"""
User Profile API Routes
Registration, KYC review outcome and payout destination
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.api.schemas import PayoutDestinationRequest, UserResponse
from roi_ledger.domain.models import KycStatus
from roi_ledger.domain.services.profile_service import ProfileService
from roi_ledger.infrastructure.db.database import get_db

router = APIRouter()


class RegisterUserRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)


class KycUpdateRequest(BaseModel):
    status: KycStatus
    message: Optional[str] = Field(None, max_length=500)


@router.post("", response_model=UserResponse, status_code=201)
async def register_user(request: RegisterUserRequest, db: AsyncSession = Depends(get_db)):
    user = await ProfileService(db).register_user(request.name, request.email, request.phone)
    return UserResponse.from_domain(user)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return UserResponse.from_domain(await ProfileService(db).get_user(user_id))


@router.put("/{user_id}/kyc", response_model=UserResponse)
async def update_kyc(user_id: int, request: KycUpdateRequest, db: AsyncSession = Depends(get_db)):
    user = await ProfileService(db).update_kyc_status(user_id, request.status, request.message)
    return UserResponse.from_domain(user)


@router.put("/{user_id}/payout-destination", response_model=UserResponse)
async def set_payout_destination(
    user_id: int,
    request: PayoutDestinationRequest,
    db: AsyncSession = Depends(get_db),
):
    user = await ProfileService(db).set_payout_destination(user_id, request.to_domain())
    return UserResponse.from_domain(user)
