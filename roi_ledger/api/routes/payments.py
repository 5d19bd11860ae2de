"""
Payment API Routes

- Open a pending payment (registration / investment)
- Gateway callback
- Admin confirmation for bank/cash payments
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from roi_ledger.api.dependencies import get_gateway, get_notifier
from roi_ledger.api.schemas import ConfirmationResponse, PaymentResponse
from roi_ledger.domain.models import ConfirmationResult, PaymentMethod, PaymentType
from roi_ledger.domain.services.payment_ledger import PaymentLedger
from roi_ledger.domain.services.ports import PaymentGateway, ReceiptNotifier
from roi_ledger.infrastructure.db.database import get_db

router = APIRouter()


class OpenPaymentRequest(BaseModel):
    user_id: int
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod
    type: PaymentType
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    investment_id: Optional[int] = None


class ConfirmPaymentRequest(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class ConfirmByQueryRequest(BaseModel):
    user_id: int
    type: PaymentType
    method: Optional[PaymentMethod] = None
    investment_id: Optional[int] = None


class GatewayCallbackRequest(BaseModel):
    reference: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1)
    amount: Optional[Decimal] = None
    currency: Optional[str] = None


def _confirmation(result: ConfirmationResult) -> ConfirmationResponse:
    return ConfirmationResponse(
        already_confirmed=result.already_confirmed,
        duplicate=result.duplicate,
        payment=PaymentResponse.from_domain(result.payment),
    )


@router.post("", response_model=PaymentResponse, status_code=201)
async def open_payment(
    request: OpenPaymentRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    ledger = PaymentLedger(db, gateway=gateway)
    payment = await ledger.open_pending(
        user_id=request.user_id,
        amount=request.amount,
        method=request.method,
        payment_type=request.type,
        currency=request.currency,
        investment_id=request.investment_id,
    )
    return PaymentResponse.from_domain(payment)


@router.post("/callback", response_model=ConfirmationResponse)
async def gateway_callback(
    request: GatewayCallbackRequest,
    db: AsyncSession = Depends(get_db),
    notifier: ReceiptNotifier = Depends(get_notifier),
):
    """
    Gateway webhook. Replays return already_confirmed=true; a second payment
    for an already-paid purpose returns duplicate=true.
    """
    ledger = PaymentLedger(db, notifier=notifier)
    result = await ledger.handle_gateway_callback(
        reference=request.reference,
        status=request.status,
        amount=request.amount,
        currency=request.currency,
    )
    return _confirmation(result)


@router.post("/confirm-by-query", response_model=ConfirmationResponse)
async def confirm_by_query(
    request: ConfirmByQueryRequest,
    db: AsyncSession = Depends(get_db),
    notifier: ReceiptNotifier = Depends(get_notifier),
):
    ledger = PaymentLedger(db, notifier=notifier)
    result = await ledger.confirm_by_query(
        user_id=request.user_id,
        payment_type=request.type,
        method=request.method,
        investment_id=request.investment_id,
    )
    return _confirmation(result)


@router.post("/{reference}/confirm", response_model=ConfirmationResponse)
async def confirm_payment(
    reference: str,
    request: Optional[ConfirmPaymentRequest] = None,
    db: AsyncSession = Depends(get_db),
    notifier: ReceiptNotifier = Depends(get_notifier),
):
    """Admin confirmation (bank transfer received, cash collected)"""
    ledger = PaymentLedger(db, notifier=notifier)
    request = request or ConfirmPaymentRequest()
    result = await ledger.confirm(reference, amount=request.amount, currency=request.currency)
    return _confirmation(result)
