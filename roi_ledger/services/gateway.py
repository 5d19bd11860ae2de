"""
Hosted checkout client.

Card and crypto payments are collected on the gateway's hosted page; the
ledger only asks for a redirect URL and later receives a callback.
"""

import logging
from typing import Optional

import httpx

from roi_ledger.config import settings
from roi_ledger.core.errors import ExternalServiceError
from roi_ledger.domain.models import Payment, UserProfile

logger = logging.getLogger(__name__)


class HostedCheckoutGateway:
    def __init__(
        self,
        checkout_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.checkout_url = checkout_url if checkout_url is not None else settings.GATEWAY_CHECKOUT_URL
        self.api_key = api_key if api_key is not None else settings.GATEWAY_API_KEY
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    async def create_checkout(self, payment: Payment, user: UserProfile) -> str:
        if not self.checkout_url:
            raise ExternalServiceError("Payment gateway is not configured", reason="gateway_not_configured")

        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload = {
            "order_id": payment.reference,
            "amount": str(payment.amount),
            "currency": payment.currency,
            "method": payment.method.value,
            "description": f"{payment.type.value.capitalize()} payment",
            "customer": {"name": user.name, "email": user.email},
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.checkout_url, json=payload, headers=headers)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ExternalServiceError(
                f"Checkout creation failed for {payment.reference}: {exc}",
                reason="gateway_request_failed",
            ) from exc

        url = data.get("checkout_url") if isinstance(data, dict) else None
        if not url:
            raise ExternalServiceError(
                f"Gateway returned no checkout URL for {payment.reference}",
                reason="gateway_bad_response",
            )

        logger.info(f"Checkout created: reference={payment.reference} method={payment.method.value}")
        return url
