"""
NOTIFICATION SERVICE

Receipt delivery to the external receipt/notification webhook.
No DB access. No business logic.
"""

import logging
from typing import Optional

import httpx

from roi_ledger.config import settings
from roi_ledger.core.errors import ExternalServiceError
from roi_ledger.domain.services.ports import ReceiptNotice, ReceiptNotifier

_logger = logging.getLogger(__name__)


class WebhookReceiptNotifier:
    """POSTs receipt payloads as JSON. Skips silently when no URL is configured."""

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url if url is not None else settings.RECEIPT_WEBHOOK_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    async def send_receipt(self, notice: ReceiptNotice) -> None:
        if not self.url:
            _logger.info(f"Receipt webhook not configured; skipping receipt for {notice.payment_reference}")
            return

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.url, json=notice.to_payload())
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ExternalServiceError(
                f"Receipt delivery failed for {notice.payment_reference}: {exc}",
                reason="receipt_delivery_failed",
            ) from exc

        _logger.info(f"Receipt sent: reference={notice.payment_reference} amount={notice.amount}")


async def notify_safely(notifier: Optional[ReceiptNotifier], notice: ReceiptNotice) -> bool:
    """
    Deliver a receipt after the financial write has committed.
    Failures are logged and never propagate.
    """
    if notifier is None:
        return False
    try:
        await notifier.send_receipt(notice)
        return True
    except Exception:
        _logger.exception(f"Receipt notification failed for {notice.payment_reference}")
        return False
