"""
Collaborator wiring for routes. Tests override these with fakes.
"""

from roi_ledger.domain.services.ports import PaymentGateway, ReceiptNotifier
from roi_ledger.services.gateway import HostedCheckoutGateway
from roi_ledger.services.notification_service import WebhookReceiptNotifier


def get_gateway() -> PaymentGateway:
    return HostedCheckoutGateway()


def get_notifier() -> ReceiptNotifier:
    return WebhookReceiptNotifier()
