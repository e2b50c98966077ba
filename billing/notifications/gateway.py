import logging
from dataclasses import dataclass
from typing import Protocol

from django.conf import settings

from . import email, whatsapp

logger = logging.getLogger(__name__)

NOTIFY_STATUSES = frozenset({'cancelled', 'overdue', 'paid'})


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    error: str | None = None


class NotificationGateway(Protocol):
    def notify_status_change(self, invoice, status: str) -> NotificationResult:
        ...


class DefaultNotificationGateway:
    """Email first, then WhatsApp. Succeeds when any channel delivered."""

    def notify_status_change(self, invoice, status: str) -> NotificationResult:
        if status not in NOTIFY_STATUSES:
            return NotificationResult(False, f'Status {status} does not notify')
        if not getattr(settings, 'BILLING_SEND_NOTIFICATIONS', True):
            return NotificationResult(False, 'Notifications are disabled')

        errors = []
        sent_email, email_error = email.send_status_email(invoice, status)
        if email_error:
            errors.append(f'email: {email_error}')

        link = f"{settings.BILLING_PUBLIC_URL.rstrip('/')}/api/v1/invoices/{invoice.pk}/pdf/"
        sent_whatsapp = whatsapp.send_invoice_update(invoice, status, link=link)
        if not sent_whatsapp:
            errors.append('whatsapp: not delivered')

        if sent_email or sent_whatsapp:
            return NotificationResult(True)
        logger.warning('No notification delivered for %s (%s)', invoice.invoice_number, '; '.join(errors))
        return NotificationResult(False, '; '.join(errors))


class NullNotificationGateway:
    """Gateway that records calls without sending anything."""

    def __init__(self):
        self.calls = []

    def notify_status_change(self, invoice, status: str) -> NotificationResult:
        self.calls.append((invoice.pk, status))
        return NotificationResult(True)
