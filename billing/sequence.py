import datetime
import logging

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from .exceptions import SequenceUnavailable
from .models import BillingSettings

logger = logging.getLogger(__name__)

INVOICE_PREFIX = 'INV'


def fiscal_year_label(day: datetime.date) -> str:
    """April-March fiscal year, e.g. ``2025-26`` for 2025-04-01 .. 2026-03-31."""
    start_year = day.year if day.month >= 4 else day.year - 1
    return f"{start_year}-{(start_year + 1) % 100:02d}"


def format_invoice_number(value: int, day: datetime.date) -> str:
    return f"{INVOICE_PREFIX}-{fiscal_year_label(day)}/{value:04d}"


def _increment() -> int | None:
    with transaction.atomic():
        # The UPDATE takes the row lock; the read below happens under it.
        updated = BillingSettings.objects.filter(singleton=True).update(
            current_sequence=F('current_sequence') + 1
        )
        if not updated:
            return None
        return BillingSettings.objects.filter(singleton=True).values_list('current_sequence', flat=True).get()


def next_sequence_value() -> int:
    """Atomically bump the counter and return the post-increment value."""
    try:
        value = _increment()
        if value is not None:
            return value
        try:
            with transaction.atomic():
                BillingSettings.objects.create(singleton=True, current_sequence=1)
            return 1
        except IntegrityError:
            # Another writer created the singleton first.
            value = _increment()
            if value is None:
                raise SequenceUnavailable()
            return value
    except DatabaseError as exc:
        logger.exception('Invoice sequence increment failed')
        raise SequenceUnavailable() from exc


def next_invoice_number(today: datetime.date | None = None) -> str:
    today = today or timezone.localdate()
    return format_invoice_number(next_sequence_value(), today)
