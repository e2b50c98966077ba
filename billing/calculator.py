"""Money arithmetic for invoices.

Amounts are summed at full precision and quantized once, half-up, to two
decimal places. ``total_amount`` is always the sum of the quantized subtotal
and GST so the three figures on an invoice add up exactly.

``check_budget`` compares against a commitment read before the write; two
concurrent issuers on the same project can both pass and jointly overrun the
budget.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .exceptions import BudgetExceeded

CENT = Decimal('0.01')
HUNDRED = Decimal('100')


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    gst_amount: Decimal
    total_amount: Decimal


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None or value == '':
        return Decimal('0')
    try:
        # str() keeps floats like 0.1 from dragging binary noise along.
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f'Invalid amount: {value!r}') from exc


def to_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _service_amount(service) -> Decimal:
    if isinstance(service, dict):
        raw = service.get('amount')
    else:
        raw = getattr(service, 'amount', None)
    amount = to_decimal(raw)
    if amount < 0:
        raise ValueError('Line item amounts cannot be negative.')
    return amount


def compute_totals(services, gst_percentage, include_gst: bool) -> Totals:
    percentage = to_decimal(gst_percentage)
    if percentage < 0:
        raise ValueError('GST percentage cannot be negative.')

    raw_subtotal = sum((_service_amount(service) for service in services), Decimal('0'))
    raw_gst = raw_subtotal * percentage / HUNDRED if include_gst else Decimal('0')

    subtotal = to_money(raw_subtotal)
    gst_amount = to_money(raw_gst)
    return Totals(subtotal=subtotal, gst_amount=gst_amount, total_amount=subtotal + gst_amount)


def check_budget(project_total, committed, candidate) -> Decimal:
    """Return the headroom left after ``candidate``; raise when it goes negative."""
    project_total = to_decimal(project_total)
    committed = to_decimal(committed)
    candidate = to_decimal(candidate)
    if committed + candidate > project_total:
        raise BudgetExceeded(remaining=to_money(project_total - committed))
    return to_money(project_total - committed - candidate)
