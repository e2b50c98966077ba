"""Invoice state machine.

Every mutation goes through :class:`InvoiceLifecycleManager`. Writes are
conditional on the invoice ``version`` read at the start of the operation, so
two requests racing on the same invoice cannot silently overwrite each other;
the loser gets :class:`~billing.exceptions.StaleInvoice` and may retry.

The budget check reads the committed subtotal and compares it before the
invoice row is written. It is not atomic with that write: two concurrent
creations on one project can both pass and jointly overrun the budget.
"""

import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import transaction
from django.db.models import F
from django.utils import timezone
from django.utils.dateparse import parse_date

from .activity import log_invoice_activity, log_staff_activity
from .calculator import Totals, check_budget, compute_totals, to_decimal, to_money
from .documents import render, snapshot_from_invoice
from .exceptions import (
    BillingError,
    InvalidPatch,
    InvalidState,
    InvalidStatus,
    InvoiceNotFound,
    ProjectNotFound,
    RemarkRequired,
    StaleInvoice,
)
from .models import (
    BankAccount,
    BillingSettings,
    Invoice,
    InvoiceLine,
    InvoiceStatusHistory,
    Payment,
    Project,
    StaffActivity,
)
from .notifications import NOTIFY_STATUSES, DefaultNotificationGateway, NotificationResult
from .sequence import next_invoice_number

logger = logging.getLogger(__name__)

OVERDUE_REMARK = 'Automatically marked as overdue by system'

PATCHABLE_FIELDS = frozenset({
    'services',
    'gst_percentage',
    'include_gst',
    'due_date',
    'issue_date',
    'payment_method',
    'bank_account_id',
    'custom_payment_details',
})
MONEY_FIELDS = frozenset({'services', 'gst_percentage', 'include_gst'})


@dataclass(frozen=True)
class DeletionResult:
    hard_deleted: bool
    invoice: Invoice


class InvoiceLifecycleManager:
    def __init__(self, settings: BillingSettings, notifier, actor=None, clock=None):
        self.settings = settings
        self.notifier = notifier
        self.actor = actor
        self.clock = clock or timezone.now

    @classmethod
    def default(cls, actor=None) -> 'InvoiceLifecycleManager':
        return cls(BillingSettings.load(), DefaultNotificationGateway(), actor=actor)

    # -- lookups ---------------------------------------------------------

    def today(self) -> datetime.date:
        return timezone.localdate(self.clock())

    def find_invoice(self, invoice_id) -> Invoice:
        """Return the invoice, soft-deleted ones included."""
        try:
            return Invoice.objects.select_related('project__client', 'bank_account').get(pk=invoice_id)
        except (Invoice.DoesNotExist, ValueError, TypeError):
            raise InvoiceNotFound(f"Invoice {invoice_id} not found.") from None

    def _get_project(self, project_id) -> Project:
        try:
            return Project.objects.select_related('client').get(pk=project_id)
        except (Project.DoesNotExist, ValueError, TypeError):
            raise ProjectNotFound(f"Project {project_id} not found.") from None

    def _bank_account(self, bank_account_id):
        if bank_account_id in (None, ''):
            return None
        try:
            return BankAccount.objects.get(pk=bank_account_id)
        except (BankAccount.DoesNotExist, ValueError, TypeError):
            raise InvalidPatch(f"Bank account {bank_account_id} not found.") from None

    @property
    def _history_actor(self):
        if self.actor is not None and getattr(self.actor, 'is_authenticated', False):
            return self.actor
        return None

    # -- helpers ---------------------------------------------------------

    def _normalize_services(self, services) -> list[dict]:
        if not isinstance(services, (list, tuple)):
            raise InvalidPatch('Services must be a list of line items.')
        lines = []
        for service in services:
            if not isinstance(service, dict):
                service = {
                    'description': getattr(service, 'description', ''),
                    'amount': getattr(service, 'amount', None),
                    'hours': getattr(service, 'hours', None),
                    'rate': getattr(service, 'rate', None),
                    'team_role': getattr(service, 'team_role', ''),
                }
            try:
                amount = to_decimal(service.get('amount'))
                hours = service.get('hours')
                rate = service.get('rate')
                lines.append({
                    'description': (service.get('description') or '').strip(),
                    'amount': amount,
                    'hours': to_decimal(hours) if hours not in (None, '') else None,
                    'rate': to_decimal(rate) if rate not in (None, '') else None,
                    'team_role': (service.get('team_role') or '').strip(),
                })
            except ValueError as exc:
                raise InvalidPatch(str(exc)) from exc
        return lines

    def _lines_of(self, invoice: Invoice) -> list[dict]:
        return [
            {
                'description': line.description,
                'amount': line.amount,
                'hours': line.hours,
                'rate': line.rate,
                'team_role': line.team_role,
            }
            for line in invoice.lines.all()
        ]

    def _totals(self, lines, gst_percentage, include_gst) -> Totals:
        try:
            return compute_totals(lines, gst_percentage, include_gst)
        except ValueError as exc:
            raise InvalidPatch(str(exc)) from exc

    def _gst(self, gst_percentage, include_gst) -> tuple[Decimal, bool]:
        if include_gst is None:
            include_gst = self.settings.enable_gst
        if gst_percentage in (None, ''):
            gst_percentage = self.settings.default_gst_percentage
        try:
            gst_percentage = to_money(gst_percentage)
        except ValueError as exc:
            raise InvalidPatch(str(exc)) from exc
        return gst_percentage, bool(include_gst)

    def _date(self, value, field_name):
        if value in (None, ''):
            return None
        if isinstance(value, datetime.date):
            return value
        parsed = parse_date(str(value))
        if parsed is None:
            raise InvalidPatch(f"{field_name} must be a date (YYYY-MM-DD).")
        return parsed

    def _payment_method(self, value) -> str:
        if value not in Invoice.PaymentMethod.values:
            raise InvalidPatch(f"Unknown payment method '{value}'.")
        return value

    def _save_lines(self, invoice: Invoice, lines: list[dict]):
        InvoiceLine.objects.bulk_create([
            InvoiceLine(invoice=invoice, position=position, **line)
            for position, line in enumerate(lines)
        ])

    def _write(self, invoice: Invoice, changes: dict):
        """Apply ``changes`` only if nobody else wrote since ``invoice`` was read."""
        updated = Invoice.objects.filter(pk=invoice.pk, version=invoice.version).update(
            version=F('version') + 1,
            updated_at=timezone.now(),
            **changes,
        )
        if not updated:
            raise StaleInvoice(f"Invoice {invoice.invoice_number} was changed by another request. Please retry.")

    def _record(self, invoice: Invoice, status: str, remark: str = ''):
        InvoiceStatusHistory.objects.create(
            invoice=invoice,
            status=status,
            remark=remark or '',
            actor=self._history_actor,
        )

    # -- operations ------------------------------------------------------

    def create_invoice(
        self,
        project_id,
        services,
        gst_percentage=None,
        include_gst=None,
        due_date=None,
        issue_date=None,
        payment_method=Invoice.PaymentMethod.BANK_ACCOUNT,
        bank_account_id=None,
        custom_payment_details='',
    ) -> Invoice:
        project = self._get_project(project_id)
        lines = self._normalize_services(services)
        gst_percentage, include_gst = self._gst(gst_percentage, include_gst)
        totals = self._totals(lines, gst_percentage, include_gst)
        check_budget(project.total_amount, project.committed_subtotal(), totals.subtotal)

        payment_method = self._payment_method(payment_method)
        bank_account = self._bank_account(bank_account_id)
        issue_date = self._date(issue_date, 'issue_date') or self.today()
        due_date = self._date(due_date, 'due_date')
        if due_date and due_date < issue_date:
            raise InvalidPatch('Due date cannot be earlier than the issue date.')

        with transaction.atomic():
            invoice = Invoice.objects.create(
                invoice_number=next_invoice_number(self.today()),
                project=project,
                currency=project.currency,
                issue_date=issue_date,
                due_date=due_date,
                subtotal=totals.subtotal,
                gst_percentage=gst_percentage,
                gst_amount=totals.gst_amount,
                include_gst=include_gst,
                total_amount=totals.total_amount,
                status=Invoice.Status.DRAFT,
                paid_amount=Decimal('0'),
                balance_due=totals.total_amount,
                payment_method=payment_method,
                bank_account=bank_account,
                custom_payment_details=custom_payment_details or '',
            )
            self._save_lines(invoice, lines)

        logger.info('Created invoice %s for project %s (%s)', invoice.invoice_number, project.pk, totals.total_amount)
        log_invoice_activity(self.actor, invoice, 'Invoice created')
        return self.find_invoice(invoice.pk)

    def update_invoice(self, invoice_id, patch: dict) -> Invoice:
        invoice = self.find_invoice(invoice_id)
        if invoice.status != Invoice.Status.DRAFT:
            raise InvalidState(
                f"Invoice {invoice.invoice_number} is {invoice.status}; only draft invoices can be edited."
            )
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise InvalidPatch(f"These fields cannot be changed: {', '.join(sorted(unknown))}.")

        changes = {}
        lines = None
        if 'services' in patch:
            lines = self._normalize_services(patch['services'])

        if MONEY_FIELDS & patch.keys():
            gst_percentage, include_gst = self._gst(
                patch.get('gst_percentage', invoice.gst_percentage),
                patch.get('include_gst', invoice.include_gst),
            )
            totals = self._totals(lines if lines is not None else self._lines_of(invoice), gst_percentage, include_gst)
            project = invoice.project
            check_budget(project.total_amount, project.committed_subtotal(exclude=invoice), totals.subtotal)
            changes.update(
                subtotal=totals.subtotal,
                gst_percentage=gst_percentage,
                gst_amount=totals.gst_amount,
                include_gst=include_gst,
                total_amount=totals.total_amount,
                balance_due=max(totals.total_amount - invoice.paid_amount, Decimal('0')),
            )

        if 'issue_date' in patch:
            changes['issue_date'] = self._date(patch['issue_date'], 'issue_date') or invoice.issue_date
        if 'due_date' in patch:
            changes['due_date'] = self._date(patch['due_date'], 'due_date')
        issue_date = changes.get('issue_date', invoice.issue_date)
        due_date = changes.get('due_date', invoice.due_date)
        if due_date and issue_date and due_date < issue_date:
            raise InvalidPatch('Due date cannot be earlier than the issue date.')
        if 'payment_method' in patch:
            changes['payment_method'] = self._payment_method(patch['payment_method'])
        if 'bank_account_id' in patch:
            changes['bank_account'] = self._bank_account(patch['bank_account_id'])
        if 'custom_payment_details' in patch:
            changes['custom_payment_details'] = patch['custom_payment_details'] or ''

        changes.update(pdf_document=None, pdf_generated_at=None)
        with transaction.atomic():
            self._write(invoice, changes)
            if lines is not None:
                invoice.lines.all().delete()
                self._save_lines(invoice, lines)

        log_invoice_activity(self.actor, invoice, 'Draft updated')
        return self.find_invoice(invoice.pk)

    def transition_status(
        self,
        invoice_id,
        new_status: str,
        remark: str = '',
        paid_date=None,
        paid_amount_delta=None,
    ) -> Invoice:
        if new_status not in Invoice.Status.values:
            raise InvalidStatus(f"'{new_status}' is not a valid invoice status.")
        invoice = self.find_invoice(invoice_id)
        if new_status == Invoice.Status.DRAFT and invoice.status != Invoice.Status.DRAFT:
            raise InvalidState(f"Invoice {invoice.invoice_number} is {invoice.status}; it cannot go back to draft.")
        paid_date = self._date(paid_date, 'paid_date')

        if (
            invoice.status == Invoice.Status.CANCELLED
            and new_status != Invoice.Status.CANCELLED
            and not invoice.is_deleted
        ):
            # Leaving cancelled puts the subtotal back into the committed sum.
            project = invoice.project
            check_budget(project.total_amount, project.committed_subtotal(exclude=invoice), invoice.subtotal)

        effective = new_status
        changes = {}
        if new_status == Invoice.Status.PAID:
            changes.update(
                paid_amount=invoice.total_amount,
                balance_due=Decimal('0'),
                paid_date=paid_date or self.today(),
            )
        elif new_status == Invoice.Status.PARTIAL:
            if paid_amount_delta in (None, ''):
                raise InvalidPatch('A partial payment needs the amount paid.')
            try:
                delta = to_money(paid_amount_delta)
            except ValueError as exc:
                raise InvalidPatch(str(exc)) from exc
            if delta <= 0:
                raise InvalidPatch('The amount paid must be greater than zero.')
            paid_amount = invoice.paid_amount + delta
            balance_due = invoice.total_amount - paid_amount
            if balance_due <= 0:
                effective = Invoice.Status.PAID
                paid_amount = invoice.total_amount
                balance_due = Decimal('0')
                changes['paid_date'] = paid_date or self.today()
            changes.update(paid_amount=paid_amount, balance_due=balance_due)

        changes.update(status=effective, pdf_document=None, pdf_generated_at=None)
        with transaction.atomic():
            self._write(invoice, changes)
            self._record(invoice, effective, remark)
            if effective in NOTIFY_STATUSES:
                invoice_pk = invoice.pk
                transaction.on_commit(lambda: self._notify(invoice_pk, effective))

        logger.info('Invoice %s moved %s -> %s', invoice.invoice_number, invoice.status, effective)
        log_invoice_activity(self.actor, invoice, f"Status changed to {effective}")
        return self.find_invoice(invoice.pk)

    def _notify(self, invoice_id, status: str) -> NotificationResult:
        try:
            invoice = self.find_invoice(invoice_id)
            result = self.notifier.notify_status_change(invoice, status)
        except Exception as exc:  # the status change is already committed
            logger.exception('Notification for invoice %s (%s) failed', invoice_id, status)
            return NotificationResult(False, str(exc))
        if not result.success:
            logger.warning('Notification for invoice %s (%s) not delivered: %s', invoice_id, status, result.error)
        return result

    def delete_invoice(self, invoice_id, remark: str | None = None) -> DeletionResult:
        invoice = self.find_invoice(invoice_id)
        if invoice.status == Invoice.Status.DRAFT:
            number = invoice.invoice_number
            invoice.delete()
            logger.info('Draft invoice %s deleted', number)
            log_staff_activity(
                actor=self.actor,
                category=StaffActivity.Category.INVOICES,
                message=f"{number}: Draft deleted",
            )
            return DeletionResult(hard_deleted=True, invoice=invoice)

        remark = (remark or '').strip()
        if not remark:
            raise RemarkRequired(f"Invoice {invoice.invoice_number} is {invoice.status}; a deletion remark is required.")
        if invoice.is_deleted:
            raise InvalidState(f"Invoice {invoice.invoice_number} is already deleted.")

        with transaction.atomic():
            self._write(invoice, {
                'is_deleted': True,
                'deletion_remark': remark,
                'pdf_document': None,
                'pdf_generated_at': None,
            })
            self._record(invoice, InvoiceStatusHistory.DELETED, remark)

        logger.info('Invoice %s soft-deleted', invoice.invoice_number)
        log_invoice_activity(self.actor, invoice, f"Deleted: {remark}")
        return DeletionResult(hard_deleted=False, invoice=self.find_invoice(invoice.pk))

    def restore_invoice(self, invoice_id) -> Invoice:
        """Bring a soft-deleted invoice back; the budget is not re-checked."""
        invoice = self.find_invoice(invoice_id)
        if not invoice.is_deleted:
            raise InvalidState(f"Invoice {invoice.invoice_number} is not deleted.")

        with transaction.atomic():
            self._write(invoice, {'is_deleted': False})
            self._record(invoice, InvoiceStatusHistory.RESTORED, f"Restored (deletion remark: {invoice.deletion_remark})")

        logger.info('Invoice %s restored', invoice.invoice_number)
        log_invoice_activity(self.actor, invoice, 'Restored')
        return self.find_invoice(invoice.pk)

    def duplicate_invoice(self, invoice_id) -> Invoice:
        source = self.find_invoice(invoice_id)
        project = source.project
        check_budget(project.total_amount, project.committed_subtotal(), source.subtotal)

        issue_date = self.today()
        due_date = None
        if source.due_date and source.issue_date:
            due_date = issue_date + (source.due_date - source.issue_date)

        with transaction.atomic():
            duplicate = Invoice.objects.create(
                invoice_number=next_invoice_number(issue_date),
                project=project,
                currency=source.currency,
                issue_date=issue_date,
                due_date=due_date,
                subtotal=source.subtotal,
                gst_percentage=source.gst_percentage,
                gst_amount=source.gst_amount,
                include_gst=source.include_gst,
                total_amount=source.total_amount,
                status=Invoice.Status.DRAFT,
                paid_amount=Decimal('0'),
                balance_due=source.total_amount,
                payment_method=source.payment_method,
                bank_account=source.bank_account,
                custom_payment_details=source.custom_payment_details,
                duplicated_from=source,
            )
            self._save_lines(duplicate, self._lines_of(source))
            self._record(duplicate, Invoice.Status.DRAFT, f"Duplicated from {source.invoice_number}")

        logger.info('Invoice %s duplicated as %s', source.invoice_number, duplicate.invoice_number)
        log_invoice_activity(self.actor, duplicate, f"Duplicated from {source.invoice_number}")
        return self.find_invoice(duplicate.pk)

    def record_payment(
        self,
        project_id,
        amount,
        invoice_id=None,
        payment_date=None,
        payment_method=Invoice.PaymentMethod.BANK_ACCOUNT,
        bank_account_id=None,
        custom_payment_details='',
        reference='',
        notes='',
    ) -> Payment:
        """Add a ledger entry. Invoice balances only move through ``transition_status``."""
        project = self._get_project(project_id)
        try:
            amount = to_money(amount)
        except ValueError as exc:
            raise InvalidPatch(str(exc)) from exc
        if amount <= 0:
            raise InvalidPatch('Payment amount must be greater than zero.')

        invoice = None
        if invoice_id not in (None, ''):
            invoice = self.find_invoice(invoice_id)
            if invoice.project_id != project.pk:
                raise InvalidPatch(f"Invoice {invoice.invoice_number} belongs to another project.")

        payment = Payment.objects.create(
            project=project,
            invoice=invoice,
            amount=amount,
            currency=project.currency,
            payment_method=self._payment_method(payment_method),
            bank_account=self._bank_account(bank_account_id),
            custom_payment_details=custom_payment_details or '',
            payment_date=self._date(payment_date, 'payment_date') or self.today(),
            reference=reference or '',
            notes=notes or '',
            recorded_by=self._history_actor,
        )
        log_staff_activity(
            actor=self.actor,
            category=StaffActivity.Category.PAYMENTS,
            message=f"Payment {amount} recorded for {project.name}",
        )
        return payment

    def sweep_overdue(self, today: datetime.date | None = None) -> list[Invoice]:
        """Move sent invoices past their due date to overdue."""
        today = today or self.today()
        candidates = list(
            Invoice.objects.filter(
                status=Invoice.Status.SENT,
                due_date__lt=today,
                is_deleted=False,
            ).values_list('pk', flat=True)
        )
        moved = []
        for invoice_id in candidates:
            try:
                moved.append(self.transition_status(invoice_id, Invoice.Status.OVERDUE, remark=OVERDUE_REMARK))
            except BillingError as exc:
                logger.warning('Overdue sweep skipped invoice %s: %s', invoice_id, exc)
        logger.info('Overdue sweep for %s moved %d of %d invoices', today, len(moved), len(candidates))
        return moved

    def cached_document(self, invoice_id, refresh: bool = False) -> bytes:
        invoice = self.find_invoice(invoice_id)
        if invoice.pdf_document and not refresh:
            return bytes(invoice.pdf_document)

        generated_at = self.clock()
        pdf = render(snapshot_from_invoice(invoice), generated_at=generated_at)
        # Skip caching if the invoice moved on while rendering.
        Invoice.objects.filter(pk=invoice.pk, version=invoice.version).update(
            pdf_document=pdf,
            pdf_generated_at=generated_at,
        )
        return pdf
