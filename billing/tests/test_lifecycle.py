import datetime
from decimal import Decimal
from unittest import mock

from django.core.exceptions import ValidationError
from django.db.models import F
from django.test import TestCase

from billing.exceptions import (
    BudgetExceeded,
    InvalidPatch,
    InvalidState,
    InvalidStatus,
    InvoiceNotFound,
    ProjectNotFound,
    RemarkRequired,
    StaleInvoice,
)
from billing.lifecycle import OVERDUE_REMARK
from billing.models import BillingSettings, Invoice, InvoiceStatusHistory, Project, StaffActivity

from .base import FIXED_TODAY, BillingFixturesMixin


class CreateInvoiceTests(BillingFixturesMixin, TestCase):
    def test_creates_draft_with_totals_and_number(self):
        invoice = self.create_invoice('6000.00')

        self.assertEqual(invoice.invoice_number, 'INV-2025-26/0001')
        self.assertEqual(invoice.status, Invoice.Status.DRAFT)
        self.assertEqual(invoice.subtotal, Decimal('6000.00'))
        self.assertEqual(invoice.gst_percentage, Decimal('18.00'))
        self.assertEqual(invoice.gst_amount, Decimal('1080.00'))
        self.assertEqual(invoice.total_amount, Decimal('7080.00'))
        self.assertEqual(invoice.paid_amount, Decimal('0'))
        self.assertEqual(invoice.balance_due, Decimal('7080.00'))
        self.assertEqual(invoice.issue_date, FIXED_TODAY)
        self.assertEqual(invoice.currency, Project.Currency.INR)
        self.assertEqual(invoice.lines.count(), 1)
        self.assertFalse(invoice.status_history.exists())

    def test_numbers_are_sequential(self):
        first = self.create_invoice('1000.00')
        second = self.create_invoice('1000.00')
        self.assertEqual(first.invoice_number, 'INV-2025-26/0001')
        self.assertEqual(second.invoice_number, 'INV-2025-26/0002')

    def test_gst_defaults_can_be_overridden(self):
        invoice = self.create_invoice('1000.00', gst_percentage='5', include_gst=True)
        self.assertEqual(invoice.gst_amount, Decimal('50.00'))
        untaxed = self.create_invoice('1000.00', include_gst=False)
        self.assertEqual(untaxed.gst_amount, Decimal('0.00'))
        self.assertEqual(untaxed.total_amount, Decimal('1000.00'))

    def test_budget_overrun_is_rejected_without_consuming_a_number(self):
        self.create_invoice('6000.00')
        with self.assertRaises(BudgetExceeded) as ctx:
            self.create_invoice('5000.00')
        self.assertEqual(ctx.exception.remaining, Decimal('4000.00'))
        self.assertEqual(BillingSettings.load().current_sequence, 1)
        self.assertEqual(Invoice.objects.count(), 1)

    def test_budget_ignores_tax(self):
        # 10000 subtotal fits even though the total with GST is 11800.
        invoice = self.create_invoice('10000.00')
        self.assertEqual(invoice.total_amount, Decimal('11800.00'))

    def test_cancelled_invoice_frees_budget(self):
        first = self.create_invoice('6000.00')
        self.manager.transition_status(first.pk, Invoice.Status.CANCELLED)
        second = self.create_invoice('5000.00')
        self.assertEqual(second.subtotal, Decimal('5000.00'))

    def test_unknown_project(self):
        with self.assertRaises(ProjectNotFound):
            self.manager.create_invoice(999999, [{'amount': '1'}])

    def test_negative_line_rejected(self):
        with self.assertRaises(InvalidPatch):
            self.create_invoice('-10.00')

    def test_due_date_before_issue_date_rejected(self):
        with self.assertRaises(InvalidPatch):
            self.create_invoice('100.00', issue_date=datetime.date(2025, 5, 10), due_date=datetime.date(2025, 5, 1))

    def test_creation_is_logged_as_staff_activity(self):
        invoice = self.create_invoice('100.00')
        activity = StaffActivity.objects.get(actor=self.user)
        self.assertEqual(activity.category, StaffActivity.Category.INVOICES)
        self.assertEqual(activity.message, f"{invoice.invoice_number}: Invoice created")


class UpdateInvoiceTests(BillingFixturesMixin, TestCase):
    def test_services_patch_recomputes_money(self):
        invoice = self.create_invoice('6000.00')
        updated = self.manager.update_invoice(invoice.pk, {
            'services': [
                {'description': 'Design', 'amount': '2000.00'},
                {'description': 'Drafting', 'amount': '1000.00'},
            ],
        })
        self.assertEqual(updated.subtotal, Decimal('3000.00'))
        self.assertEqual(updated.total_amount, Decimal('3540.00'))
        self.assertEqual(updated.balance_due, Decimal('3540.00'))
        self.assertEqual([line.description for line in updated.lines.all()], ['Design', 'Drafting'])
        self.assertEqual(updated.version, invoice.version + 1)

    def test_gst_patch_keeps_existing_lines(self):
        invoice = self.create_invoice('1000.00')
        updated = self.manager.update_invoice(invoice.pk, {'gst_percentage': '5'})
        self.assertEqual(updated.subtotal, Decimal('1000.00'))
        self.assertEqual(updated.gst_amount, Decimal('50.00'))
        self.assertEqual(updated.lines.count(), 1)

    def test_budget_excludes_the_invoice_being_edited(self):
        invoice = self.create_invoice('6000.00')
        updated = self.manager.update_invoice(invoice.pk, {'services': [{'amount': '10000.00'}]})
        self.assertEqual(updated.subtotal, Decimal('10000.00'))
        with self.assertRaises(BudgetExceeded):
            self.manager.update_invoice(invoice.pk, {'services': [{'amount': '10000.01'}]})

    def test_only_drafts_are_editable(self):
        invoice = self.create_sent_invoice('1000.00')
        with self.assertRaises(InvalidState):
            self.manager.update_invoice(invoice.pk, {'due_date': datetime.date(2025, 6, 1)})

    def test_derived_fields_cannot_be_patched(self):
        invoice = self.create_invoice('1000.00')
        with self.assertRaises(InvalidPatch):
            self.manager.update_invoice(invoice.pk, {'total_amount': '1.00'})
        with self.assertRaises(InvalidPatch):
            self.manager.update_invoice(invoice.pk, {'status': 'paid'})

    def test_non_money_patch(self):
        invoice = self.create_invoice('1000.00')
        updated = self.manager.update_invoice(invoice.pk, {
            'due_date': '2025-06-09',
            'payment_method': Invoice.PaymentMethod.OTHER,
            'custom_payment_details': 'UPI: studio@bank',
        })
        self.assertEqual(updated.due_date, datetime.date(2025, 6, 9))
        self.assertEqual(updated.payment_method, Invoice.PaymentMethod.OTHER)
        self.assertEqual(updated.total_amount, invoice.total_amount)

    def test_unknown_bank_account(self):
        invoice = self.create_invoice('1000.00')
        with self.assertRaises(InvalidPatch):
            self.manager.update_invoice(invoice.pk, {'bank_account_id': 999999})


class TransitionTests(BillingFixturesMixin, TestCase):
    def test_unknown_status(self):
        invoice = self.create_invoice('1000.00')
        with self.assertRaises(InvalidStatus):
            self.manager.transition_status(invoice.pk, 'archived')

    def test_paid_sets_balance_and_date(self):
        invoice = self.create_sent_invoice('6000.00')
        paid = self.manager.transition_status(invoice.pk, Invoice.Status.PAID, remark='NEFT received')
        self.assertEqual(paid.paid_amount, Decimal('7080.00'))
        self.assertEqual(paid.balance_due, Decimal('0.00'))
        self.assertEqual(paid.paid_date, FIXED_TODAY)
        last = paid.status_history.last()
        self.assertEqual((last.status, last.remark, last.actor), ('paid', 'NEFT received', self.user))

    def test_explicit_paid_date_is_kept(self):
        invoice = self.create_sent_invoice('1000.00')
        paid = self.manager.transition_status(invoice.pk, Invoice.Status.PAID, paid_date='2025-05-02')
        self.assertEqual(paid.paid_date, datetime.date(2025, 5, 2))

    def test_partial_payments_escalate_to_paid(self):
        invoice = self.create_sent_invoice('6000.00')
        partial = self.manager.transition_status(invoice.pk, Invoice.Status.PARTIAL, paid_amount_delta='3000')
        self.assertEqual(partial.status, Invoice.Status.PARTIAL)
        self.assertEqual(partial.paid_amount, Decimal('3000.00'))
        self.assertEqual(partial.balance_due, Decimal('4080.00'))

        paid = self.manager.transition_status(invoice.pk, Invoice.Status.PARTIAL, paid_amount_delta='4080')
        self.assertEqual(paid.status, Invoice.Status.PAID)
        self.assertEqual(paid.paid_amount, Decimal('7080.00'))
        self.assertEqual(paid.balance_due, Decimal('0'))
        self.assertEqual(paid.paid_date, FIXED_TODAY)
        self.assertEqual(
            list(paid.status_history.values_list('status', flat=True)),
            ['sent', 'partial', 'paid'],
        )

    def test_overpayment_caps_at_total(self):
        invoice = self.create_sent_invoice('1000.00')
        paid = self.manager.transition_status(invoice.pk, Invoice.Status.PARTIAL, paid_amount_delta='5000')
        self.assertEqual(paid.status, Invoice.Status.PAID)
        self.assertEqual(paid.paid_amount, paid.total_amount)

    def test_partial_needs_positive_amount(self):
        invoice = self.create_sent_invoice('1000.00')
        with self.assertRaises(InvalidPatch):
            self.manager.transition_status(invoice.pk, Invoice.Status.PARTIAL)
        with self.assertRaises(InvalidPatch):
            self.manager.transition_status(invoice.pk, Invoice.Status.PARTIAL, paid_amount_delta='0')

    def test_notifies_only_for_notify_statuses(self):
        invoice = self.create_invoice('1000.00')
        with self.captureOnCommitCallbacks(execute=True):
            self.manager.transition_status(invoice.pk, Invoice.Status.SENT)
        self.assertEqual(self.notifier.calls, [])

        with self.captureOnCommitCallbacks(execute=True):
            self.manager.transition_status(invoice.pk, Invoice.Status.PAID)
        self.assertEqual(self.notifier.calls, [(invoice.pk, 'paid')])

    def test_escalated_partial_notifies_as_paid(self):
        invoice = self.create_sent_invoice('1000.00')
        with self.captureOnCommitCallbacks(execute=True):
            self.manager.transition_status(invoice.pk, Invoice.Status.PARTIAL, paid_amount_delta='1180')
        self.assertEqual(self.notifier.calls, [(invoice.pk, 'paid')])

    def test_notification_failure_does_not_undo_transition(self):
        failing = mock.Mock()
        failing.notify_status_change.side_effect = RuntimeError('smtp down')
        manager = self.make_manager(notifier=failing)
        invoice = self.create_sent_invoice('1000.00')

        with self.assertLogs('billing.lifecycle', level='ERROR'):
            with self.captureOnCommitCallbacks(execute=True):
                manager.transition_status(invoice.pk, Invoice.Status.CANCELLED)

        failing.notify_status_change.assert_called_once()
        self.assertEqual(Invoice.objects.get(pk=invoice.pk).status, Invoice.Status.CANCELLED)

    def test_stale_version_is_rejected(self):
        invoice = self.create_sent_invoice('1000.00')
        stale = Invoice.objects.get(pk=invoice.pk)
        Invoice.objects.filter(pk=invoice.pk).update(version=F('version') + 1)

        with mock.patch.object(self.manager, 'find_invoice', return_value=stale):
            with self.assertRaises(StaleInvoice) as ctx:
                self.manager.transition_status(invoice.pk, Invoice.Status.PAID)
        self.assertTrue(ctx.exception.retryable)
        self.assertEqual(Invoice.objects.get(pk=invoice.pk).status, Invoice.Status.SENT)

    def test_transition_clears_cached_document(self):
        invoice = self.create_sent_invoice('1000.00')
        Invoice.objects.filter(pk=invoice.pk).update(pdf_document=b'%PDF-cached')
        paid = self.manager.transition_status(invoice.pk, Invoice.Status.PAID)
        self.assertIsNone(paid.pdf_document)

    def test_reopening_cancelled_invoice_rechecks_budget(self):
        first = self.create_sent_invoice('6000.00')
        self.manager.transition_status(first.pk, Invoice.Status.CANCELLED)
        self.create_invoice('5000.00')

        with self.assertRaises(BudgetExceeded) as ctx:
            self.manager.transition_status(first.pk, Invoice.Status.SENT)
        self.assertEqual(ctx.exception.remaining, Decimal('5000.00'))
        self.assertEqual(Invoice.objects.get(pk=first.pk).status, Invoice.Status.CANCELLED)
        self.assertEqual(self.project.committed_subtotal(), Decimal('5000.00'))

    def test_reopening_cancelled_invoice_within_budget(self):
        first = self.create_sent_invoice('6000.00')
        self.manager.transition_status(first.pk, Invoice.Status.CANCELLED)
        self.create_invoice('4000.00')

        reopened = self.manager.transition_status(first.pk, Invoice.Status.SENT)
        self.assertEqual(reopened.status, Invoice.Status.SENT)
        self.assertEqual(self.project.committed_subtotal(), Decimal('10000.00'))

    def test_cannot_move_back_to_draft(self):
        invoice = self.create_sent_invoice('6000.00')
        self.manager.transition_status(invoice.pk, Invoice.Status.PAID)

        with self.assertRaises(InvalidState):
            self.manager.transition_status(invoice.pk, Invoice.Status.DRAFT)
        found = Invoice.objects.get(pk=invoice.pk)
        self.assertEqual(found.status, Invoice.Status.PAID)
        self.assertEqual(found.paid_amount, Decimal('7080.00'))
        self.assertEqual(found.balance_due, Decimal('0.00'))
        with self.assertRaises(RemarkRequired):
            self.manager.delete_invoice(invoice.pk)


class DeleteRestoreTests(BillingFixturesMixin, TestCase):
    def test_draft_is_hard_deleted(self):
        invoice = self.create_invoice('1000.00')
        result = self.manager.delete_invoice(invoice.pk, remark='ignored')
        self.assertTrue(result.hard_deleted)
        with self.assertRaises(InvoiceNotFound):
            self.manager.find_invoice(invoice.pk)
        # Numbers are never reused.
        self.assertEqual(self.create_invoice('1000.00').invoice_number, 'INV-2025-26/0002')

    def test_sent_invoice_needs_remark(self):
        invoice = self.create_sent_invoice('1000.00')
        with self.assertRaises(RemarkRequired):
            self.manager.delete_invoice(invoice.pk)
        with self.assertRaises(RemarkRequired):
            self.manager.delete_invoice(invoice.pk, remark='   ')

    def test_soft_delete_keeps_invoice_and_frees_budget(self):
        invoice = self.create_sent_invoice('6000.00')
        result = self.manager.delete_invoice(invoice.pk, remark='Issued twice')

        self.assertFalse(result.hard_deleted)
        found = self.manager.find_invoice(invoice.pk)
        self.assertTrue(found.is_deleted)
        self.assertEqual(found.deletion_remark, 'Issued twice')
        last = found.status_history.last()
        self.assertEqual((last.status, last.remark), (InvoiceStatusHistory.DELETED, 'Issued twice'))
        self.assertEqual(self.project.committed_subtotal(), Decimal('0'))
        self.create_invoice('10000.00')

    def test_deleting_twice_is_rejected(self):
        invoice = self.create_sent_invoice('1000.00')
        self.manager.delete_invoice(invoice.pk, remark='Wrong client')
        with self.assertRaises(InvalidState):
            self.manager.delete_invoice(invoice.pk, remark='Again')

    def test_restore(self):
        invoice = self.create_sent_invoice('1000.00')
        self.manager.delete_invoice(invoice.pk, remark='Wrong client')
        restored = self.manager.restore_invoice(invoice.pk)

        self.assertFalse(restored.is_deleted)
        self.assertEqual(restored.deletion_remark, 'Wrong client')
        self.assertEqual(restored.status, Invoice.Status.SENT)
        last = restored.status_history.last()
        self.assertEqual(last.status, InvoiceStatusHistory.RESTORED)
        self.assertIn('Wrong client', last.remark)

    def test_restore_requires_deleted_invoice(self):
        invoice = self.create_sent_invoice('1000.00')
        with self.assertRaises(InvalidState):
            self.manager.restore_invoice(invoice.pk)

    def test_history_is_append_only(self):
        invoice = self.create_sent_invoice('1000.00')
        entry = invoice.status_history.first()
        entry.remark = 'rewritten'
        with self.assertRaises(ValidationError):
            entry.save()
        with self.assertRaises(ValidationError):
            entry.delete()


class DuplicateTests(BillingFixturesMixin, TestCase):
    def test_duplicate_of_paid_invoice_is_fresh_draft(self):
        source = self.create_invoice(
            '4000.00',
            issue_date=datetime.date(2025, 4, 1),
            due_date=datetime.date(2025, 4, 16),
        )
        self.manager.transition_status(source.pk, Invoice.Status.PAID)

        duplicate = self.manager.duplicate_invoice(source.pk)

        self.assertNotEqual(duplicate.invoice_number, source.invoice_number)
        self.assertEqual(duplicate.status, Invoice.Status.DRAFT)
        self.assertEqual(duplicate.paid_amount, Decimal('0'))
        self.assertEqual(duplicate.balance_due, Decimal('4720.00'))
        self.assertIsNone(duplicate.paid_date)
        self.assertEqual(duplicate.duplicated_from, source)
        self.assertEqual(duplicate.issue_date, FIXED_TODAY)
        self.assertEqual(duplicate.due_date, FIXED_TODAY + datetime.timedelta(days=15))
        self.assertEqual(
            list(duplicate.lines.values_list('description', 'amount')),
            list(source.lines.values_list('description', 'amount')),
        )
        history = list(duplicate.status_history.all())
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].status, Invoice.Status.DRAFT)
        self.assertEqual(history[0].remark, f"Duplicated from {source.invoice_number}")
        self.assertEqual(Invoice.objects.get(pk=source.pk).status, Invoice.Status.PAID)

    def test_duplicate_respects_budget(self):
        source = self.create_invoice('6000.00')
        with self.assertRaises(BudgetExceeded):
            self.manager.duplicate_invoice(source.pk)

    def test_duplicate_unknown_invoice(self):
        with self.assertRaises(InvoiceNotFound):
            self.manager.duplicate_invoice(999999)


class PaymentLedgerTests(BillingFixturesMixin, TestCase):
    def test_records_payment_without_touching_balance(self):
        invoice = self.create_sent_invoice('1000.00')
        payment = self.manager.record_payment(self.project.pk, '500', invoice_id=invoice.pk, reference='UTR123')

        self.assertEqual(payment.amount, Decimal('500.00'))
        self.assertEqual(payment.currency, self.project.currency)
        self.assertEqual(payment.payment_date, FIXED_TODAY)
        self.assertEqual(payment.recorded_by, self.user)
        self.assertEqual(Invoice.objects.get(pk=invoice.pk).balance_due, invoice.balance_due)

    def test_amount_must_be_positive(self):
        with self.assertRaises(InvalidPatch):
            self.manager.record_payment(self.project.pk, '0')

    def test_invoice_must_belong_to_project(self):
        other = Project.objects.create(client=self.client_obj, name='Tower B', total_amount=Decimal('5000'))
        invoice = self.create_invoice('100.00', project=other)
        with self.assertRaises(InvalidPatch):
            self.manager.record_payment(self.project.pk, '100', invoice_id=invoice.pk)


class OverdueSweepTests(BillingFixturesMixin, TestCase):
    def _sent(self, due_date):
        return self.create_sent_invoice('100.00', issue_date=datetime.date(2025, 4, 20), due_date=due_date)

    def test_moves_only_sent_invoices_past_due(self):
        late = self._sent(datetime.date(2025, 5, 1))
        not_yet = self._sent(datetime.date(2025, 5, 20))
        due_today = self._sent(FIXED_TODAY)
        deleted = self._sent(datetime.date(2025, 5, 1))
        self.manager.delete_invoice(deleted.pk, remark='Void')
        draft = self.create_invoice('100.00', issue_date=datetime.date(2025, 4, 20), due_date=datetime.date(2025, 5, 1))

        with self.captureOnCommitCallbacks(execute=True):
            moved = self.manager.sweep_overdue()

        self.assertEqual([invoice.pk for invoice in moved], [late.pk])
        late.refresh_from_db()
        self.assertEqual(late.status, Invoice.Status.OVERDUE)
        self.assertEqual(late.status_history.last().remark, OVERDUE_REMARK)
        for invoice in (not_yet, due_today, deleted, draft):
            self.assertNotEqual(Invoice.objects.get(pk=invoice.pk).status, Invoice.Status.OVERDUE)
        self.assertEqual(self.notifier.calls, [(late.pk, 'overdue')])

    def test_sweep_is_idempotent(self):
        self._sent(datetime.date(2025, 5, 1))
        self.assertEqual(len(self.manager.sweep_overdue()), 1)
        self.assertEqual(self.manager.sweep_overdue(), [])


class CachedDocumentTests(BillingFixturesMixin, TestCase):
    def test_renders_once_and_reuses_cache(self):
        invoice = self.create_sent_invoice('1000.00')
        with mock.patch('billing.lifecycle.render', return_value=b'%PDF-fake') as render:
            first = self.manager.cached_document(invoice.pk)
            second = self.manager.cached_document(invoice.pk)
        self.assertEqual(first, b'%PDF-fake')
        self.assertEqual(second, b'%PDF-fake')
        render.assert_called_once()
        self.assertIsNotNone(Invoice.objects.get(pk=invoice.pk).pdf_generated_at)

    def test_refresh_rerenders(self):
        invoice = self.create_sent_invoice('1000.00')
        with mock.patch('billing.lifecycle.render', side_effect=[b'%PDF-1', b'%PDF-2']) as render:
            self.manager.cached_document(invoice.pk)
            refreshed = self.manager.cached_document(invoice.pk, refresh=True)
        self.assertEqual(refreshed, b'%PDF-2')
        self.assertEqual(render.call_count, 2)

    def test_renders_real_pdf(self):
        invoice = self.create_sent_invoice('1000.00')
        pdf = self.manager.cached_document(invoice.pk)
        self.assertTrue(pdf.startswith(b'%PDF'))


class LookupTests(BillingFixturesMixin, TestCase):
    def test_bad_ids(self):
        for bad in (999999, 'abc', None):
            with self.assertRaises(InvoiceNotFound):
                self.manager.find_invoice(bad)
