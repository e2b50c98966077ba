import datetime
import threading
from unittest import mock

from django.db import DatabaseError, connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase

from billing.exceptions import SequenceUnavailable
from billing.models import BillingSettings
from billing.sequence import fiscal_year_label, format_invoice_number, next_invoice_number, next_sequence_value


class FiscalYearTests(SimpleTestCase):
    def test_april_starts_new_fiscal_year(self):
        self.assertEqual(fiscal_year_label(datetime.date(2025, 4, 1)), '2025-26')

    def test_march_belongs_to_previous_fiscal_year(self):
        self.assertEqual(fiscal_year_label(datetime.date(2026, 3, 31)), '2025-26')

    def test_january(self):
        self.assertEqual(fiscal_year_label(datetime.date(2025, 1, 15)), '2024-25')

    def test_century_rollover(self):
        self.assertEqual(fiscal_year_label(datetime.date(2099, 6, 1)), '2099-00')

    def test_invoice_number_is_zero_padded(self):
        self.assertEqual(format_invoice_number(7, datetime.date(2025, 5, 1)), 'INV-2025-26/0007')

    def test_invoice_number_grows_past_four_digits(self):
        self.assertEqual(format_invoice_number(12345, datetime.date(2025, 5, 1)), 'INV-2025-26/12345')


class SequenceTests(TestCase):
    def test_increments_and_persists(self):
        BillingSettings.objects.update_or_create(singleton=True, defaults={'current_sequence': 41})
        self.assertEqual(next_sequence_value(), 42)
        self.assertEqual(next_sequence_value(), 43)
        self.assertEqual(BillingSettings.load().current_sequence, 43)

    def test_creates_counter_when_missing(self):
        BillingSettings.objects.all().delete()
        self.assertEqual(next_sequence_value(), 1)
        self.assertEqual(BillingSettings.objects.get(singleton=True).current_sequence, 1)

    def test_next_invoice_number_uses_given_day(self):
        BillingSettings.objects.update_or_create(singleton=True, defaults={'current_sequence': 0})
        self.assertEqual(next_invoice_number(datetime.date(2026, 2, 1)), 'INV-2025-26/0001')

    def test_counter_is_not_reset_across_fiscal_years(self):
        BillingSettings.objects.update_or_create(singleton=True, defaults={'current_sequence': 9})
        self.assertEqual(next_invoice_number(datetime.date(2026, 3, 31)), 'INV-2025-26/0010')
        self.assertEqual(next_invoice_number(datetime.date(2026, 4, 1)), 'INV-2026-27/0011')

    def test_storage_failure_is_retryable(self):
        with mock.patch('billing.sequence._increment', side_effect=DatabaseError('disk I/O error')):
            with self.assertLogs('billing.sequence', level='ERROR'):
                with self.assertRaises(SequenceUnavailable) as ctx:
                    next_sequence_value()
        self.assertTrue(ctx.exception.retryable)
        self.assertEqual(ctx.exception.kind, 'sequence_unavailable')


class ConcurrentSequenceTests(TransactionTestCase):
    workers = 50

    def setUp(self):
        BillingSettings.objects.update_or_create(singleton=True, defaults={'current_sequence': 0})

    def test_parallel_callers_get_distinct_values(self):
        results = []
        errors = []
        lock = threading.Lock()

        def worker():
            try:
                value = next_sequence_value()
                with lock:
                    results.append(value)
            except Exception as exc:
                with lock:
                    errors.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=worker) for _ in range(self.workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(sorted(results), list(range(1, self.workers + 1)))
        self.assertEqual(BillingSettings.load().current_sequence, self.workers)
