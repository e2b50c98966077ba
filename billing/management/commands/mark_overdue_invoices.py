from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_date

from billing.lifecycle import InvoiceLifecycleManager


class Command(BaseCommand):
    help = "Mark sent invoices past their due date as overdue and notify clients."

    def add_arguments(self, parser):
        parser.add_argument('--date', help='Treat this day (YYYY-MM-DD) as today.')

    def handle(self, *args, **options):
        today = None
        if options.get('date'):
            today = parse_date(options['date'])
            if today is None:
                raise CommandError(f"Invalid date: {options['date']}")

        lifecycle = InvoiceLifecycleManager.default()
        moved = lifecycle.sweep_overdue(today)
        for invoice in moved:
            self.stdout.write(f"  {invoice.invoice_number} -> overdue")
        self.stdout.write(self.style.SUCCESS(f"Overdue sweep complete. Invoices marked overdue: {len(moved)}"))
