from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from billing.exceptions import BillingError
from billing.lifecycle import InvoiceLifecycleManager


class Command(BaseCommand):
    help = "Render an invoice PDF and write it to disk."

    def add_arguments(self, parser):
        parser.add_argument('invoice_id', type=int)
        parser.add_argument('--output', '-o', help='Output path. Defaults to <invoice number>.pdf')
        parser.add_argument('--refresh', action='store_true', help='Ignore the cached document.')

    def handle(self, *args, **options):
        lifecycle = InvoiceLifecycleManager.default()
        try:
            invoice = lifecycle.find_invoice(options['invoice_id'])
            pdf = lifecycle.cached_document(invoice.pk, refresh=options['refresh'])
        except BillingError as exc:
            raise CommandError(exc.message) from exc

        output = Path(options.get('output') or f"{invoice.invoice_number.replace('/', '-')}.pdf")
        output.write_bytes(pdf)
        self.stdout.write(self.style.SUCCESS(f"Wrote {invoice.invoice_number} to {output} ({len(pdf)} bytes)"))
