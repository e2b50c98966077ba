import datetime
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone

from billing.lifecycle import InvoiceLifecycleManager
from billing.models import BankAccount, BillingSettings, Client, Invoice, Project
from billing.notifications import NullNotificationGateway

User = get_user_model()

FIXED_NOW = timezone.make_aware(datetime.datetime(2025, 5, 10, 10, 30))
FIXED_TODAY = datetime.date(2025, 5, 10)


class BillingFixturesMixin:
    """Client, project, bank account and a lifecycle manager with a frozen clock."""

    def setUp(self):
        super().setUp()
        BillingSettings.objects.update_or_create(
            singleton=True,
            defaults={'current_sequence': 0, 'default_gst_percentage': Decimal('18.00'), 'enable_gst': True},
        )
        self.user = User.objects.create_user(username='finance', password='test-pass-123', role=User.Roles.FINANCE)
        self.client_obj = Client.objects.create(
            name='Acme Builders',
            email='office@acme.test',
            finance_email='accounts@acme.test',
            phone='+91 98765 43210',
            city='Kochi',
        )
        self.project = Project.objects.create(
            client=self.client_obj,
            name='Tower A',
            total_amount=Decimal('10000.00'),
            currency=Project.Currency.INR,
        )
        self.bank = BankAccount.objects.create(
            account_holder_name='Studio LLP',
            account_number='001122334455',
            ifsc_code='HDFC0000123',
            bank_name='HDFC Bank',
            is_default=True,
        )
        self.notifier = NullNotificationGateway()
        self.manager = self.make_manager()

    def make_manager(self, notifier=None, actor=None):
        return InvoiceLifecycleManager(
            BillingSettings.load(),
            notifier or self.notifier,
            actor=actor or self.user,
            clock=lambda: FIXED_NOW,
        )

    def create_invoice(self, amount='6000.00', project=None, **kwargs) -> Invoice:
        services = kwargs.pop('services', [{'description': 'Design services', 'amount': amount}])
        return self.manager.create_invoice((project or self.project).pk, services, **kwargs)

    def create_sent_invoice(self, amount='6000.00', **kwargs) -> Invoice:
        invoice = self.create_invoice(amount, **kwargs)
        return self.manager.transition_status(invoice.pk, Invoice.Status.SENT)
