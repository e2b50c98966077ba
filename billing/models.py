from decimal import Decimal

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.db import models


class User(AbstractUser):
    class Roles(models.TextChoices):
        ADMIN = 'admin', 'Admin'
        FINANCE = 'finance', 'Finance'
        ACCOUNTANT = 'accountant', 'Accountant'
        PROJECT_MANAGER = 'project_manager', 'Project Manager'
        VIEWER = 'viewer', 'Viewer (read-only)'

    phone = models.CharField(max_length=50, blank=True)
    role = models.CharField(max_length=32, choices=Roles.choices, default=Roles.VIEWER)

    def __str__(self) -> str:
        return f"{self.get_full_name() or self.username} ({self.get_role_display()})"

    def has_any_role(self, *roles: str) -> bool:
        """Role-aware helper that also considers equivalent titles."""
        role_groups = {
            self.Roles.ADMIN: {self.Roles.ADMIN},
            self.Roles.FINANCE: {self.Roles.FINANCE, self.Roles.ACCOUNTANT},
            self.Roles.PROJECT_MANAGER: {self.Roles.PROJECT_MANAGER},
            self.Roles.VIEWER: {self.Roles.VIEWER},
        }
        for requested in roles:
            if self.role in role_groups.get(requested, {requested}):
                return True
        return False


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Client(TimeStampedModel):
    name = models.CharField(max_length=255)
    email = models.EmailField(blank=True)
    finance_email = models.EmailField(blank=True, help_text='Invoices and reminders go here when set.')
    phone = models.CharField(max_length=50, blank=True)
    street = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100, blank=True)
    state = models.CharField(max_length=100, blank=True)
    pincode = models.CharField(max_length=20, blank=True)
    country = models.CharField(max_length=100, blank=True, default='India')
    gst_number = models.CharField(max_length=20, blank=True)
    pan_number = models.CharField(max_length=20, blank=True)

    class Meta:
        ordering = ['name']

    def __str__(self) -> str:
        return self.name

    @property
    def billing_email(self) -> str:
        return self.finance_email or self.email

    @property
    def address_line(self) -> str:
        parts = [self.street, self.city, self.state, self.pincode, self.country]
        return ', '.join(part for part in parts if part)


class BankAccount(TimeStampedModel):
    class AccountType(models.TextChoices):
        CURRENT = 'current', 'Current'
        SAVINGS = 'savings', 'Savings'

    account_holder_name = models.CharField(max_length=255)
    account_number = models.CharField(max_length=64)
    ifsc_code = models.CharField(max_length=20)
    bank_name = models.CharField(max_length=255)
    account_type = models.CharField(max_length=20, choices=AccountType.choices, default=AccountType.CURRENT)
    swift_code = models.CharField(max_length=20, blank=True)
    is_default = models.BooleanField(default=False, help_text='Used on invoices that do not pick an account.')

    class Meta:
        ordering = ['-is_default', 'bank_name']

    def __str__(self) -> str:
        return f"{self.bank_name} ({self.account_number[-4:]})"


class CompanyProfile(TimeStampedModel):
    name = models.CharField(max_length=255, blank=True)
    address = models.TextField(blank=True)
    email = models.EmailField(blank=True)
    contact = models.CharField(max_length=50, blank=True)
    gst_number = models.CharField(max_length=20, blank=True)
    lut_number = models.CharField(max_length=50, blank=True)
    website = models.CharField(max_length=255, blank=True)
    logo = models.ImageField(upload_to='company/', blank=True, null=True)
    signature = models.ImageField(upload_to='company/', blank=True, null=True)
    singleton = models.BooleanField(default=True, unique=True)

    class Meta:
        verbose_name = 'Company Profile'

    def __str__(self) -> str:
        return self.name or 'Company Profile'

    @classmethod
    def load(cls) -> 'CompanyProfile':
        profile, _ = cls.objects.get_or_create(singleton=True)
        return profile


class BillingSettings(TimeStampedModel):
    current_sequence = models.PositiveIntegerField(
        default=0,
        help_text='Last issued invoice sequence. The next invoice uses the number after this value.',
    )
    default_gst_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('18.00'))
    enable_gst = models.BooleanField(default=True)
    singleton = models.BooleanField(default=True, unique=True)

    class Meta:
        verbose_name = 'Billing Settings'
        verbose_name_plural = 'Billing Settings'

    def __str__(self) -> str:
        return f"Billing settings (sequence {self.current_sequence})"

    @classmethod
    def load(cls) -> 'BillingSettings':
        config, _ = cls.objects.get_or_create(singleton=True)
        return config


class Project(TimeStampedModel):
    class ProjectType(models.TextChoices):
        FIXED_CONTRACT = 'fixed_contract', 'Fixed Contract'
        HOURLY_BILLING = 'hourly_billing', 'Hourly Billing'
        MONTHLY_RETAINER = 'monthly_retainer', 'Monthly Retainer'

    class AllocationType(models.TextChoices):
        OVERALL = 'overall', 'Overall'
        EMPLOYEE_BASED = 'employee_based', 'Employee Based'

    class Currency(models.TextChoices):
        INR = 'INR', 'INR'
        USD = 'USD', 'USD'

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        ON_HOLD = 'on_hold', 'On Hold'
        COMPLETED = 'completed', 'Completed'
        CANCELLED = 'cancelled', 'Cancelled'
        DRAFT = 'draft', 'Draft'

    client = models.ForeignKey(Client, on_delete=models.CASCADE, related_name='projects')
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='owned_projects'
    )
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    project_type = models.CharField(max_length=32, choices=ProjectType.choices, default=ProjectType.FIXED_CONTRACT)
    allocation_type = models.CharField(max_length=32, choices=AllocationType.choices, default=AllocationType.OVERALL)
    total_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=0,
        help_text='Budget ceiling before tax. Invoice subtotals count against it.',
    )
    currency = models.CharField(max_length=3, choices=Currency.choices, default=Currency.INR)
    status = models.CharField(max_length=32, choices=Status.choices, default=Status.ACTIVE)
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='billing_project_status_idx'),
            models.Index(fields=['project_type'], name='billing_project_type_idx'),
        ]

    def __str__(self) -> str:
        return self.name

    def clean(self):
        super().clean()
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValidationError({'end_date': 'End date cannot be earlier than the start date.'})

    def committed_subtotal(self, exclude=None) -> Decimal:
        """Sum of subtotals already billed against the budget."""
        invoices = self.invoices.filter(is_deleted=False).exclude(status=Invoice.Status.CANCELLED)
        if exclude is not None:
            invoices = invoices.exclude(pk=getattr(exclude, 'pk', exclude))
        return invoices.aggregate(total=models.Sum('subtotal'))['total'] or Decimal('0')


class Invoice(TimeStampedModel):
    class Status(models.TextChoices):
        DRAFT = 'draft', 'Draft'
        SENT = 'sent', 'Sent'
        PAID = 'paid', 'Paid'
        PARTIAL = 'partial', 'Partially Paid'
        OVERDUE = 'overdue', 'Overdue'
        CANCELLED = 'cancelled', 'Cancelled'

    class PaymentMethod(models.TextChoices):
        BANK_ACCOUNT = 'bank_account', 'Bank Account'
        OTHER = 'other', 'Other'

    invoice_number = models.CharField(max_length=50, unique=True, editable=False)
    project = models.ForeignKey(Project, on_delete=models.PROTECT, related_name='invoices')
    currency = models.CharField(max_length=3, choices=Project.Currency.choices, default=Project.Currency.INR)
    issue_date = models.DateField()
    due_date = models.DateField(null=True, blank=True)
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    gst_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    gst_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    include_gst = models.BooleanField(default=True)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    status = models.CharField(max_length=32, choices=Status.choices, default=Status.DRAFT)
    paid_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    balance_due = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    paid_date = models.DateField(null=True, blank=True)
    is_deleted = models.BooleanField(default=False)
    deletion_remark = models.TextField(blank=True)
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.BANK_ACCOUNT)
    bank_account = models.ForeignKey(
        BankAccount, on_delete=models.SET_NULL, null=True, blank=True, related_name='invoices'
    )
    custom_payment_details = models.TextField(blank=True)
    duplicated_from = models.ForeignKey(
        'self', on_delete=models.SET_NULL, null=True, blank=True, related_name='duplicates'
    )
    pdf_document = models.BinaryField(null=True, blank=True, editable=False)
    pdf_generated_at = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(default=0, editable=False)

    class Meta:
        ordering = ['-issue_date', '-id']
        indexes = [
            models.Index(fields=['status', 'due_date'], name='billing_inv_status_due_idx'),
            models.Index(fields=['project', 'is_deleted'], name='billing_inv_project_del_idx'),
            models.Index(fields=['issue_date'], name='billing_inv_issue_date_idx'),
        ]

    def __str__(self) -> str:
        return f"Invoice {self.invoice_number}"

    def clean(self):
        super().clean()
        if self.issue_date and self.due_date and self.due_date < self.issue_date:
            raise ValidationError({'due_date': 'Due date cannot be earlier than the issue date.'})

    @property
    def is_draft(self) -> bool:
        return self.status == self.Status.DRAFT

    @property
    def counts_against_budget(self) -> bool:
        return not self.is_deleted and self.status != self.Status.CANCELLED


class InvoiceLine(models.Model):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='lines')
    position = models.PositiveIntegerField(default=0)
    description = models.CharField(max_length=500)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    hours = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    rate = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    team_role = models.CharField(max_length=100, blank=True)

    class Meta:
        ordering = ['position', 'id']

    def __str__(self) -> str:
        return f"{self.description}: {self.amount}"


class InvoiceStatusHistory(models.Model):
    """Append-only audit log attached to an invoice.

    ``status`` holds the invoice status the entry records, or one of the
    bookkeeping events ``deleted`` / ``restored``.
    """

    DELETED = 'deleted'
    RESTORED = 'restored'

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='status_history')
    status = models.CharField(max_length=32)
    remark = models.TextField(blank=True)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']
        verbose_name_plural = 'Invoice status history'

    def __str__(self) -> str:
        return f"{self.invoice_id}: {self.status}"

    def save(self, *args, **kwargs):
        if self.pk is not None and not kwargs.get('force_insert'):
            raise ValidationError('Status history entries cannot be edited.')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError('Status history entries cannot be deleted.')


class Payment(TimeStampedModel):
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='payments')
    invoice = models.ForeignKey(Invoice, on_delete=models.SET_NULL, null=True, blank=True, related_name='payments')
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=3, choices=Project.Currency.choices, default=Project.Currency.INR)
    payment_method = models.CharField(
        max_length=20, choices=Invoice.PaymentMethod.choices, default=Invoice.PaymentMethod.BANK_ACCOUNT
    )
    bank_account = models.ForeignKey(
        BankAccount, on_delete=models.SET_NULL, null=True, blank=True, related_name='payments'
    )
    custom_payment_details = models.TextField(blank=True)
    payment_date = models.DateField()
    reference = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True, help_text='Internal notes about this payment.')
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='payments_recorded',
    )

    class Meta:
        ordering = ['-payment_date', '-id']
        indexes = [
            models.Index(fields=['payment_date'], name='billing_pay_date_idx'),
            models.Index(fields=['project', 'payment_date'], name='billing_pay_project_date_idx'),
        ]

    def __str__(self) -> str:
        return f"Payment {self.amount} on {self.payment_date}"


class StaffActivity(TimeStampedModel):
    """Append-only audit trail of staff actions."""

    class Category(models.TextChoices):
        PROJECTS = 'projects', 'Projects'
        INVOICES = 'invoices', 'Invoices'
        PAYMENTS = 'payments', 'Payments'
        SETTINGS = 'settings', 'Settings'
        SYSTEM = 'system', 'System'

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='staff_activity',
    )
    category = models.CharField(max_length=50, choices=Category.choices, default=Category.SYSTEM)
    message = models.CharField(max_length=500)
    related_url = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['created_at'], name='billing_act_created_idx'),
            models.Index(fields=['actor', 'created_at'], name='billing_act_actor_created_idx'),
            models.Index(fields=['category', 'created_at'], name='billing_act_cat_created_idx'),
        ]

    def __str__(self) -> str:
        actor = self.actor.get_full_name() if self.actor else 'System'
        return f"{actor}: {self.message}"


class WhatsAppConfig(TimeStampedModel):
    enabled = models.BooleanField(default=False)
    phone_number_id = models.CharField(max_length=64, blank=True)
    api_token = models.TextField(blank=True)
    default_language = models.CharField(max_length=10, default='en_US', blank=True)
    template_name = models.CharField(max_length=100, default='invoice_available', blank=True)

    class Meta:
        verbose_name = 'WhatsApp Configuration'

    def __str__(self) -> str:
        return self.phone_number_id or 'WhatsApp Config'
