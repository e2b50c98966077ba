from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import (
    BankAccount,
    BillingSettings,
    Client,
    CompanyProfile,
    Invoice,
    InvoiceLine,
    InvoiceStatusHistory,
    Payment,
    Project,
    StaffActivity,
    User,
    WhatsAppConfig,
)


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    fieldsets = DjangoUserAdmin.fieldsets + (('Role Info', {'fields': ('role', 'phone')}),)
    list_display = ('username', 'email', 'role', 'is_staff')
    list_filter = ('role', 'is_staff')


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ('name', 'email', 'finance_email', 'phone', 'city', 'gst_number')
    search_fields = ('name', 'email', 'finance_email', 'phone')


@admin.register(BankAccount)
class BankAccountAdmin(admin.ModelAdmin):
    list_display = ('bank_name', 'account_holder_name', 'account_number', 'ifsc_code', 'is_default')
    list_filter = ('account_type', 'is_default')


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ('name', 'client', 'project_type', 'allocation_type', 'total_amount', 'currency', 'status')
    search_fields = ('name', 'client__name')
    list_filter = ('project_type', 'allocation_type', 'status', 'currency')


class InvoiceLineInline(admin.TabularInline):
    model = InvoiceLine
    extra = 0
    can_delete = False
    readonly_fields = ('position', 'description', 'amount', 'hours', 'rate', 'team_role')

    def has_add_permission(self, request, obj=None):
        return False


class StatusHistoryInline(admin.TabularInline):
    model = InvoiceStatusHistory
    extra = 0
    can_delete = False
    readonly_fields = ('created_at', 'status', 'remark', 'actor')

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ('invoice_number', 'project', 'issue_date', 'status', 'total_amount', 'balance_due', 'is_deleted')
    list_filter = ('status', 'is_deleted', 'currency')
    search_fields = ('invoice_number', 'project__name', 'project__client__name')
    inlines = [InvoiceLineInline, StatusHistoryInline]
    # Money and state only change through the lifecycle manager.
    readonly_fields = (
        'invoice_number',
        'subtotal',
        'gst_percentage',
        'gst_amount',
        'include_gst',
        'total_amount',
        'status',
        'paid_amount',
        'balance_due',
        'paid_date',
        'is_deleted',
        'deletion_remark',
        'duplicated_from',
        'pdf_generated_at',
        'version',
    )

    def has_add_permission(self, request):
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('project', 'invoice', 'payment_date', 'amount', 'currency', 'payment_method', 'recorded_by')
    list_filter = ('payment_method', 'currency')


@admin.register(StaffActivity)
class StaffActivityAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'actor', 'category', 'message')
    list_filter = ('category',)
    search_fields = ('message', 'actor__username', 'actor__first_name', 'actor__last_name')


@admin.register(CompanyProfile)
class CompanyProfileAdmin(admin.ModelAdmin):
    list_display = ('name', 'contact', 'email', 'gst_number')
    exclude = ('singleton',)

    def has_add_permission(self, request):
        if CompanyProfile.objects.exists():
            return False
        return super().has_add_permission(request)


@admin.register(BillingSettings)
class BillingSettingsAdmin(admin.ModelAdmin):
    list_display = ('current_sequence', 'default_gst_percentage', 'enable_gst', 'updated_at')
    exclude = ('singleton',)
    readonly_fields = ('current_sequence',)

    def has_add_permission(self, request):
        if BillingSettings.objects.exists():
            return False
        return super().has_add_permission(request)

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(WhatsAppConfig)
class WhatsAppConfigAdmin(admin.ModelAdmin):
    list_display = ('enabled', 'phone_number_id', 'template_name', 'updated_at')
    list_display_links = ('phone_number_id',)
    fields = ('enabled', 'phone_number_id', 'api_token', 'default_language', 'template_name')

    def has_add_permission(self, request):
        # Restrict to a single config entry
        if WhatsAppConfig.objects.exists():
            return False
        return super().has_add_permission(request)
