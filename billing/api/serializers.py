from __future__ import annotations

from django.core.exceptions import ValidationError
from rest_framework import serializers

from billing.models import (
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


class CleanModelSerializer(serializers.ModelSerializer):
    """ModelSerializer that runs full_clean before saving."""

    def _perform_full_clean(self, instance):
        try:
            instance.full_clean()
        except ValidationError as exc:
            if hasattr(exc, 'message_dict'):
                raise serializers.ValidationError(exc.message_dict) from exc
            raise serializers.ValidationError({'detail': exc.messages}) from exc

    def create(self, validated_data, **kwargs):
        validated_data.update(kwargs)
        instance = self.Meta.model(**validated_data)
        self._perform_full_clean(instance)
        instance.save()
        return instance

    def update(self, instance, validated_data, **kwargs):
        validated_data.update(kwargs)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        self._perform_full_clean(instance)
        instance.save()
        return instance


class UserSummarySerializer(serializers.ModelSerializer):
    full_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ('id', 'username', 'full_name', 'email', 'role')

    def get_full_name(self, obj):
        return obj.get_full_name() or obj.username


class ClientSerializer(CleanModelSerializer):
    billing_email = serializers.CharField(read_only=True)

    class Meta:
        model = Client
        fields = (
            'id',
            'name',
            'email',
            'finance_email',
            'billing_email',
            'phone',
            'street',
            'city',
            'state',
            'pincode',
            'country',
            'gst_number',
            'pan_number',
            'created_at',
            'updated_at',
        )
        read_only_fields = ('created_at', 'updated_at')


class ClientSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Client
        fields = ('id', 'name', 'email', 'phone')


class BankAccountSerializer(CleanModelSerializer):
    class Meta:
        model = BankAccount
        fields = (
            'id',
            'account_holder_name',
            'account_number',
            'ifsc_code',
            'bank_name',
            'account_type',
            'swift_code',
            'is_default',
            'created_at',
            'updated_at',
        )
        read_only_fields = ('created_at', 'updated_at')


class CompanyProfileSerializer(CleanModelSerializer):
    class Meta:
        model = CompanyProfile
        fields = (
            'id',
            'name',
            'address',
            'email',
            'contact',
            'gst_number',
            'lut_number',
            'website',
            'logo',
            'signature',
            'updated_at',
        )
        read_only_fields = ('updated_at',)


class BillingSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = BillingSettings
        fields = ('id', 'current_sequence', 'default_gst_percentage', 'enable_gst', 'updated_at')
        read_only_fields = fields


class ProjectSerializer(CleanModelSerializer):
    client_detail = ClientSummarySerializer(source='client', read_only=True)
    owner_detail = UserSummarySerializer(source='owner', read_only=True)
    committed_subtotal = serializers.SerializerMethodField()

    class Meta:
        model = Project
        fields = (
            'id',
            'client',
            'client_detail',
            'owner',
            'owner_detail',
            'name',
            'description',
            'project_type',
            'allocation_type',
            'total_amount',
            'currency',
            'status',
            'start_date',
            'end_date',
            'committed_subtotal',
            'created_at',
            'updated_at',
        )
        read_only_fields = ('created_at', 'updated_at')

    def get_committed_subtotal(self, obj):
        return str(obj.committed_subtotal())


class ProjectSummarySerializer(serializers.ModelSerializer):
    client_name = serializers.CharField(source='client.name', read_only=True)

    class Meta:
        model = Project
        fields = ('id', 'name', 'client', 'client_name', 'project_type', 'allocation_type', 'currency')


class InvoiceLineSerializer(serializers.ModelSerializer):
    class Meta:
        model = InvoiceLine
        fields = ('id', 'position', 'description', 'amount', 'hours', 'rate', 'team_role')
        read_only_fields = fields


class InvoiceStatusHistorySerializer(serializers.ModelSerializer):
    actor_detail = UserSummarySerializer(source='actor', read_only=True)

    class Meta:
        model = InvoiceStatusHistory
        fields = ('id', 'status', 'remark', 'actor_detail', 'created_at')
        read_only_fields = fields


class InvoiceSerializer(serializers.ModelSerializer):
    project_detail = ProjectSummarySerializer(source='project', read_only=True)
    services = InvoiceLineSerializer(source='lines', many=True, read_only=True)
    status_history = InvoiceStatusHistorySerializer(many=True, read_only=True)
    duplicated_from_number = serializers.CharField(source='duplicated_from.invoice_number', read_only=True, default=None)
    has_document = serializers.SerializerMethodField()

    class Meta:
        model = Invoice
        fields = (
            'id',
            'invoice_number',
            'project',
            'project_detail',
            'currency',
            'issue_date',
            'due_date',
            'services',
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
            'payment_method',
            'bank_account',
            'custom_payment_details',
            'duplicated_from',
            'duplicated_from_number',
            'status_history',
            'has_document',
            'pdf_generated_at',
            'version',
            'created_at',
            'updated_at',
        )
        read_only_fields = fields

    def get_has_document(self, obj) -> bool:
        return bool(obj.pdf_document)


class ServiceInputSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=500, allow_blank=True, required=False, default='')
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0)
    hours = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, required=False, allow_null=True)
    rate = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True)
    team_role = serializers.CharField(max_length=100, allow_blank=True, required=False, default='')


class InvoiceUpdateSerializer(serializers.Serializer):
    """Fields a draft invoice accepts. Derived money fields are never writable."""

    services = ServiceInputSerializer(many=True, required=False)
    gst_percentage = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, required=False)
    include_gst = serializers.BooleanField(required=False)
    issue_date = serializers.DateField(required=False)
    due_date = serializers.DateField(required=False, allow_null=True)
    payment_method = serializers.ChoiceField(choices=Invoice.PaymentMethod.choices, required=False)
    bank_account = serializers.IntegerField(required=False, allow_null=True)
    custom_payment_details = serializers.CharField(required=False, allow_blank=True)

    def to_patch(self) -> dict:
        patch = dict(self.validated_data)
        if 'bank_account' in patch:
            patch['bank_account_id'] = patch.pop('bank_account')
        if 'services' in patch:
            patch['services'] = [dict(service) for service in patch['services']]
        return patch


class InvoiceCreateSerializer(InvoiceUpdateSerializer):
    project = serializers.IntegerField()
    services = ServiceInputSerializer(many=True)


class StatusTransitionSerializer(serializers.Serializer):
    # Validated by the lifecycle manager so unknown values report invalid_status.
    status = serializers.CharField(max_length=32)
    remark = serializers.CharField(required=False, allow_blank=True, default='')
    paid_date = serializers.DateField(required=False, allow_null=True)
    paid_amount_delta = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, allow_null=True)


class PaymentSerializer(serializers.ModelSerializer):
    invoice_number = serializers.CharField(source='invoice.invoice_number', read_only=True, default=None)
    recorded_by_detail = UserSummarySerializer(source='recorded_by', read_only=True)

    class Meta:
        model = Payment
        fields = (
            'id',
            'project',
            'invoice',
            'invoice_number',
            'amount',
            'currency',
            'payment_method',
            'bank_account',
            'custom_payment_details',
            'payment_date',
            'reference',
            'notes',
            'recorded_by_detail',
            'created_at',
        )
        read_only_fields = fields


class PaymentCreateSerializer(serializers.Serializer):
    project = serializers.IntegerField()
    invoice = serializers.IntegerField(required=False, allow_null=True)
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    payment_date = serializers.DateField(required=False)
    payment_method = serializers.ChoiceField(
        choices=Invoice.PaymentMethod.choices, default=Invoice.PaymentMethod.BANK_ACCOUNT
    )
    bank_account = serializers.IntegerField(required=False, allow_null=True)
    custom_payment_details = serializers.CharField(required=False, allow_blank=True, default='')
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class WhatsAppConfigSerializer(CleanModelSerializer):
    class Meta:
        model = WhatsAppConfig
        fields = ('id', 'enabled', 'phone_number_id', 'api_token', 'default_language', 'template_name')
        extra_kwargs = {'api_token': {'write_only': True}}


class StaffActivitySerializer(serializers.ModelSerializer):
    actor_detail = UserSummarySerializer(source='actor', read_only=True)

    class Meta:
        model = StaffActivity
        fields = ('id', 'actor', 'actor_detail', 'category', 'message', 'related_url', 'created_at')
        read_only_fields = fields
