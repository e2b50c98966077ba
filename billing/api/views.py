from __future__ import annotations

from django.http import HttpResponse
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView, exception_handler
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from billing.activity import log_staff_activity
from billing.api.permissions import RolePermission
from billing.api.serializers import (
    BankAccountSerializer,
    BillingSettingsSerializer,
    ClientSerializer,
    CompanyProfileSerializer,
    InvoiceCreateSerializer,
    InvoiceSerializer,
    InvoiceUpdateSerializer,
    PaymentCreateSerializer,
    PaymentSerializer,
    ProjectSerializer,
    StaffActivitySerializer,
    StatusTransitionSerializer,
    UserSummarySerializer,
    WhatsAppConfigSerializer,
)
from billing.calculator import to_money
from billing.exceptions import BillingError, InvalidPatch
from billing.lifecycle import PATCHABLE_FIELDS, InvoiceLifecycleManager
from billing.models import (
    BankAccount,
    BillingSettings,
    Client,
    CompanyProfile,
    Invoice,
    Payment,
    Project,
    StaffActivity,
    User,
    WhatsAppConfig,
)

FINANCE_ROLES = (User.Roles.ADMIN, User.Roles.FINANCE)
MANAGER_ROLES = (User.Roles.ADMIN, User.Roles.FINANCE, User.Roles.PROJECT_MANAGER)


def billing_exception_handler(exc, context):
    """Render billing errors as ``{kind, detail, retryable, ...}``."""
    if isinstance(exc, BillingError):
        return Response(exc.as_dict(), status=exc.status_code)
    return exception_handler(exc, context)


def _safe_filename(value: str) -> str:
    safe = ''.join(ch if ch.isalnum() or ch in '._-' else '-' for ch in value)
    safe = safe.strip('-') or 'document'
    return safe


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        username = attrs.get(self.username_field)
        if username and '@' in username:
            user = User.objects.filter(email__iexact=username).first()
            if user:
                attrs[self.username_field] = user.get_username()
        return super().validate(attrs)


class CustomTokenObtainPairView(TokenObtainPairView):
    permission_classes = (AllowAny,)
    serializer_class = CustomTokenObtainPairSerializer


class CustomTokenRefreshView(TokenRefreshView):
    permission_classes = (AllowAny,)


class MeView(APIView):
    def get(self, request):
        return Response({'user': UserSummarySerializer(request.user).data})


class BaseModelViewSet(viewsets.ModelViewSet):
    permission_classes = (IsAuthenticated, RolePermission)
    role_map: dict[str, tuple[str, ...] | None] | None = None

    def get_permissions(self):
        if self.role_map:
            roles = self.role_map.get(self.action)
            self.allowed_roles = roles
        return super().get_permissions()


class ClientViewSet(BaseModelViewSet):
    queryset = Client.objects.all().order_by('name')
    serializer_class = ClientSerializer
    search_fields = ('name', 'email', 'finance_email', 'phone')
    ordering_fields = ('name', 'created_at', 'updated_at')
    filterset_fields = ('city', 'state', 'country')
    role_map = {
        'create': MANAGER_ROLES,
        'update': MANAGER_ROLES,
        'partial_update': MANAGER_ROLES,
        'destroy': (User.Roles.ADMIN,),
    }


class BankAccountViewSet(BaseModelViewSet):
    queryset = BankAccount.objects.all()
    serializer_class = BankAccountSerializer
    filterset_fields = ('account_type', 'is_default')
    role_map = {
        'create': FINANCE_ROLES,
        'update': FINANCE_ROLES,
        'partial_update': FINANCE_ROLES,
        'destroy': (User.Roles.ADMIN,),
    }


class ProjectViewSet(BaseModelViewSet):
    queryset = Project.objects.select_related('client', 'owner')
    serializer_class = ProjectSerializer
    search_fields = ('name', 'client__name', 'description')
    ordering_fields = ('created_at', 'name', 'total_amount', 'start_date')
    filterset_fields = ('client', 'status', 'project_type', 'allocation_type', 'currency')
    role_map = {
        'create': MANAGER_ROLES,
        'update': MANAGER_ROLES,
        'partial_update': MANAGER_ROLES,
        'destroy': (User.Roles.ADMIN,),
    }

    def perform_create(self, serializer):
        project = serializer.save()
        log_staff_activity(
            actor=self.request.user,
            category=StaffActivity.Category.PROJECTS,
            message=f"Created project {project.name}.",
            related_url=f"/api/v1/projects/{project.pk}/",
        )

    @action(detail=True, methods=['get'])
    def budget(self, request, pk=None):
        project = self.get_object()
        committed = to_money(project.committed_subtotal())
        return Response({
            'total_amount': str(to_money(project.total_amount)),
            'committed_subtotal': str(committed),
            'remaining': str(to_money(project.total_amount) - committed),
            'currency': project.currency,
        })


class InvoiceViewSet(BaseModelViewSet):
    serializer_class = InvoiceSerializer
    search_fields = ('invoice_number', 'project__name', 'project__client__name')
    ordering_fields = ('issue_date', 'due_date', 'status', 'total_amount', 'created_at')
    filterset_fields = ('status', 'project', 'currency', 'is_deleted')
    role_map = {
        'create': FINANCE_ROLES,
        'update': FINANCE_ROLES,
        'partial_update': FINANCE_ROLES,
        'destroy': FINANCE_ROLES,
        'transition': FINANCE_ROLES,
        'restore': (User.Roles.ADMIN,),
        'duplicate': FINANCE_ROLES,
    }

    def get_queryset(self):
        queryset = Invoice.objects.select_related(
            'project', 'project__client', 'bank_account', 'duplicated_from'
        ).prefetch_related('lines', 'status_history', 'status_history__actor')
        params = self.request.query_params
        if self.action == 'list' and 'is_deleted' not in params and params.get('include_deleted') not in ('1', 'true'):
            queryset = queryset.filter(is_deleted=False)
        return queryset

    def get_lifecycle(self) -> InvoiceLifecycleManager:
        return InvoiceLifecycleManager.default(actor=self.request.user)

    def _respond(self, invoice, status_code=status.HTTP_200_OK):
        return Response(InvoiceSerializer(invoice, context=self.get_serializer_context()).data, status=status_code)

    def create(self, request, *args, **kwargs):
        serializer = InvoiceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        patch = serializer.to_patch()
        invoice = self.get_lifecycle().create_invoice(patch.pop('project'), **patch)
        return self._respond(invoice, status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        unknown = set(request.data) - PATCHABLE_FIELDS - {'bank_account'}
        if unknown:
            raise InvalidPatch(f"These fields cannot be changed: {', '.join(sorted(unknown))}.")
        serializer = InvoiceUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        invoice = self.get_lifecycle().update_invoice(kwargs['pk'], serializer.to_patch())
        return self._respond(invoice)

    def partial_update(self, request, *args, **kwargs):
        return self.update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        remark = request.data.get('remark') or request.query_params.get('remark')
        result = self.get_lifecycle().delete_invoice(kwargs['pk'], remark)
        if result.hard_deleted:
            return Response(status=status.HTTP_204_NO_CONTENT)
        return self._respond(result.invoice)

    @action(detail=True, methods=['post'], url_path='status')
    def transition(self, request, pk=None):
        serializer = StatusTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        invoice = self.get_lifecycle().transition_status(
            pk,
            data['status'],
            remark=data.get('remark', ''),
            paid_date=data.get('paid_date'),
            paid_amount_delta=data.get('paid_amount_delta'),
        )
        return self._respond(invoice)

    @action(detail=True, methods=['post'])
    def restore(self, request, pk=None):
        return self._respond(self.get_lifecycle().restore_invoice(pk))

    @action(detail=True, methods=['post'])
    def duplicate(self, request, pk=None):
        return self._respond(self.get_lifecycle().duplicate_invoice(pk), status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'])
    def pdf(self, request, pk=None):
        lifecycle = self.get_lifecycle()
        invoice = lifecycle.find_invoice(pk)
        refresh = request.query_params.get('refresh') in ('1', 'true')
        pdf_file = lifecycle.cached_document(invoice.pk, refresh=refresh)
        safe_number = _safe_filename(invoice.invoice_number or str(invoice.pk))
        response = HttpResponse(pdf_file, content_type='application/pdf')
        response['Content-Disposition'] = f'inline; filename="invoice-{safe_number}.pdf"'
        return response


class PaymentViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Payment.objects.select_related('project', 'invoice', 'recorded_by')
    serializer_class = PaymentSerializer
    permission_classes = (IsAuthenticated, RolePermission)
    filterset_fields = ('project', 'invoice', 'payment_method')
    ordering_fields = ('payment_date', 'amount')

    def get_permissions(self):
        self.allowed_roles = FINANCE_ROLES if self.action == 'create' else None
        return super().get_permissions()

    def create(self, request, *args, **kwargs):
        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        lifecycle = InvoiceLifecycleManager.default(actor=request.user)
        payment = lifecycle.record_payment(
            data.pop('project'),
            data.pop('amount'),
            invoice_id=data.pop('invoice', None),
            bank_account_id=data.pop('bank_account', None),
            **data,
        )
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


class CompanyProfileViewSet(BaseModelViewSet):
    queryset = CompanyProfile.objects.all()
    serializer_class = CompanyProfileSerializer
    http_method_names = ['get', 'put', 'patch', 'head', 'options']
    role_map = {
        'update': (User.Roles.ADMIN,),
        'partial_update': (User.Roles.ADMIN,),
    }


class BillingSettingsViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = BillingSettings.objects.all()
    serializer_class = BillingSettingsSerializer
    permission_classes = (IsAuthenticated,)


class WhatsAppConfigViewSet(BaseModelViewSet):
    queryset = WhatsAppConfig.objects.all().order_by('-updated_at')
    serializer_class = WhatsAppConfigSerializer
    role_map = {
        'list': (User.Roles.ADMIN,),
        'retrieve': (User.Roles.ADMIN,),
        'create': (User.Roles.ADMIN,),
        'update': (User.Roles.ADMIN,),
        'partial_update': (User.Roles.ADMIN,),
        'destroy': (User.Roles.ADMIN,),
    }


class StaffActivityViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = StaffActivity.objects.select_related('actor').order_by('-created_at')
    serializer_class = StaffActivitySerializer
    permission_classes = (IsAuthenticated, RolePermission)
    allowed_roles = (User.Roles.ADMIN,)
    filterset_fields = ('category', 'actor')
