from django.urls import include, path
from rest_framework.routers import DefaultRouter
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

from billing.api import views

router = DefaultRouter()
router.register('clients', views.ClientViewSet, basename='client')
router.register('bank-accounts', views.BankAccountViewSet, basename='bank-account')
router.register('projects', views.ProjectViewSet, basename='project')
router.register('invoices', views.InvoiceViewSet, basename='invoice')
router.register('payments', views.PaymentViewSet, basename='payment')
router.register('company-profile', views.CompanyProfileViewSet, basename='company-profile')
router.register('billing-settings', views.BillingSettingsViewSet, basename='billing-settings')
router.register('whatsapp-configs', views.WhatsAppConfigViewSet, basename='whatsapp-config')
router.register('staff-activity', views.StaffActivityViewSet, basename='staff-activity')

urlpatterns = [
    path('auth/token/', views.CustomTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', views.CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/me/', views.MeView.as_view(), name='me'),
    path('schema/', SpectacularAPIView.as_view(), name='schema'),
    path('docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
    path('', include(router.urls)),
]
