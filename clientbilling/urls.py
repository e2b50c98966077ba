from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.shortcuts import redirect
from django.urls import include, path


def index(request):
    return redirect("swagger-ui")


urlpatterns = [
    path("", index),
    path("admin/", admin.site.urls),
    path("api/v1/", include("billing.api.urls")),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
