"""
Root URL configuration for the clinic back office.

API routes live in :mod:`backoffice.routers`; this module only adds the
admin site, Prometheus metrics and the generated API documentation
(``/swagger/`` and ``/redoc/``).
"""
import os

from django.contrib import admin
from django.urls import include, path
from drf_yasg import openapi
from drf_yasg.views import get_schema_view
from rest_framework import permissions

api_info = openapi.Info(
    title="Clinic Back Office API",
    default_version='v1',
    description=(
        "Staff credential issuance, patient record claiming by one-time code, "
        "and treatment/payment bookkeeping with derived balances."
    ),
    contact=openapi.Contact(email=os.getenv("API_CONTACT_EMAIL", "")),
)

# docs are public in dev; in prod only staff sessions may read them
docs_permission = permissions.AllowAny if os.getenv("ENV", "dev") != "prod" else permissions.IsAdminUser

schema_view = get_schema_view(api_info, public=True, permission_classes=(docs_permission,))

urlpatterns = [
    path('admin/', admin.site.urls),
    path('', include('backoffice.routers')),
    path('', include('django_prometheus.urls')),
    path('swagger/', schema_view.with_ui('swagger', cache_timeout=0), name='schema-swagger-ui'),
    path('redoc/', schema_view.with_ui('redoc', cache_timeout=0), name='schema-redoc'),
]
