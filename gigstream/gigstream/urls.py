from django.contrib import admin
from django.urls import path, include
from rest_framework import permissions
from drf_yasg.views import get_schema_view
from drf_yasg import openapi

schema_view = get_schema_view(
    openapi.Info(
        title="GigStream Ledger API",
        default_version='v1',
        description="Orders, escrow, wallets and withdrawals for the GigStream marketplace",
    ),
    public=True,
    permission_classes=(permissions.AllowAny,),
)

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/auth/', include('accounts.urls')),
    path('api/', include('orders.urls')),
    path('api/payments/escrow/', include('escrow.urls')),
    path('api/', include('payments.urls')),
    path('api/', include('wallet.urls')),
    path('api/', include('disputes.urls')),
    path('api/notifications/', include('notifications.urls')),

    # swagger/openapi routes
    path('swagger/', schema_view.with_ui('swagger', cache_timeout=0), name='schema-swagger-ui'),
    path('redoc/', schema_view.with_ui('redoc', cache_timeout=0), name='schema-redoc'),
    path('openapi.json/', schema_view.without_ui(cache_timeout=0), name='schema-json'),
]
