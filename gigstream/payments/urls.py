from django.urls import path

from . import views

urlpatterns = [
    path('checkout/', views.CheckoutView.as_view(), name='checkout'),
    path('webhooks/stripe/', views.StripeWebhookView.as_view(), name='stripe-webhook'),
    path('payments/refunds/', views.RefundRequestListCreateView.as_view(), name='refund-request-list'),
    path('payments/refunds/<int:pk>/', views.RefundRequestProcessView.as_view(), name='refund-request-process'),
    path('admin/settings/', views.PlatformSettingsView.as_view(), name='platform-settings'),
]
