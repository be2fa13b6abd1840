from django.urls import path

from . import views

urlpatterns = [
    path('wallet/', views.WalletView.as_view(), name='wallet'),
    path('wallet/transactions/', views.LedgerEntryListView.as_view(), name='wallet-transactions'),
    path('wallet/withdrawals/', views.WithdrawalListCreateView.as_view(), name='withdrawal-list'),
    path('wallet/withdrawals/<int:pk>/', views.WithdrawalCancelView.as_view(), name='withdrawal-cancel'),
    path('wallet/withdrawals/<int:pk>/process/', views.WithdrawalProcessView.as_view(), name='withdrawal-process'),
    path('admin/wallets/<int:user_id>/reconcile/', views.WalletReconcileView.as_view(), name='wallet-reconcile'),
    path('admin/revenue/', views.RevenueView.as_view(), name='admin-revenue'),
]
