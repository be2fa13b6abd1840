from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db.models import Count, Sum
from django.db.models.functions import TruncDate
from django.shortcuts import get_object_or_404
from rest_framework import generics, permissions, status, views
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from escrow.models import EscrowTransaction
from .models import LedgerEntry, Wallet, WithdrawalRequest
from .serializers import (
    LedgerEntrySerializer,
    RevenueQuerySerializer,
    WalletSerializer,
    WithdrawalCreateSerializer,
    WithdrawalProcessSerializer,
    WithdrawalRequestSerializer,
)
from .services import WithdrawalService, get_or_create_wallet, reconcile_wallet

User = get_user_model()

RECENT_TRANSACTIONS = 20


class WalletView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Get the current user's wallet",
        manual_parameters=[
            openapi.Parameter('include_transactions', openapi.IN_QUERY, type=openapi.TYPE_BOOLEAN),
        ],
        responses={200: WalletSerializer()},
    )
    def get(self, request):
        wallet = get_or_create_wallet(request.user)
        data = {'wallet': WalletSerializer(wallet).data}

        if request.query_params.get('include_transactions', '').lower() in ('1', 'true', 'yes'):
            entries = LedgerEntry.objects.filter(wallet=wallet)[:RECENT_TRANSACTIONS]
            data['transactions'] = LedgerEntrySerializer(entries, many=True).data

        return Response(data)


class LedgerEntryListView(generics.ListAPIView):
    serializer_class = LedgerEntrySerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ['entry_type', 'bucket', 'status']

    @swagger_auto_schema(operation_summary="List the current user's ledger entries")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        return LedgerEntry.objects.filter(user=self.request.user)


class WithdrawalListCreateView(generics.ListAPIView):
    serializer_class = WithdrawalRequestSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ['status', 'method']

    @swagger_auto_schema(operation_summary="List withdrawal requests (own, or all for admins)")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(
        operation_summary="Request a withdrawal",
        request_body=WithdrawalCreateSerializer,
        manual_parameters=[
            openapi.Parameter('Idempotency-Key', openapi.IN_HEADER, type=openapi.TYPE_STRING),
        ],
        responses={
            201: WithdrawalRequestSerializer(),
            200: "Replay of an earlier request with the same idempotency key",
            400: "Insufficient balance or below minimum",
            409: "Idempotency key reused with different terms",
            422: "Validation error",
        },
    )
    def post(self, request):
        serializer = WithdrawalCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        withdrawal, created = WithdrawalService().request(
            user=request.user,
            amount=data['amount'],
            method=data['method'],
            account_details=data['account_details'],
            idempotency_key=data.get('idempotency_key') or request.headers.get('Idempotency-Key'),
        )
        code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
        return Response(WithdrawalRequestSerializer(withdrawal).data, status=code)

    def get_queryset(self):
        queryset = WithdrawalRequest.objects.select_related('user')
        if self.request.user.is_staff:
            return queryset
        return queryset.filter(user=self.request.user)


class WithdrawalCancelView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Cancel a pending withdrawal request",
        responses={200: WithdrawalRequestSerializer(), 400: "Not pending", 403: "Forbidden", 404: "Not found"},
    )
    def delete(self, request, pk):
        withdrawal = WithdrawalService().cancel(withdrawal_id=pk, user=request.user)
        return Response(WithdrawalRequestSerializer(withdrawal).data, status=status.HTTP_200_OK)


class WithdrawalProcessView(views.APIView):
    permission_classes = [permissions.IsAdminUser]

    @swagger_auto_schema(
        operation_summary="Approve or reject a withdrawal request",
        request_body=WithdrawalProcessSerializer,
        responses={
            200: WithdrawalRequestSerializer(),
            400: "Already processed",
            404: "Not found",
            502: "Payout rail failed; the amount was returned to the wallet",
        },
    )
    def put(self, request, pk):
        serializer = WithdrawalProcessSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        withdrawal = WithdrawalService().process(
            withdrawal_id=pk,
            approve=serializer.validated_data['approve'],
            notes=serializer.validated_data.get('notes', ''),
            processed_by=request.user,
        )
        return Response(WithdrawalRequestSerializer(withdrawal).data)


class WalletReconcileView(views.APIView):
    permission_classes = [permissions.IsAdminUser]

    @swagger_auto_schema(operation_summary="Compare a wallet's balances with its ledger entries")
    def get(self, request, user_id):
        user = get_object_or_404(User, pk=user_id)
        wallet = get_object_or_404(Wallet, user=user)
        return Response(reconcile_wallet(wallet))


class RevenueView(views.APIView):
    """
    Platform revenue, optionally within a date range: the fee kept from each
    released escrow plus the service fee the buyer paid at checkout for it.
    Refunded orders contribute nothing; their whole payment goes back.
    """
    permission_classes = [permissions.IsAdminUser]

    @swagger_auto_schema(
        operation_summary="Platform revenue report",
        query_serializer=RevenueQuerySerializer,
    )
    def get(self, request):
        query = RevenueQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        start, end = query.validated_data.get('start_date'), query.validated_data.get('end_date')

        fees = LedgerEntry.objects.filter(entry_type=LedgerEntry.SERVICE_FEE)
        released = EscrowTransaction.objects.filter(status=EscrowTransaction.RELEASED, order__service_fee__gt=0)
        if start:
            fees = fees.filter(created_at__date__gte=start)
            released = released.filter(released_at__date__gte=start)
        if end:
            fees = fees.filter(created_at__date__lte=end)
            released = released.filter(released_at__date__lte=end)

        totals = fees.aggregate(total=Sum('amount'), count=Count('id'))
        platform_fees = -(totals['total'] or Decimal('0'))
        service_fees = released.aggregate(total=Sum('order__service_fee'))['total'] or Decimal('0')

        daily = {}

        def bucket(day):
            return daily.setdefault(day, {
                'date': day, 'platform_fees': Decimal('0'), 'service_fees': Decimal('0'), 'count': 0,
            })

        fee_days = (
            fees.annotate(day=TruncDate('created_at'))
            .values('day')
            .annotate(total=Sum('amount'), count=Count('id'))
            .order_by('day')
        )
        for row in fee_days:
            bucket(row['day'])['platform_fees'] -= row['total']
            bucket(row['day'])['count'] += row['count']

        service_fee_days = (
            released.annotate(day=TruncDate('released_at'))
            .values('day')
            .annotate(total=Sum('order__service_fee'))
            .order_by('day')
        )
        for row in service_fee_days:
            bucket(row['day'])['service_fees'] += row['total']

        return Response({
            'start_date': start,
            'end_date': end,
            'total_platform_fees': platform_fees,
            'total_service_fees': service_fees,
            'total_revenue': platform_fees + service_fees,
            'fee_count': totals['count'],
            'daily': [daily[key] for key in sorted(daily)],
        })
