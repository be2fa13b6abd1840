import logging

from django.db import transaction
from rest_framework import generics, permissions, status, views
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from .models import PlatformSettings, RefundRequest
from .refunds import RefundRequestService
from .serializers import (
    CheckoutSerializer,
    CheckoutSessionSerializer,
    PlatformSettingsSerializer,
    RefundRequestCreateSerializer,
    RefundRequestProcessSerializer,
    RefundRequestSerializer,
)
from .services import PaymentService
from .webhooks import StripeWebhookService

logger = logging.getLogger(__name__)


class CheckoutView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Start a hosted checkout for a gig package",
        request_body=CheckoutSerializer,
        responses={200: CheckoutSessionSerializer(), 403: "Own gig", 422: "Validation error", 502: "Provider error"},
    )
    def post(self, request):
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = PaymentService().create_checkout_session(
            buyer=request.user,
            gig_id=serializer.validated_data['gig_id'],
            package_type=serializer.validated_data['package_type'],
            requirements=serializer.validated_data.get('requirements', ''),
        )
        return Response(CheckoutSessionSerializer(result).data, status=status.HTTP_200_OK)


class StripeWebhookView(views.APIView):
    """Stripe calls this endpoint; the signature header is the only credential."""
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    @swagger_auto_schema(
        operation_summary="Receive Stripe webhook events",
        manual_parameters=[
            openapi.Parameter('Stripe-Signature', openapi.IN_HEADER, type=openapi.TYPE_STRING, required=True),
        ],
        responses={200: "Acknowledged", 400: "Bad signature"},
    )
    def post(self, request):
        signature = request.META.get('HTTP_STRIPE_SIGNATURE', '')
        result = StripeWebhookService().handle(request.body, signature)
        return Response(result, status=status.HTTP_200_OK)


class RefundRequestListCreateView(generics.ListAPIView):
    serializer_class = RefundRequestSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ['status', 'order']

    @swagger_auto_schema(operation_summary="List refund requests (own, or all for admins)")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(
        operation_summary="Request a refund for an order",
        request_body=RefundRequestCreateSerializer,
        responses={201: RefundRequestSerializer(), 400: "Nothing to refund", 403: "Not the buyer"},
    )
    def post(self, request):
        serializer = RefundRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        refund_request = RefundRequestService().create(
            user=request.user,
            order_id=serializer.validated_data['order_id'],
            reason=serializer.validated_data['reason'],
            amount=serializer.validated_data.get('amount'),
        )
        return Response(RefundRequestSerializer(refund_request).data, status=status.HTTP_201_CREATED)

    def get_queryset(self):
        queryset = RefundRequest.objects.select_related('requested_by', 'processed_by')
        if self.request.user.is_staff:
            return queryset
        return queryset.filter(requested_by=self.request.user)


class RefundRequestProcessView(views.APIView):
    permission_classes = [permissions.IsAdminUser]

    @swagger_auto_schema(
        operation_summary="Approve or reject a refund request",
        request_body=RefundRequestProcessSerializer,
        responses={200: RefundRequestSerializer(), 400: "Already processed", 404: "Not found"},
    )
    def put(self, request, pk):
        serializer = RefundRequestProcessSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        refund_request = RefundRequestService().process(
            request_id=pk,
            approve=serializer.validated_data['approve'],
            notes=serializer.validated_data.get('notes', ''),
            processed_by=request.user,
        )
        return Response(RefundRequestSerializer(refund_request).data)


class PlatformSettingsView(views.APIView):
    permission_classes = [permissions.IsAdminUser]

    @swagger_auto_schema(operation_summary="Get platform settings", responses={200: PlatformSettingsSerializer()})
    def get(self, request):
        row = PlatformSettings.load() or PlatformSettings(platform_fee_percent=PlatformSettings.current_fee_percent())
        return Response(PlatformSettingsSerializer(row).data)

    @swagger_auto_schema(
        operation_summary="Update platform settings",
        request_body=PlatformSettingsSerializer,
        responses={200: PlatformSettingsSerializer(), 422: "Validation error"},
    )
    def put(self, request):
        with transaction.atomic():
            row = PlatformSettings.load()
            serializer = PlatformSettingsSerializer(row, data=request.data, partial=row is not None)
            serializer.is_valid(raise_exception=True)
            row = serializer.save()
        logger.info(f"Platform settings updated by {request.user}: fee={row.platform_fee_percent}%")
        return Response(PlatformSettingsSerializer(row).data)
