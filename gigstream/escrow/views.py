from django.db.models import Q
from rest_framework import generics, permissions, status, views
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from orders.serializers import OrderSerializer
from wallet.services import get_escrow_balance
from .models import EscrowTransaction
from .serializers import (
	EscrowBalanceSerializer,
	EscrowLockSerializer,
	EscrowRefundSerializer,
	EscrowTransactionSerializer,
)
from .services import EscrowService

escrow_id_param = openapi.Parameter(
	'pk',
	openapi.IN_PATH,
	description="Escrow transaction ID",
	type=openapi.TYPE_INTEGER,
)


class EscrowTransactionListView(generics.ListAPIView):
	"""List all escrows relevant to the authenticated user."""

	serializer_class = EscrowTransactionSerializer
	permission_classes = [permissions.IsAuthenticated]
	filterset_fields = ["status", "is_locked"]

	@swagger_auto_schema(
		operation_summary="List escrow transactions for the current user",
		responses={200: EscrowTransactionSerializer(many=True)}
	)
	def get(self, request, *args, **kwargs):
		return super().get(request, *args, **kwargs)

	def get_queryset(self):
		user = self.request.user
		queryset = EscrowTransaction.objects.select_related("order", "order__gig", "buyer", "seller")

		if user.is_staff:
			return queryset
		return queryset.filter(Q(buyer=user) | Q(seller=user))


class EscrowTransactionDetailView(generics.RetrieveAPIView):
	serializer_class = EscrowTransactionSerializer
	permission_classes = [permissions.IsAuthenticated]
	queryset = EscrowTransaction.objects.select_related("order", "order__gig", "buyer", "seller")

	@swagger_auto_schema(
		operation_summary="Retrieve a specific escrow transaction",
		responses={200: EscrowTransactionSerializer(), 404: "Not found"}
	)
	def get(self, request, *args, **kwargs):
		return super().get(request, *args, **kwargs)

	def check_object_permissions(self, request, obj):
		super().check_object_permissions(request, obj)
		if request.user.is_staff or request.user.id in (obj.buyer_id, obj.seller_id):
			return
		self.permission_denied(request, message="Not authorised to access this escrow.")


class EscrowReleaseFundsView(views.APIView):
	permission_classes = [permissions.IsAuthenticated]

	@swagger_auto_schema(
		operation_summary="Release escrowed funds to the seller",
		manual_parameters=[escrow_id_param],
		responses={
			200: EscrowTransactionSerializer(),
			400: "Already processed or locked",
			403: "Only the buyer can release",
			404: "Not found",
		}
	)
	def post(self, request, pk):
		escrow = EscrowService().release(escrow_id=pk, released_by=request.user)
		return Response(EscrowTransactionSerializer(escrow).data, status=status.HTTP_200_OK)


class EscrowRefundView(views.APIView):
	permission_classes = [permissions.IsAuthenticated]

	@swagger_auto_schema(
		operation_summary="Refund escrowed funds to the buyer",
		manual_parameters=[escrow_id_param],
		request_body=EscrowRefundSerializer,
		responses={
			200: EscrowTransactionSerializer(),
			400: "Already processed or locked",
			403: "Forbidden",
			404: "Not found",
			422: "Validation error",
		}
	)
	def post(self, request, pk):
		serializer = EscrowRefundSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)
		escrow = EscrowService().refund(
			escrow_id=pk,
			reason=serializer.validated_data["reason"],
			refunded_by=request.user,
		)
		return Response(EscrowTransactionSerializer(escrow).data, status=status.HTTP_200_OK)


class EscrowLockToggleView(views.APIView):
	permission_classes = [permissions.IsAdminUser]

	@swagger_auto_schema(
		operation_summary="Lock or unlock an escrow transaction",
		manual_parameters=[escrow_id_param],
		request_body=EscrowLockSerializer,
		responses={200: EscrowLockSerializer(), 403: "Forbidden", 404: "Not found"}
	)
	def patch(self, request, pk):
		serializer = EscrowLockSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)
		escrow = EscrowService().set_lock(escrow_id=pk, is_locked=serializer.validated_data["is_locked"])
		return Response(serializer.to_representation(escrow), status=status.HTTP_200_OK)


class EscrowBalanceView(views.APIView):
	"""The seller's withdrawable balance, the amount held in escrow, and orders awaiting approval."""
	permission_classes = [permissions.IsAuthenticated]

	@swagger_auto_schema(
		operation_summary="Escrow balance and pending orders for the current seller",
		responses={200: EscrowBalanceSerializer()}
	)
	def get(self, request):
		balance = get_escrow_balance(request.user)
		pending_orders = EscrowService().pending_escrow_orders(request.user)
		return Response({
			"balance": EscrowBalanceSerializer(balance).data,
			"pending_orders": OrderSerializer(pending_orders, many=True).data,
		})
