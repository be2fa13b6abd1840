from rest_framework import generics, permissions, status, filters
from rest_framework.response import Response
from rest_framework_simplejwt.authentication import JWTAuthentication
from django.db.models import Q
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework.permissions import IsAuthenticated
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from . import serializers as my_serializers
from .models import Dispute
from .permissions import IsModerator, IsDisputeParticipantOrModerator, IsDisputeOwner
from .services import DisputeService


class CreateDisputeAPIView(generics.CreateAPIView):
    """
    Allows the buyer or seller of an order to raise a dispute on it.
    The URL must contain the order_id.
    """
    serializer_class = my_serializers.DisputeCreateSerializer
    permission_classes = [permissions.IsAuthenticated]
    authentication_classes = [JWTAuthentication]

    @swagger_auto_schema(
        operation_summary="Raise a dispute on an order",
        request_body=my_serializers.DisputeCreateSerializer,
        responses={
            201: my_serializers.DisputeDetailSerializer(),
            400: "Order cannot be disputed",
            404: "Order not found",
            422: "Validation error",
        }
    )
    def post(self, request, *args, **kwargs):
        return super().post(request, *args, **kwargs)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        dispute = DisputeService().open(
            order_id=self.kwargs['order_id'],
            user=request.user,
            dispute_type=serializer.validated_data.get('dispute_type', 'other'),
            reason=serializer.validated_data['reason'],
        )
        return Response(my_serializers.DisputeDetailSerializer(dispute).data, status=status.HTTP_201_CREATED)


class ListDisputesAPIView(generics.ListAPIView):
    """
    List disputes.
    - Moderators see all disputes.
    - Buyers and sellers see only disputes on their own orders.
    """
    serializer_class = my_serializers.DisputeDetailSerializer
    permission_classes = [IsAuthenticated]
    authentication_classes = [JWTAuthentication]
    filter_backends = [filters.OrderingFilter, DjangoFilterBackend]
    filterset_fields = ['status', 'dispute_type', 'outcome']
    ordering_fields = ['created_at', 'updated_at']
    ordering = ['-updated_at']

    @swagger_auto_schema(
        operation_summary="List disputes with optional filtering",
        manual_parameters=[
            openapi.Parameter(
                'status',
                openapi.IN_QUERY,
                description="Filter disputes by status",
                type=openapi.TYPE_STRING
            ),
            openapi.Parameter(
                'dispute_type',
                openapi.IN_QUERY,
                description="Filter disputes by dispute type",
                type=openapi.TYPE_STRING
            ),
            openapi.Parameter(
                'ordering',
                openapi.IN_QUERY,
                description="Order results by one of: created_at, updated_at",
                type=openapi.TYPE_STRING
            ),
        ],
        responses={200: my_serializers.DisputeDetailSerializer(many=True)}
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        user = self.request.user
        queryset = Dispute.objects.select_related('order', 'raised_by', 'resolved_by')
        if user.is_staff:
            return queryset

        return queryset.filter(Q(order__buyer=user) | Q(order__seller=user))


class RetrieveDisputeAPIView(generics.RetrieveAPIView):
    """
    Retrieve a single dispute's details.
    Accessible only by participants (buyer, seller) or moderators.
    """
    serializer_class = my_serializers.DisputeDetailSerializer
    permission_classes = [IsAuthenticated, IsDisputeParticipantOrModerator]
    authentication_classes = [JWTAuthentication]
    queryset = Dispute.objects.select_related('order', 'raised_by', 'resolved_by')
    lookup_field = 'id'

    @swagger_auto_schema(
        operation_summary="Retrieve a dispute",
        responses={200: my_serializers.DisputeDetailSerializer(), 404: "Not found"}
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class ModeratorUpdateDisputeAPIView(generics.GenericAPIView):
    """
    Allows a moderator to resolve a dispute (release, refund or resume) or close it.
    """
    serializer_class = my_serializers.ModeratorDisputeUpdateSerializer
    permission_classes = [permissions.IsAuthenticated, IsModerator]
    authentication_classes = [JWTAuthentication]

    @swagger_auto_schema(
        operation_summary="Resolve or close a dispute as moderator",
        request_body=my_serializers.ModeratorDisputeUpdateSerializer,
        responses={200: my_serializers.DisputeDetailSerializer(), 400: "Dispute not open", 422: "Validation error"}
    )
    def patch(self, request, id):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        dispute = DisputeService().resolve(
            dispute_id=id,
            moderator=request.user,
            status=data['status'],
            outcome=data.get('outcome', ''),
            resolution=data.get('resolution', ''),
            moderator_note=data.get('moderator_note'),
        )
        return Response(my_serializers.DisputeDetailSerializer(dispute).data)


class UpdateDeleteDisputeAPIView(generics.UpdateAPIView, generics.DestroyAPIView):
    """
    Allows the user who raised a dispute to update or withdraw it,
    but only if the dispute is still 'open'.
    """
    serializer_class = my_serializers.UpdateDisputeSerializer
    permission_classes = [IsAuthenticated, IsDisputeOwner]
    authentication_classes = [JWTAuthentication]
    queryset = Dispute.objects.all()
    lookup_field = 'id'
    http_method_names = ['patch', 'delete']

    @swagger_auto_schema(
        operation_summary="Partially update an open dispute",
        request_body=my_serializers.UpdateDisputeSerializer,
        responses={200: my_serializers.UpdateDisputeSerializer(), 422: "Validation error"}
    )
    def patch(self, request, *args, **kwargs):
        return super().patch(request, *args, **kwargs)

    @swagger_auto_schema(
        operation_summary="Withdraw an open dispute",
        responses={204: "Dispute withdrawn"}
    )
    def delete(self, request, *args, **kwargs):
        return super().delete(request, *args, **kwargs)

    def perform_destroy(self, instance):
        DisputeService().withdraw(dispute_id=instance.id, user=self.request.user)
