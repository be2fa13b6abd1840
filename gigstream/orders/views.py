from django.db.models import Q
from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.authentication import JWTAuthentication
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from accounts.permissions import IsSeller
from . import serializers as my_serializers
from .models import Gig, Order
from .permissions import IsGigOwnerOrReadOnly, IsOrderParticipant
from .services import OrderService


class ListCreateGigAPIView(generics.ListCreateAPIView):
    serializer_class = my_serializers.GigSerializer
    authentication_classes = [JWTAuthentication]
    filterset_fields = ['seller', 'is_active']

    def get_permissions(self):
        if self.request.method == 'POST':
            return [IsAuthenticated(), IsSeller()]
        return [IsAuthenticated()]

    @swagger_auto_schema(operation_summary="List gigs")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(operation_summary="Create a gig (sellers only)")
    def post(self, request, *args, **kwargs):
        return super().post(request, *args, **kwargs)

    def get_queryset(self):
        return Gig.objects.select_related('seller').order_by('-created_at')

    def perform_create(self, serializer):
        serializer.save(seller=self.request.user)


class RetrieveUpdateGigAPIView(generics.RetrieveUpdateAPIView):
    serializer_class = my_serializers.GigSerializer
    permission_classes = [IsAuthenticated, IsGigOwnerOrReadOnly]
    authentication_classes = [JWTAuthentication]
    queryset = Gig.objects.select_related('seller')
    http_method_names = ['get', 'patch']
    lookup_field = 'id'


class ListOrderAPIView(generics.ListAPIView):
    """Orders the user bought or sold; admins see every order."""
    serializer_class = my_serializers.OrderSerializer
    permission_classes = [IsAuthenticated]
    authentication_classes = [JWTAuthentication]
    filterset_fields = ['status', 'payment_status']

    @swagger_auto_schema(
        operation_summary="List the current user's orders",
        manual_parameters=[
            openapi.Parameter('status', openapi.IN_QUERY, type=openapi.TYPE_STRING),
            openapi.Parameter('payment_status', openapi.IN_QUERY, type=openapi.TYPE_STRING),
        ],
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        queryset = Order.objects.select_related('gig', 'buyer', 'seller', 'escrow')
        user = self.request.user
        if user.is_staff:
            return queryset
        return queryset.filter(Q(buyer=user) | Q(seller=user))


class RetrieveOrderAPIView(generics.RetrieveAPIView):
    serializer_class = my_serializers.OrderSerializer
    permission_classes = [IsAuthenticated, IsOrderParticipant]
    authentication_classes = [JWTAuthentication]
    queryset = Order.objects.select_related('gig', 'buyer', 'seller', 'escrow')
    lookup_field = 'id'

    @swagger_auto_schema(operation_summary="Retrieve an order", responses={200: my_serializers.OrderSerializer(), 404: "Not found"})
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class UpdateOrderStatusAPIView(generics.GenericAPIView):
    serializer_class = my_serializers.OrderStatusSerializer
    permission_classes = [IsAuthenticated]
    authentication_classes = [JWTAuthentication]

    @swagger_auto_schema(
        operation_summary="Deliver, complete or cancel an order",
        request_body=my_serializers.OrderStatusSerializer,
        responses={
            200: my_serializers.OrderSerializer(),
            400: "Invalid transition or escrow locked",
            403: "Wrong party",
            404: "Not found",
        },
    )
    def patch(self, request, id):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = OrderService().transition(
            order_id=id,
            new_status=serializer.validated_data['status'],
            actor=request.user,
            reason=serializer.validated_data.get('reason', ''),
        )
        return Response(my_serializers.OrderSerializer(order).data, status=status.HTTP_200_OK)
