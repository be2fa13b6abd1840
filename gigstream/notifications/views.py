from rest_framework import generics, permissions, views
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from .models import Notification
from .serializers import MarkReadSerializer, NotificationSerializer


class NotificationListView(generics.ListAPIView):
    serializer_class = NotificationSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ['is_read', 'notification_type']

    @swagger_auto_schema(
        operation_summary="List the current user's notifications",
        manual_parameters=[
            openapi.Parameter('is_read', openapi.IN_QUERY, type=openapi.TYPE_BOOLEAN),
        ],
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        return Notification.objects.filter(user=self.request.user)


class NotificationMarkReadView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Mark notifications as read",
        request_body=MarkReadSerializer,
    )
    def post(self, request):
        serializer = MarkReadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        queryset = Notification.objects.filter(user=request.user, is_read=False)
        if not serializer.validated_data.get('all'):
            queryset = queryset.filter(id__in=serializer.validated_data['ids'])
        updated = queryset.update(is_read=True)

        return Response({'updated': updated})
