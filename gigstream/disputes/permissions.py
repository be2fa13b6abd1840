from rest_framework.permissions import BasePermission
from .models import Dispute


class IsModerator(BasePermission):
    """
    Allows access only to staff users, who moderate disputes.
    """
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_staff)


class IsDisputeParticipantOrModerator(BasePermission):
    """
    Allows access only to the order's buyer, seller, or a moderator.
    This permission is checked against a single Dispute object.
    """
    def has_object_permission(self, request, view, obj: Dispute):
        return request.user.is_staff or obj.order.is_participant(request.user)


class IsDisputeOwner(BasePermission):
    """
    Allows access only to the user who created the dispute.
    """
    def has_object_permission(self, request, view, obj: Dispute):
        return obj.raised_by_id == request.user.id
