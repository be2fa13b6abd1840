from rest_framework.permissions import SAFE_METHODS, BasePermission


class IsGigOwnerOrReadOnly(BasePermission):
    def has_object_permission(self, request, view, obj):
        if request.method in SAFE_METHODS:
            return True
        return obj.seller_id == request.user.id


class IsOrderParticipant(BasePermission):
    """
    Allows access only to the order's buyer, its seller, or an admin.
    """
    def has_object_permission(self, request, view, obj):
        return request.user.is_staff or obj.is_participant(request.user)
