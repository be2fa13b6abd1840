from rest_framework import permissions


class IsSeller(permissions.BasePermission):
    message = "Only sellers can perform this action."

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_seller)
