from rest_framework.permissions import BasePermission


class IsDriver(BasePermission):
    """
    Allows access only to users with role == 'driver'.
    Keeps role check logic centralized.
    """
    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False
        return getattr(user, "role", None) == "driver"


class IsDispatcher(BasePermission):
    """Allows access only to dispatch-side roles (dispatcher, fleet manager, admin)."""
    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False
        return bool(getattr(user, "is_dispatcher", False))
