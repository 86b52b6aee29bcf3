"""
Permission classes for the queue API.
"""
from rest_framework.permissions import BasePermission


class IsQueueStaff(BasePermission):
    """Allow access only to staff users (reception desks, nurses, doctors)."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and user.is_staff)
