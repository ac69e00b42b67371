"""
Custom permission classes for role based access control.
"""
from rest_framework.permissions import BasePermission

from backoffice.models import User


class IsStaffRole(BasePermission):
    """Allow access only to clinic staff (clinicians and assistants)."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and getattr(user, "role", None) in User.STAFF_ROLES)
