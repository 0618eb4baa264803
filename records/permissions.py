"""
Role based permission classes for the portal and the staff console.
"""
from rest_framework.permissions import BasePermission


class IsStaffRole(BasePermission):
    """Allow access only to staff users (or superusers)."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and getattr(user, "is_portal_staff", False))


class IsPatientRole(BasePermission):
    """Allow access only to users with the patient role and a patient record."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        return bool(
            user and user.is_authenticated
            and getattr(user, "role", None) == "patient"
            and hasattr(user, "patient")
        )
