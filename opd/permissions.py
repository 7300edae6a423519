"""
Role based permission classes for front-desk staff.
"""
from rest_framework.permissions import BasePermission

ADMIN_ROLES = {"admin", "super"}
STAFF_ROLES = {"reception", "doctor", "admin", "super"}
CLINICAL_ROLES = {"doctor", "admin", "super"}


def _role(request):
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return None
    return getattr(user, "role", None)


class IsStaffRole(BasePermission):
    """Any authenticated front-desk, clinical or admin account."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in STAFF_ROLES


class IsDoctorRole(BasePermission):
    """Doctors (and admins acting for them)."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in CLINICAL_ROLES


class IsAdminRole(BasePermission):
    """Allow access only to users with an administrative role."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in ADMIN_ROLES
