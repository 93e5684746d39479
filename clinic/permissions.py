"""
Role based permission classes.

Every user carries exactly one role (see ``User.ROLE_CHOICES``).  Views
combine ``IsAuthenticated`` with one of the classes below.
"""
from rest_framework.permissions import BasePermission

STAFF_ROLES = {"admin", "doctor", "nurse", "receptionist", "lab_technician"}
CLINICAL_ROLES = {"admin", "doctor", "nurse"}
FRONT_DESK_ROLES = {"admin", "receptionist"}


def has_role(user, *roles: str) -> bool:
    return bool(user and user.is_authenticated and getattr(user, "role", None) in roles)


class RolePermission(BasePermission):
    """Allow access to users whose role is in ``roles``."""
    roles: set[str] = set()

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return has_role(getattr(request, "user", None), *self.roles)


class IsAdminRole(RolePermission):
    """Allow access only to administrators."""
    roles = {"admin"}


class IsPatientRole(RolePermission):
    """Allow access only to users with the patient role."""
    roles = {"patient"}


class IsDoctorRole(RolePermission):
    roles = {"doctor"}


class IsStaffRole(RolePermission):
    """Any hospital employee (everyone except patients)."""
    roles = STAFF_ROLES


class IsClinicalRole(RolePermission):
    """Admin, doctor or nurse."""
    roles = CLINICAL_ROLES


class IsFrontDeskRole(RolePermission):
    """Admin or receptionist."""
    roles = FRONT_DESK_ROLES


class CanManageAppointments(RolePermission):
    roles = {"admin", "doctor", "nurse", "receptionist"}


class CanManageBilling(RolePermission):
    roles = {"admin", "receptionist"}


class CanManageInventory(RolePermission):
    roles = {"admin", "nurse"}
