# ehr_core/common/permissions.py

from __future__ import annotations

from typing import Set

from rest_framework.permissions import BasePermission, SAFE_METHODS

# Group/role names (Django auth Group names)
ROLE_ADMIN = "ADMIN"
ROLE_DOCTOR = "DOCTOR"
ROLE_NURSE = "NURSE"
ROLE_RECEPTION = "RECEPTION"
ROLE_PRIVACY_OFFICER = "PRIVACY_OFFICER"
ROLE_SECURITY_OFFICER = "SECURITY_OFFICER"
ROLE_READONLY = "READONLY"

# Most privileged first. Used to pick the single role captured on audit records.
ROLE_PRECEDENCE = (
    ROLE_ADMIN,
    ROLE_PRIVACY_OFFICER,
    ROLE_SECURITY_OFFICER,
    ROLE_DOCTOR,
    ROLE_NURSE,
    ROLE_RECEPTION,
    ROLE_READONLY,
)

CLINICAL_READ_ROLES = {ROLE_ADMIN, ROLE_DOCTOR, ROLE_NURSE, ROLE_RECEPTION, ROLE_READONLY}
AUDIT_REVIEW_ROLES = {ROLE_ADMIN, ROLE_PRIVACY_OFFICER, ROLE_SECURITY_OFFICER}


def user_roles(user) -> Set[str]:
    """
    Resolve roles from:
    1) Django groups: user.groups
    2) Optional user.role / user.roles attribute (string, or iterable of strings)

    Default behavior:
    - If authenticated user has no roles/groups, treat them as READONLY.
    """
    roles: Set[str] = set()

    if not user or not getattr(user, "is_authenticated", False):
        return roles

    # Superuser treated as admin
    if getattr(user, "is_superuser", False):
        roles.add(ROLE_ADMIN)
        return roles

    if hasattr(user, "groups"):
        roles.update(user.groups.values_list("name", flat=True))

    if hasattr(user, "role") and user.role:
        roles.add(str(user.role))

    if hasattr(user, "roles") and user.roles:
        if isinstance(user.roles, str):
            roles.add(user.roles)
        else:
            try:
                roles.update(str(r) for r in user.roles)
            except TypeError:
                roles.add(str(user.roles))

    if not roles:
        roles.add(ROLE_READONLY)

    return roles


def primary_role(user) -> str | None:
    """
    Single role string for the point-in-time actor snapshot.
    Unknown custom roles lose to known ones; among unknown ones the name order decides.
    """
    roles = user_roles(user)
    if not roles:
        return None
    for role in ROLE_PRECEDENCE:
        if role in roles:
            return role
    return sorted(roles)[0]


class BaseRolePermission(BasePermission):
    """
    Base permission class for role-based access control.

    - Requires authentication.
    - ADMIN bypass.
    - Uses allowed_roles_per_action for strict RBAC.
    - Unknown SAFE action falls back to list/retrieve.
    """
    message = "You do not have permission to perform this action."

    allowed_roles_per_action = {
        "list": CLINICAL_READ_ROLES,
        "retrieve": CLINICAL_READ_ROLES,
        "create": {ROLE_ADMIN},
        "update": {ROLE_ADMIN},
        "partial_update": {ROLE_ADMIN},
        "destroy": {ROLE_ADMIN},
    }

    def _infer_action(self, request, view) -> str | None:
        action = getattr(view, "action", None)
        if action:
            return action

        kwargs = getattr(view, "kwargs", {}) or {}
        is_detail = "pk" in kwargs or "id" in kwargs

        method = request.method.upper()
        if method in ("GET", "HEAD", "OPTIONS"):
            return "retrieve" if is_detail else "list"
        if method == "POST":
            return "create"
        if method == "PUT":
            return "update"
        if method == "PATCH":
            return "partial_update"
        if method == "DELETE":
            return "destroy"
        return None

    def has_permission(self, request, view) -> bool:
        user = request.user
        if not user or not getattr(user, "is_authenticated", False):
            return False

        roles = user_roles(user)

        if ROLE_ADMIN in roles:
            return True

        action = self._infer_action(request, view)
        allowed = self.allowed_roles_per_action.get(action)

        if allowed is None and request.method in SAFE_METHODS:
            kwargs = getattr(view, "kwargs", {}) or {}
            is_detail = "pk" in kwargs or "id" in kwargs
            read_action = "retrieve" if is_detail else "list"
            allowed = self.allowed_roles_per_action.get(read_action)

        if allowed is not None:
            return bool(roles & allowed)

        # Unknown action => deny by default
        return False

    def has_object_permission(self, request, view, obj) -> bool:
        return self.has_permission(request, view)


class PatientPermission(BaseRolePermission):
    """Permissions for Patient management"""
    allowed_roles_per_action = {
        "list": CLINICAL_READ_ROLES,
        "retrieve": CLINICAL_READ_ROLES,
        "create": {ROLE_ADMIN, ROLE_DOCTOR, ROLE_NURSE, ROLE_RECEPTION},
        "update": {ROLE_ADMIN, ROLE_DOCTOR, ROLE_NURSE},
        "partial_update": {ROLE_ADMIN, ROLE_DOCTOR, ROLE_NURSE},
        "destroy": {ROLE_ADMIN},
    }


class EncounterPermission(BaseRolePermission):
    """Permissions for Encounter management"""
    allowed_roles_per_action = {
        "list": CLINICAL_READ_ROLES,
        "retrieve": CLINICAL_READ_ROLES,
        "create": {ROLE_ADMIN, ROLE_DOCTOR, ROLE_NURSE, ROLE_RECEPTION},
        "update": {ROLE_ADMIN, ROLE_DOCTOR, ROLE_NURSE},
        "partial_update": {ROLE_ADMIN, ROLE_DOCTOR, ROLE_NURSE},
    }


class AuditReviewPermission(BaseRolePermission):
    """Compliance review surface. Read-only; clinical roles have no access."""
    allowed_roles_per_action = {
        "list": AUDIT_REVIEW_ROLES,
        "retrieve": AUDIT_REVIEW_ROLES,
        "summary": AUDIT_REVIEW_ROLES,
        "export": AUDIT_REVIEW_ROLES,
    }
