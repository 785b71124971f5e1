# clinic_core/common/scope.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.permissions import BasePermission

# Preferred header name (what we standardize on)
HDR_CLINIC = "X-Clinic-Id"
META_CLINIC = "HTTP_X_CLINIC_ID"

MISSING_SCOPE_MSG = f"Missing scope header. Provide {HDR_CLINIC}."
INVALID_SCOPE_MSG = f"Invalid scope header. Provide a valid UUID for {HDR_CLINIC}."


def parse_uuid(value) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def resolve_clinic_id(request) -> Optional[UUID]:
    """
    Prefer request.clinic_id if the middleware set it.
    Otherwise fall back to the header so views work when middleware is bypassed
    (APIRequestFactory in tests).
    """
    clinic_id = getattr(request, "clinic_id", None)
    if clinic_id:
        return clinic_id

    raw = request.META.get(META_CLINIC)
    if not raw:
        return None

    clinic_id = parse_uuid(raw)
    if clinic_id is None:
        raise ValidationError({"detail": INVALID_SCOPE_MSG})
    return clinic_id


def require_clinic_id(request) -> UUID:
    clinic_id = resolve_clinic_id(request)
    if clinic_id is None:
        raise ValidationError({"detail": MISSING_SCOPE_MSG})
    return clinic_id


class ClinicMemberPermission(BasePermission):
    """
    Authenticated staff user with an active membership in the X-Clinic-Id clinic.
    Superusers pass for any existing clinic.
    """

    message = "You do not have access to the selected clinic."

    def has_permission(self, request, view) -> bool:
        user = request.user
        if not user or not getattr(user, "is_authenticated", False):
            return False

        clinic_id = require_clinic_id(request)

        from clinic_core.clinics.selectors import is_user_member_of_clinic

        if getattr(user, "is_superuser", False) or is_user_member_of_clinic(user_id=user.id, clinic_id=clinic_id):
            request.clinic_id = clinic_id
            return True
        raise PermissionDenied(self.message)
