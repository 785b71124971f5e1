from __future__ import annotations

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

from clinic_core.common.api.exceptions import build_error_envelope
from clinic_core.common.scope import INVALID_SCOPE_MSG, META_CLINIC, parse_uuid


class ClinicScopeMiddleware(MiddlewareMixin):
    """
    Parses the clinic scope header for API requests.

    Behavior:
      - Only /api/ paths are inspected.
      - Docs/schema/admin endpoints: public.
      - Cron and token endpoints: scope is ignored (the cron tick spans all clinics).
      - Header absent -> request.clinic_id stays None (views that need it answer 400).
      - Header present but not a UUID -> 400 error envelope.
      - On success -> attaches request.clinic_id

    Membership is checked by ClinicMemberPermission once DRF has authenticated the user
    (JWT authentication happens inside the view, after middleware).
    """

    ENFORCED_PREFIXES = ("/api/",)

    PUBLIC_PATH_PREFIXES = (
        "/admin/",
        "/api/docs/",
        "/api/schema/",
    )

    NO_SCOPE_PATH_FRAGMENTS = (
        "/cron/",
        "/auth/token/",
    )

    def process_request(self, request):
        request.clinic_id = None

        path = getattr(request, "path", "") or ""

        if any(path.startswith(p) for p in self.PUBLIC_PATH_PREFIXES):
            return None

        if not any(path.startswith(p) for p in self.ENFORCED_PREFIXES):
            return None

        if any(f in path for f in self.NO_SCOPE_PATH_FRAGMENTS):
            return None

        raw = request.META.get(META_CLINIC)
        if not raw:
            return None

        clinic_id = parse_uuid(raw)
        if clinic_id is None:
            return JsonResponse(
                build_error_envelope(
                    request=request,
                    code="validation_error",
                    message=INVALID_SCOPE_MSG,
                    details=None,
                ),
                status=400,
            )

        request.clinic_id = clinic_id
        return None
