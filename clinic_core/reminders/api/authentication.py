# clinic_core/reminders/api/authentication.py
from __future__ import annotations

import hmac

from django.conf import settings
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

CRON_SECRET_HEADER = "HTTP_X_CRON_SECRET"


class CronCaller:
    """Request.user for calls authenticated by the cron secret."""

    is_authenticated = True
    is_anonymous = False
    is_superuser = False
    id = None
    pk = None

    def __str__(self) -> str:
        return "cron"


def _provided_secret(request) -> str:
    auth = request.META.get("HTTP_AUTHORIZATION", "") or ""
    scheme, _, value = auth.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return (request.META.get(CRON_SECRET_HEADER, "") or "").strip()


class CronSecretAuthentication(BaseAuthentication):
    """
    Shared-secret auth for the scheduler.

    Accepts `Authorization: Bearer <secret>` or `X-Cron-Secret: <secret>`.
    No secret configured -> every call is rejected.
    """

    def authenticate(self, request):
        provided = _provided_secret(request)
        if not provided:
            return None

        expected = getattr(settings, "REMINDERS_CRON_SECRET", "") or ""
        if not expected or not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
            raise AuthenticationFailed("Invalid cron secret.")

        return (CronCaller(), None)

    def authenticate_header(self, request) -> str:
        return 'Bearer realm="cron"'
