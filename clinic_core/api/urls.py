# clinic_core/api/urls.py
from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from clinic_core.reminders.api.views import ReminderCronView, ReminderRuleViewSet, ReminderViewSet

router = DefaultRouter()

# more specific prefix first
router.register(r"reminders/rules", ReminderRuleViewSet, basename="reminder-rules")
router.register(r"reminders", ReminderViewSet, basename="reminders")

urlpatterns = [
    # Staff auth (JWT)
    path("auth/token/", TokenObtainPairView.as_view(), name="token-obtain"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),

    # Scheduler trigger (shared secret, no clinic scope)
    path("cron/reminders/", ReminderCronView.as_view(), name="cron-reminders"),

    *router.urls,
]
