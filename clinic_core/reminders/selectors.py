# clinic_core/reminders/selectors.py
from __future__ import annotations

from datetime import datetime, timezone as dt_timezone
from uuid import UUID

from django.db.models import QuerySet

from clinic_core.reminders.models import ReminderLog, ReminderLogStatus, ReminderRule


def active_rules_qs(*, clinic_id: UUID) -> QuerySet[ReminderRule]:
    return ReminderRule.objects.filter(clinic_id=clinic_id, is_active=True).order_by("category", "interval_days", "id")


def rules_qs(*, clinic_id: UUID) -> QuerySet[ReminderRule]:
    return ReminderRule.objects.filter(clinic_id=clinic_id).order_by("category", "interval_days", "id")


def reminder_logs_qs(*, clinic_id: UUID) -> QuerySet[ReminderLog]:
    return (
        ReminderLog.objects.filter(clinic_id=clinic_id)
        .select_related("patient")
        .order_by("-created_at", "-id")
    )


def sent_counts(*, clinic_id: UUID, now: datetime) -> dict[str, int]:
    """
    Successful sends since the start of the current UTC day / UTC month.
    """
    utc_now = now.astimezone(dt_timezone.utc)
    day_start = utc_now.replace(hour=0, minute=0, second=0, microsecond=0)
    month_start = day_start.replace(day=1)

    sent = ReminderLog.objects.filter(clinic_id=clinic_id, status=ReminderLogStatus.SENT)
    return {
        "today": sent.filter(created_at__gte=day_start).count(),
        "month": sent.filter(created_at__gte=month_start).count(),
    }
