# clinic_core/reminders/services.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from django.core.exceptions import ValidationError
from django.db import transaction

from clinic_core.reminders.models import ReminderLog, ReminderLogStatus, ReminderRule
from clinic_core.reminders.rendering import default_template
from clinic_core.treatments.models import TreatmentCategory


class ReminderRuleService:
    """
    ReminderRule mutations.

    Notes:
    - interval_days = 0 is valid (remind from the treatment day on).
    - Deactivating a rule never touches the dispatch ledger.
    """

    @staticmethod
    def _validate(*, category: str, interval_days) -> None:
        if category not in TreatmentCategory.values:
            raise ValidationError({"category": f"Invalid category. Allowed: {list(TreatmentCategory.values)}"})
        if isinstance(interval_days, bool) or not isinstance(interval_days, int):
            raise ValidationError({"interval_days": "Must be an integer number of days."})
        if interval_days < 0:
            raise ValidationError({"interval_days": "Must not be negative."})

    @staticmethod
    @transaction.atomic
    def create_rule(
        *,
        clinic_id: UUID,
        category: str,
        interval_days: int,
        message_template: str = "",
        is_active: bool = True,
    ) -> ReminderRule:
        ReminderRuleService._validate(category=category, interval_days=interval_days)

        template = (message_template or "").strip() or default_template()
        if not template:
            raise ValidationError({"message_template": "This field is required."})

        return ReminderRule.objects.create(
            clinic_id=clinic_id,
            category=category,
            interval_days=interval_days,
            message_template=template,
            is_active=is_active,
        )

    @staticmethod
    @transaction.atomic
    def set_active(*, clinic_id: UUID, rule_id: UUID, is_active: bool) -> ReminderRule:
        rule = ReminderRule.objects.select_for_update().get(id=rule_id, clinic_id=clinic_id)

        # idempotent no-op
        if rule.is_active == is_active:
            return rule

        rule.is_active = is_active
        rule.save(update_fields=["is_active", "updated_at"])
        return rule

    @staticmethod
    @transaction.atomic
    def toggle(*, clinic_id: UUID, rule_id: UUID) -> ReminderRule:
        rule = ReminderRule.objects.select_for_update().get(id=rule_id, clinic_id=clinic_id)
        rule.is_active = not rule.is_active
        rule.save(update_fields=["is_active", "updated_at"])
        return rule

    @staticmethod
    @transaction.atomic
    def update_rule(
        *,
        clinic_id: UUID,
        rule_id: UUID,
        interval_days: Optional[int] = None,
        message_template: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> ReminderRule:
        """
        Partial update. The category is fixed for the lifetime of a rule; a
        different category is a different rule.
        """
        rule = ReminderRule.objects.select_for_update().get(id=rule_id, clinic_id=clinic_id)
        changed = []

        if interval_days is not None:
            ReminderRuleService._validate(category=rule.category, interval_days=interval_days)
            rule.interval_days = interval_days
            changed.append("interval_days")

        if message_template is not None:
            template = message_template.strip()
            if not template:
                raise ValidationError({"message_template": "This field may not be blank."})
            rule.message_template = template
            changed.append("message_template")

        if is_active is not None:
            rule.is_active = is_active
            changed.append("is_active")

        if changed:
            rule.save(update_fields=changed + ["updated_at"])
        return rule

    @staticmethod
    @transaction.atomic
    def delete_rule(*, clinic_id: UUID, rule_id: UUID) -> None:
        # history rows keep their category and lose only the rule link; the ledger is untouched
        deleted, _ = ReminderRule.objects.filter(id=rule_id, clinic_id=clinic_id).delete()
        if not deleted:
            raise ReminderRule.DoesNotExist("Rule not found in this clinic.")


class ReminderLogService:
    @staticmethod
    def record_attempt(
        *,
        clinic_id: UUID,
        patient_id: UUID,
        category: str,
        channel: str,
        ok: bool,
        days_since: int = 0,
        rule_id: Optional[UUID] = None,
        message: str = "",
        provider_message_id: Optional[str] = None,
        error: str = "",
    ) -> ReminderLog:
        return ReminderLog.objects.create(
            clinic_id=clinic_id,
            patient_id=patient_id,
            rule_id=rule_id,
            category=category,
            days_since=days_since,
            channel=channel,
            status=ReminderLogStatus.SENT if ok else ReminderLogStatus.FAILED,
            message=message,
            provider_message_id=provider_message_id or "",
            error=error,
        )
