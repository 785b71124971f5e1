# clinic_core/reminders/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from clinic_core.reminders.models import ReminderLog, ReminderRule
from clinic_core.treatments.models import TreatmentCategory


class DuePairSerializer(serializers.Serializer):
    """Read-only view of a pending reminder (evaluator DuePair)."""

    patientId = serializers.UUIDField(source="patient_id")
    name = serializers.CharField(source="patient_name")
    category = serializers.CharField()
    daysSince = serializers.IntegerField(source="days_since")
    intervalDays = serializers.IntegerField(source="rule.interval_days")
    lastTreatmentDate = serializers.DateField(source="last_treatment_on")


class ReminderRuleSerializer(serializers.ModelSerializer):
    class Meta:
        model = ReminderRule
        fields = [
            "id",
            "clinic_id",
            "category",
            "interval_days",
            "is_active",
            "message_template",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ReminderRuleCreateSerializer(serializers.Serializer):
    category = serializers.ChoiceField(choices=TreatmentCategory.choices)
    interval_days = serializers.IntegerField(min_value=0)
    message_template = serializers.CharField(required=False, allow_blank=True, default="")
    is_active = serializers.BooleanField(required=False, default=True)


class ReminderRuleUpdateSerializer(serializers.Serializer):
    interval_days = serializers.IntegerField(min_value=0, required=False)
    message_template = serializers.CharField(required=False)
    is_active = serializers.BooleanField(required=False)


class ManualReminderSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    category = serializers.ChoiceField(choices=TreatmentCategory.choices)


class ReminderLogSerializer(serializers.ModelSerializer):
    patient_name = serializers.CharField(source="patient.full_name", read_only=True)

    class Meta:
        model = ReminderLog
        fields = [
            "id",
            "patient_id",
            "patient_name",
            "rule_id",
            "category",
            "days_since",
            "channel",
            "status",
            "message",
            "provider_message_id",
            "error",
            "created_at",
        ]
        read_only_fields = fields
