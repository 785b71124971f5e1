# clinic_core/reminders/models.py
from django.db import models

from clinic_core.common.models import ClinicScopedModel
from clinic_core.patients.models import Patient
from clinic_core.treatments.models import TreatmentCategory


class ReminderRule(ClinicScopedModel):
    """
    Clinic policy: remind patients `interval_days` after their last treatment in `category`.

    message_template placeholders: {patient}/{hasta}, {category}/{islem}, {days}/{gun}.
    Several active rules for one category are evaluated independently.
    """
    category = models.CharField(max_length=32, choices=TreatmentCategory.choices, db_index=True)
    interval_days = models.PositiveIntegerField()
    is_active = models.BooleanField(default=True)
    message_template = models.TextField()

    class Meta:
        db_table = "reminders_rule"
        indexes = [
            models.Index(fields=["clinic_id", "is_active", "category"]),
        ]

    def __str__(self) -> str:
        return f"{self.category} / {self.interval_days}d"


class ReminderDispatch(ClinicScopedModel):
    """
    Dispatch ledger: last *successful* reminder per (clinic, patient, category).

    - absent row => never notified for this category
    - last_sent_at only moves forward (see DispatchLedger.record_sent)
    - suppresses reminders until the patient has a newer treatment in the category
    """
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name="reminder_dispatches")
    category = models.CharField(max_length=32, choices=TreatmentCategory.choices)
    last_sent_at = models.DateTimeField()

    class Meta:
        db_table = "reminders_dispatch"
        constraints = [
            models.UniqueConstraint(
                fields=["clinic_id", "patient", "category"],
                name="uq_reminder_dispatch_scope_patient_category",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.patient_id} {self.category} @ {self.last_sent_at.isoformat()}"


class ReminderLogStatus(models.TextChoices):
    SENT = "SENT", "Sent"
    FAILED = "FAILED", "Failed"


class ReminderLog(ClinicScopedModel):
    """
    Append-only history of send attempts (one row per attempt).
    Not used for suppression; that is the ledger's job.
    """
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name="reminder_logs")
    rule = models.ForeignKey(ReminderRule, on_delete=models.SET_NULL, null=True, blank=True, related_name="logs")

    category = models.CharField(max_length=32, choices=TreatmentCategory.choices)
    days_since = models.PositiveIntegerField(default=0)

    channel = models.CharField(max_length=32)
    status = models.CharField(max_length=16, choices=ReminderLogStatus.choices, db_index=True)
    message = models.TextField(blank=True)
    provider_message_id = models.CharField(max_length=128, blank=True)
    error = models.TextField(blank=True)

    class Meta:
        db_table = "reminders_log"
        indexes = [
            models.Index(fields=["clinic_id", "status", "created_at"]),
            models.Index(fields=["clinic_id", "patient", "category"]),
        ]
