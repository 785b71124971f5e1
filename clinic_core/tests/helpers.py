# clinic_core/tests/helpers.py
from datetime import datetime, timedelta, timezone as dt_timezone

from clinic_core.reminders.channels import SendResult

# Fixed tick instant so day arithmetic is deterministic.
NOW = datetime(2026, 5, 1, 10, 0, tzinfo=dt_timezone.utc)


def scoped(clinic):
    """
    Standard scope header used by the clinic scope resolver.
    DRF test client requires HTTP_ prefix.
    """
    return {"HTTP_X_CLINIC_ID": str(clinic.id)}


def add_treatment(patient, category, *, days_ago, now=NOW, amount_minor=0):
    from clinic_core.treatments.services import TreatmentService

    return TreatmentService.record_treatment(
        clinic_id=patient.clinic_id,
        patient_id=patient.id,
        category=category,
        performed_on=(now - timedelta(days=days_ago)).date(),
        amount_minor=amount_minor,
    )


def add_rule(clinic, category, interval_days, *, template="Merhaba {hasta}, {islem} kontrolu ({gun} gun)", is_active=True):
    from clinic_core.reminders.services import ReminderRuleService

    return ReminderRuleService.create_rule(
        clinic_id=clinic.id,
        category=category,
        interval_days=interval_days,
        message_template=template,
        is_active=is_active,
    )


class RecordingChannel:
    """In-memory channel: records every send and answers with a fixed outcome."""

    name = "test"

    def __init__(self, *, ok=True, error="", fail_for=()):
        self.ok = ok
        self.error = error
        self.fail_for = set(fail_for)
        self.sent = []

    def destination_for(self, patient):
        return (patient.phone or "").strip()

    def send(self, destination, message, *, timeout=None):
        self.sent.append((destination, message))
        if not self.ok or destination in self.fail_for:
            return SendResult(ok=False, error=self.error or "provider rejected")
        return SendResult(ok=True, provider_message_id=f"msg-{len(self.sent)}")
