from datetime import timedelta

import pytest

from clinic_core.patients.models import Patient
from clinic_core.reminders.coordinator import ReminderDispatchCoordinator
from clinic_core.reminders.ledger import DispatchLedger
from clinic_core.reminders.models import ReminderDispatch, ReminderLog, ReminderLogStatus
from clinic_core.reminders.services import ReminderRuleService
from clinic_core.tests.helpers import NOW, RecordingChannel, add_rule, add_treatment

pytestmark = pytest.mark.django_db


def coordinator(channel):
    return ReminderDispatchCoordinator(channel=channel, max_workers=1, send_timeout=5)


def test_botox_95_days_ago_is_due(clinic, patient, channel):
    add_rule(clinic, "BOTOX", 90)
    add_treatment(patient, "BOTOX", days_ago=95)

    pending = coordinator(channel).get_pending_summary(clinic_id=clinic.id, now=NOW)

    assert len(pending) == 1
    assert pending[0].patient_id == patient.id
    assert pending[0].category == "BOTOX"
    assert pending[0].days_since == 95
    assert pending[0].patient_name == "Ayse Yilmaz"


def test_no_rules_or_no_treatments_is_empty_not_an_error(clinic, patient, channel):
    c = coordinator(channel)
    add_treatment(patient, "BOTOX", days_ago=400)
    assert c.get_pending_summary(clinic_id=clinic.id, now=NOW) == []

    add_rule(clinic, "DOLGU", 10)
    assert c.get_pending_summary(clinic_id=clinic.id, now=NOW) == []

    result = c.process_clinic(clinic_id=clinic.id, now=NOW)
    assert (result.sent, result.failed, result.deferred) == (0, 0, 0)
    assert channel.sent == []


def test_summary_is_idempotent_and_read_only(clinic, patient, channel):
    add_rule(clinic, "BOTOX", 90)
    add_treatment(patient, "BOTOX", days_ago=95)
    c = coordinator(channel)

    first = c.get_pending_summary(clinic_id=clinic.id, now=NOW)
    second = c.get_pending_summary(clinic_id=clinic.id, now=NOW)

    assert first == second
    assert ReminderDispatch.objects.count() == 0
    assert ReminderLog.objects.count() == 0
    assert channel.sent == []


def test_successful_dispatch_records_ledger_and_removes_pair(clinic, patient, channel):
    add_rule(clinic, "BOTOX", 90)
    add_treatment(patient, "BOTOX", days_ago=95)
    c = coordinator(channel)

    result = c.process_clinic(clinic_id=clinic.id, now=NOW)

    assert (result.sent, result.failed, result.deferred) == (1, 0, 0)
    assert result.clinic_name == "Test Clinic"
    assert channel.sent == [("+905551112233", "Merhaba Ayse Yilmaz, Botox kontrolu (95 gun)")]
    assert DispatchLedger.get_last_sent(clinic_id=clinic.id, patient_id=patient.id, category="BOTOX") == NOW

    # Evaluated again at the same instant: nothing left to do
    assert c.get_pending_summary(clinic_id=clinic.id, now=NOW) == []
    assert c.get_pending_summary(clinic_id=clinic.id, now=NOW + timedelta(days=30)) == []

    log = ReminderLog.objects.get()
    assert log.status == ReminderLogStatus.SENT
    assert log.provider_message_id == "msg-1"
    assert log.days_since == 95


def test_failed_dispatch_keeps_pair_due_and_ledger_untouched(clinic, patient):
    add_rule(clinic, "BOTOX", 90)
    add_treatment(patient, "BOTOX", days_ago=95)
    channel = RecordingChannel(ok=False, error="Twilio error: 21211")
    c = coordinator(channel)

    result = c.process_clinic(clinic_id=clinic.id, now=NOW)

    assert (result.sent, result.failed) == (0, 1)
    assert result.details[0].error == "Twilio error: 21211"
    assert ReminderDispatch.objects.count() == 0
    assert len(c.get_pending_summary(clinic_id=clinic.id, now=NOW)) == 1

    log = ReminderLog.objects.get()
    assert log.status == ReminderLogStatus.FAILED
    assert log.error == "Twilio error: 21211"


def test_new_treatment_after_old_send_is_not_due_yet(clinic, patient, channel):
    add_rule(clinic, "BOTOX", 90)
    add_treatment(patient, "BOTOX", days_ago=200)
    DispatchLedger.record_sent(
        clinic_id=clinic.id,
        patient_id=patient.id,
        category="BOTOX",
        sent_at=NOW - timedelta(days=120),
    )
    add_treatment(patient, "BOTOX", days_ago=2)

    c = coordinator(channel)
    assert c.get_pending_summary(clinic_id=clinic.id, now=NOW) == []

    # once the interval passes again the patient is due despite the old ledger entry
    later = c.get_pending_summary(clinic_id=clinic.id, now=NOW + timedelta(days=88))
    assert [p.days_since for p in later] == [90]


def test_treatment_later_on_the_send_day_restarts_the_clock(clinic, patient, channel):
    add_rule(clinic, "BOTOX", 90)
    add_treatment(patient, "BOTOX", days_ago=95)
    c = coordinator(channel)

    assert c.process_clinic(clinic_id=clinic.id, now=NOW).sent == 1

    # patient comes back the same afternoon
    add_treatment(patient, "BOTOX", days_ago=0)

    assert c.get_pending_summary(clinic_id=clinic.id, now=NOW + timedelta(days=89)) == []
    later = c.get_pending_summary(clinic_id=clinic.id, now=NOW + timedelta(days=100))
    assert [(p.patient_id, p.days_since) for p in later] == [(patient.id, 100)]


def test_deactivating_rule_removes_pairs_and_keeps_ledger(clinic, patient, channel):
    rule = add_rule(clinic, "BOTOX", 90)
    add_treatment(patient, "BOTOX", days_ago=95)
    other = Patient.objects.create(clinic_id=clinic.id, full_name="Mehmet Kaya", phone="+905550000000")
    add_treatment(other, "BOTOX", days_ago=300)
    DispatchLedger.record_sent(clinic_id=clinic.id, patient_id=other.id, category="BOTOX", sent_at=NOW - timedelta(days=10))

    c = coordinator(channel)
    assert len(c.get_pending_summary(clinic_id=clinic.id, now=NOW)) == 1

    ReminderRuleService.set_active(clinic_id=clinic.id, rule_id=rule.id, is_active=False)

    assert c.get_pending_summary(clinic_id=clinic.id, now=NOW) == []
    assert ReminderDispatch.objects.filter(patient=other).count() == 1


def test_category_without_rule_is_excluded(clinic, patient, channel):
    add_rule(clinic, "BOTOX", 90)
    add_treatment(patient, "DIS_TEDAVI", days_ago=500)

    assert coordinator(channel).get_pending_summary(clinic_id=clinic.id, now=NOW) == []


def test_clinics_are_isolated(clinic, other_clinic, patient, channel):
    add_rule(other_clinic, "BOTOX", 30)
    add_treatment(patient, "BOTOX", days_ago=95)

    c = coordinator(channel)
    assert c.get_pending_summary(clinic_id=clinic.id, now=NOW) == []
    assert c.get_pending_summary(clinic_id=other_clinic.id, now=NOW) == []


def test_overlapping_rules_send_once_per_category(clinic, patient, channel):
    add_rule(clinic, "BOTOX", 30)
    add_rule(clinic, "BOTOX", 90)
    add_treatment(patient, "BOTOX", days_ago=95)
    c = coordinator(channel)

    pending = c.get_pending_summary(clinic_id=clinic.id, now=NOW)
    result = c.process_clinic(clinic_id=clinic.id, now=NOW)

    assert len(pending) == 1
    assert result.sent == 1
    assert len(channel.sent) == 1


def test_summary_matches_what_dispatch_acts_on(clinic, patient, channel):
    add_rule(clinic, "BOTOX", 30)
    add_rule(clinic, "DOLGU", 60)
    add_treatment(patient, "BOTOX", days_ago=40)
    add_treatment(patient, "DOLGU", days_ago=70)
    other = Patient.objects.create(clinic_id=clinic.id, full_name="Burak Demir", phone="+905559998877")
    add_treatment(other, "BOTOX", days_ago=35)
    c = coordinator(channel)

    pending = c.get_pending_summary(clinic_id=clinic.id, now=NOW)
    result = c.process_clinic(clinic_id=clinic.id, now=NOW)

    assert [(p.patient_id, p.category) for p in pending] == [(d.patient_id, d.category) for d in result.details]
    assert [p.days_since for p in pending] == [70, 40, 35]
    assert result.sent == 3
