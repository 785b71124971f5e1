from unittest import mock

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from clinic_core.reminders.ledger import DispatchLedger
from clinic_core.reminders.models import ReminderDispatch, ReminderLog, ReminderRule
from clinic_core.reminders.services import ReminderLogService
from clinic_core.tests.helpers import RecordingChannel, add_rule, add_treatment, scoped

pytestmark = pytest.mark.django_db


def log_attempt(patient, *, ok=True, category="BOTOX"):
    return ReminderLogService.record_attempt(
        clinic_id=patient.clinic_id,
        patient_id=patient.id,
        category=category,
        channel="console",
        ok=ok,
        message="hello",
        error="" if ok else "rejected",
    )


def test_requires_authentication(clinic):
    resp = APIClient().get("/api/v1/reminders/pending/", **scoped(clinic))

    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "not_authenticated"


def test_requires_clinic_header(api_client):
    resp = api_client.get("/api/v1/reminders/pending/")

    assert resp.status_code == 400
    assert "X-Clinic-Id" in resp.json()["error"]["message"]


def test_invalid_clinic_header_is_rejected_by_middleware(api_client):
    resp = api_client.get("/api/v1/reminders/pending/", HTTP_X_CLINIC_ID="nope")

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"


def test_non_member_is_forbidden(api_client, other_clinic):
    resp = api_client.get("/api/v1/reminders/pending/", **scoped(other_clinic))

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "permission_denied"


def test_superuser_passes_membership_check(other_clinic):
    admin = get_user_model().objects.create_superuser(username="root", password="x", email="root@example.com")
    c = APIClient()
    c.force_authenticate(user=admin)

    assert c.get("/api/v1/reminders/pending/", **scoped(other_clinic)).status_code == 200


def test_pending_lists_due_patients(api_client, clinic, patient):
    add_rule(clinic, "DOLGU", 180)
    add_treatment(patient, "DOLGU", days_ago=200, now=timezone.now())

    resp = api_client.get("/api/v1/reminders/pending/", **scoped(clinic))

    assert resp.status_code == 200
    assert [(r["name"], r["category"], r["daysSince"]) for r in resp.json()] == [("Ayse Yilmaz", "DOLGU", 200)]


def test_history_is_paginated_and_filterable(api_client, clinic, patient):
    log_attempt(patient, ok=True)
    log_attempt(patient, ok=False)
    log_attempt(patient, ok=True, category="DOLGU")

    resp = api_client.get("/api/v1/reminders/history/", **scoped(clinic))
    assert resp.status_code == 200
    assert resp.json()["count"] == 3
    assert resp.json()["results"][0]["patient_name"] == "Ayse Yilmaz"

    failed = api_client.get("/api/v1/reminders/history/", {"status": "FAILED"}, **scoped(clinic)).json()
    assert failed["count"] == 1
    assert failed["results"][0]["error"] == "rejected"

    dolgu = api_client.get("/api/v1/reminders/history/", {"category": "DOLGU"}, **scoped(clinic)).json()
    assert dolgu["count"] == 1


def test_history_rejects_unknown_status(api_client, clinic):
    resp = api_client.get("/api/v1/reminders/history/", {"status": "LOST"}, **scoped(clinic))

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"


def test_history_is_clinic_scoped(api_client, clinic, other_clinic, user):
    from clinic_core.clinics.services import ClinicService
    from clinic_core.patients.models import Patient

    ClinicService.add_member(clinic_id=other_clinic.id, user_id=user.id)
    stranger = Patient.objects.create(clinic_id=other_clinic.id, full_name="Elsewhere", phone="+1")
    log_attempt(stranger)

    assert api_client.get("/api/v1/reminders/history/", **scoped(clinic)).json()["count"] == 0
    assert api_client.get("/api/v1/reminders/history/", **scoped(other_clinic)).json()["count"] == 1


def test_stats(api_client, clinic, patient):
    add_rule(clinic, "BOTOX", 30)
    add_treatment(patient, "BOTOX", days_ago=40, now=timezone.now())
    log_attempt(patient, ok=True)
    log_attempt(patient, ok=False)

    resp = api_client.get("/api/v1/reminders/stats/", **scoped(clinic))

    assert resp.status_code == 200
    assert resp.json() == {"pendingCount": 1, "sentToday": 1, "sentMonth": 1}


def test_rule_create_list_and_toggle(api_client, clinic):
    resp = api_client.post(
        "/api/v1/reminders/rules/",
        {"category": "BOTOX", "interval_days": 90, "message_template": "Sayin {hasta}"},
        format="json",
        **scoped(clinic),
    )
    assert resp.status_code == 201
    rule_id = resp.json()["id"]
    assert resp.json()["is_active"] is True

    listed = api_client.get("/api/v1/reminders/rules/", **scoped(clinic)).json()
    assert [r["id"] for r in listed] == [rule_id]

    toggled = api_client.post(f"/api/v1/reminders/rules/{rule_id}/toggle/", **scoped(clinic))
    assert toggled.status_code == 200
    assert toggled.json()["is_active"] is False
    assert ReminderRule.objects.get(id=rule_id).is_active is False


def test_rule_create_uses_default_template(api_client, clinic, settings):
    settings.REMINDERS = {**settings.REMINDERS, "DEFAULT_TEMPLATE": "Sayin {hasta}"}

    resp = api_client.post(
        "/api/v1/reminders/rules/",
        {"category": "GENEL", "interval_days": 0},
        format="json",
        **scoped(clinic),
    )

    assert resp.status_code == 201
    assert resp.json()["message_template"] == "Sayin {hasta}"
    assert resp.json()["interval_days"] == 0


def test_rule_create_validation(api_client, clinic):
    resp = api_client.post(
        "/api/v1/reminders/rules/",
        {"category": "LAZER", "interval_days": -1},
        format="json",
        **scoped(clinic),
    )

    assert resp.status_code == 400
    details = resp.json()["error"]["details"]
    assert "category" in details
    assert "interval_days" in details


def test_toggle_unknown_or_foreign_rule_is_404(api_client, clinic, other_clinic):
    foreign = add_rule(other_clinic, "BOTOX", 10)

    assert api_client.post(f"/api/v1/reminders/rules/{foreign.id}/toggle/", **scoped(clinic)).status_code == 404
    assert api_client.post("/api/v1/reminders/rules/not-a-uuid/toggle/", **scoped(clinic)).status_code == 404

def test_rule_partial_update(api_client, clinic):
    rule = add_rule(clinic, "BOTOX", 90)

    resp = api_client.patch(
        f"/api/v1/reminders/rules/{rule.id}/",
        {"interval_days": 120, "message_template": "  Sayin {hasta}, {islem} zamani  "},
        format="json",
        **scoped(clinic),
    )

    assert resp.status_code == 200
    assert resp.json()["interval_days"] == 120
    assert resp.json()["message_template"] == "Sayin {hasta}, {islem} zamani"
    assert resp.json()["category"] == "BOTOX"
    rule.refresh_from_db()
    assert (rule.interval_days, rule.is_active) == (120, True)


def test_rule_update_validation(api_client, clinic):
    rule = add_rule(clinic, "BOTOX", 90)

    negative = api_client.patch(f"/api/v1/reminders/rules/{rule.id}/", {"interval_days": -5}, format="json", **scoped(clinic))
    blank = api_client.patch(f"/api/v1/reminders/rules/{rule.id}/", {"message_template": "   "}, format="json", **scoped(clinic))

    assert negative.status_code == 400
    assert "interval_days" in negative.json()["error"]["details"]
    assert blank.status_code == 400
    assert ReminderRule.objects.get(id=rule.id).interval_days == 90


def test_shortened_interval_takes_effect_on_next_evaluation(api_client, clinic, patient):
    rule = add_rule(clinic, "BOTOX", 90)
    add_treatment(patient, "BOTOX", days_ago=40, now=timezone.now())
    assert api_client.get("/api/v1/reminders/pending/", **scoped(clinic)).json() == []

    api_client.patch(f"/api/v1/reminders/rules/{rule.id}/", {"interval_days": 30}, format="json", **scoped(clinic))

    pending = api_client.get("/api/v1/reminders/pending/", **scoped(clinic)).json()
    assert [(p["category"], p["intervalDays"]) for p in pending] == [("BOTOX", 30)]


def test_rule_delete_keeps_history_and_ledger(api_client, clinic, patient):
    rule = add_rule(clinic, "BOTOX", 90)
    ReminderLogService.record_attempt(
        clinic_id=clinic.id, patient_id=patient.id, category="BOTOX", channel="console", ok=True, rule_id=rule.id
    )
    DispatchLedger.record_sent(clinic_id=clinic.id, patient_id=patient.id, category="BOTOX", sent_at=timezone.now())

    resp = api_client.delete(f"/api/v1/reminders/rules/{rule.id}/", **scoped(clinic))

    assert resp.status_code == 204
    assert not ReminderRule.objects.filter(id=rule.id).exists()
    assert ReminderLog.objects.get().rule_id is None
    assert ReminderDispatch.objects.count() == 1


def test_rule_update_and_delete_are_clinic_scoped(api_client, clinic, other_clinic):
    foreign = add_rule(other_clinic, "BOTOX", 10)

    patched = api_client.patch(f"/api/v1/reminders/rules/{foreign.id}/", {"interval_days": 1}, format="json", **scoped(clinic))
    deleted = api_client.delete(f"/api/v1/reminders/rules/{foreign.id}/", **scoped(clinic))

    assert patched.status_code == 404
    assert deleted.status_code == 404
    assert ReminderRule.objects.get(id=foreign.id).interval_days == 10


def test_manual_send_goes_through_the_ledger(api_client, clinic, patient):
    add_rule(clinic, "BOTOX", 90)
    add_treatment(patient, "BOTOX", days_ago=95, now=timezone.now())
    channel = RecordingChannel()

    with mock.patch("clinic_core.reminders.coordinator.get_channel", return_value=channel):
        resp = api_client.post(
            "/api/v1/reminders/send/",
            {"patient_id": str(patient.id), "category": "BOTOX"},
            format="json",
            **scoped(clinic),
        )
        again = api_client.post(
            "/api/v1/reminders/send/",
            {"patient_id": str(patient.id), "category": "BOTOX"},
            format="json",
            **scoped(clinic),
        )

    assert resp.status_code == 200
    assert resp.json()["status"] == "sent"
    assert resp.json()["daysSince"] == 95
    assert len(channel.sent) == 1
    assert ReminderDispatch.objects.filter(patient=patient, category="BOTOX").count() == 1
    assert ReminderLog.objects.count() == 1

    # already reminded for this treatment
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "not_due"
    assert api_client.get("/api/v1/reminders/pending/", **scoped(clinic)).json() == []


def test_manual_send_reports_channel_failure(api_client, clinic, patient):
    add_rule(clinic, "BOTOX", 90)
    add_treatment(patient, "BOTOX", days_ago=95, now=timezone.now())
    channel = RecordingChannel(ok=False, error="Twilio error: 63016")

    with mock.patch("clinic_core.reminders.coordinator.get_channel", return_value=channel):
        resp = api_client.post(
            "/api/v1/reminders/send/",
            {"patient_id": str(patient.id), "category": "BOTOX"},
            format="json",
            **scoped(clinic),
        )

    assert resp.status_code == 200
    assert resp.json()["status"] == "failed"
    assert resp.json()["error"] == "Twilio error: 63016"
    assert ReminderDispatch.objects.count() == 0


def test_manual_send_for_patient_not_due_is_409(api_client, clinic, patient):
    add_rule(clinic, "BOTOX", 90)
    add_treatment(patient, "BOTOX", days_ago=10, now=timezone.now())

    resp = api_client.post(
        "/api/v1/reminders/send/",
        {"patient_id": str(patient.id), "category": "BOTOX"},
        format="json",
        **scoped(clinic),
    )

    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "not_due"



def test_jwt_token_flow(clinic, user):
    token = APIClient().post(
        "/api/v1/auth/token/",
        {"username": "testuser", "password": "testpass"},
        format="json",
    )
    assert token.status_code == 200

    c = APIClient()
    c.credentials(HTTP_AUTHORIZATION=f"Bearer {token.json()['access']}")
    assert c.get("/api/v1/reminders/stats/", **scoped(clinic)).status_code == 200
