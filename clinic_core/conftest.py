# clinic_core/conftest.py
import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from clinic_core.clinics.models import Clinic, ClinicMembership
from clinic_core.patients.models import Patient
from clinic_core.tests.helpers import NOW, RecordingChannel


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clinic(db):
    return Clinic.objects.create(code="test-clinic", name="Test Clinic")


@pytest.fixture
def other_clinic(db):
    return Clinic.objects.create(code="other-clinic", name="Other Clinic")


@pytest.fixture
def user(db, clinic):
    User = get_user_model()
    user = User.objects.create_user(username="testuser", password="testpass", is_active=True)
    ClinicMembership.objects.create(clinic=clinic, user_id=user.id, is_active=True)
    return user


@pytest.fixture
def api_client(user):
    c = APIClient()
    c.force_authenticate(user=user)
    return c


@pytest.fixture
def patient(db, clinic):
    return Patient.objects.create(
        clinic_id=clinic.id,
        full_name="Ayse Yilmaz",
        phone="+905551112233",
    )


@pytest.fixture
def channel():
    return RecordingChannel()
