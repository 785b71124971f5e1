# clinic_core/patients/selectors.py
from __future__ import annotations

from typing import Iterable
from uuid import UUID

from clinic_core.patients.models import Patient


def patients_by_id(*, clinic_id: UUID, patient_ids: Iterable[UUID]) -> dict[UUID, Patient]:
    qs = Patient.objects.filter(clinic_id=clinic_id, id__in=list(patient_ids))
    return {p.id: p for p in qs}
