# clinic_core/treatments/selectors.py
from __future__ import annotations

from datetime import date
from typing import Iterable
from uuid import UUID

from django.db.models import Max, QuerySet

from clinic_core.treatments.models import TreatmentRecord


def treatments_for_patient(*, clinic_id: UUID, patient_id: UUID) -> QuerySet[TreatmentRecord]:
    return TreatmentRecord.objects.filter(clinic_id=clinic_id, patient_id=patient_id).order_by("performed_on", "created_at")


def latest_treatment_dates(*, clinic_id: UUID, categories: Iterable[str]) -> dict[tuple[UUID, str], date]:
    """
    Most recent performed_on per (patient_id, category), limited to the given categories.
    Patients with no treatment in those categories are simply absent.
    """
    categories = sorted(set(categories))
    if not categories:
        return {}

    rows = (
        TreatmentRecord.objects.filter(clinic_id=clinic_id, category__in=categories)
        .values("patient_id", "category")
        .annotate(last_on=Max("performed_on"))
    )
    return {(row["patient_id"], row["category"]): row["last_on"] for row in rows}
