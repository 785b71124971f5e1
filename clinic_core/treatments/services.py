# clinic_core/treatments/services.py
from __future__ import annotations

from datetime import date
from uuid import UUID

from django.core.exceptions import ValidationError
from django.db import transaction

from clinic_core.common.events import publish
from clinic_core.treatments.models import PatientVisitPattern, TreatmentCategory, TreatmentRecord
from clinic_core.treatments.selectors import treatments_for_patient


class TreatmentService:
    """
    Treatment write-model operations.

    Notes:
    - amount_minor must be an int (minor units); floats are rejected, not rounded.
    - Publishes "treatment.recorded" after the row exists so read models can refresh.
    """

    @staticmethod
    @transaction.atomic
    def record_treatment(
        *,
        clinic_id: UUID,
        patient_id: UUID,
        category: str,
        performed_on: date,
        amount_minor: int = 0,
        name: str = "",
    ) -> TreatmentRecord:
        if category not in TreatmentCategory.values:
            raise ValidationError({"category": f"Invalid category. Allowed: {list(TreatmentCategory.values)}"})
        if isinstance(amount_minor, bool) or not isinstance(amount_minor, int):
            raise ValidationError({"amount_minor": "Must be an integer amount in minor units."})
        if amount_minor < 0:
            raise ValidationError({"amount_minor": "Must not be negative."})

        record = TreatmentRecord.objects.create(
            clinic_id=clinic_id,
            patient_id=patient_id,
            category=category,
            performed_on=performed_on,
            amount_minor=amount_minor,
            name=(name or "").strip(),
        )

        publish(
            "treatment.recorded",
            {
                "clinic_id": str(clinic_id),
                "patient_id": str(patient_id),
                "treatment_id": str(record.id),
                "category": category,
            },
        )
        return record


class VisitPatternService:
    @staticmethod
    def _average_days(dates: list[date]) -> int | None:
        if len(dates) < 2:
            return None
        intervals = [(b - a).days for a, b in zip(dates, dates[1:])]
        # round half up
        return int(sum(intervals) / len(intervals) + 0.5)

    @staticmethod
    @transaction.atomic
    def recompute(*, clinic_id: UUID, patient_id: UUID) -> PatientVisitPattern | None:
        treatments = list(treatments_for_patient(clinic_id=clinic_id, patient_id=patient_id))
        if not treatments:
            return None

        last = treatments[-1]
        pattern, _ = PatientVisitPattern.objects.update_or_create(
            patient_id=patient_id,
            defaults={
                "clinic_id": clinic_id,
                "total_visits": len(treatments),
                "last_visit_on": last.performed_on,
                "last_category": last.category,
                "average_visit_days": VisitPatternService._average_days([t.performed_on for t in treatments]),
            },
        )
        return pattern
