# clinic_core/treatments/subscribers.py
from uuid import UUID

from clinic_core.common.events import subscribe
from clinic_core.treatments.services import VisitPatternService


@subscribe("treatment.recorded")
def on_treatment_recorded(payload: dict) -> None:
    VisitPatternService.recompute(
        clinic_id=UUID(payload["clinic_id"]),
        patient_id=UUID(payload["patient_id"]),
    )
