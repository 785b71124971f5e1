# clinic_core/treatments/models.py
from django.db import models

from clinic_core.common.models import ClinicScopedModel
from clinic_core.patients.models import Patient


class TreatmentCategory(models.TextChoices):
    BOTOX = "BOTOX", "Botox"
    DOLGU = "DOLGU", "Dolgu"
    DIS_TEDAVI = "DIS_TEDAVI", "Diş Tedavisi"
    GENEL = "GENEL", "Genel"


class TreatmentRecord(ClinicScopedModel):
    """
    A performed treatment. Immutable input for the reminder engine.
    amount_minor is stored in minor currency units (kuruş); never a float.
    """
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="treatments")

    category = models.CharField(max_length=32, choices=TreatmentCategory.choices, db_index=True)
    name = models.CharField(max_length=255, blank=True)
    performed_on = models.DateField(db_index=True)
    amount_minor = models.BigIntegerField(default=0)

    class Meta:
        db_table = "treatments_treatment"
        indexes = [
            models.Index(fields=["clinic_id", "category", "performed_on"]),
            models.Index(fields=["clinic_id", "patient", "category"]),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(amount_minor__gte=0), name="ck_treatment_amount_non_negative"),
        ]

    def __str__(self) -> str:
        return f"{self.category} {self.performed_on} ({self.patient_id})"


class PatientVisitPattern(ClinicScopedModel):
    """
    Derived read model: how often a patient comes back.
    Recomputed from TreatmentRecord rows whenever a treatment is recorded.
    """
    patient = models.OneToOneField(Patient, on_delete=models.CASCADE, related_name="visit_pattern")

    total_visits = models.PositiveIntegerField(default=0)
    last_visit_on = models.DateField(null=True, blank=True)
    last_category = models.CharField(max_length=32, choices=TreatmentCategory.choices, blank=True)
    average_visit_days = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        db_table = "treatments_visit_pattern"
