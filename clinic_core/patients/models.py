from django.db import models
from clinic_core.common.models import ClinicScopedModel


class Patient(ClinicScopedModel):
    """
    Patient record scoped to a clinic.
    phone doubles as the WhatsApp destination; telegram_chat_id is optional.
    """
    full_name = models.CharField(max_length=255)
    phone = models.CharField(max_length=32, blank=True)
    telegram_chat_id = models.CharField(max_length=64, blank=True)
    email = models.EmailField(blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        db_table = "patients_patient"
        indexes = [
            models.Index(fields=["clinic_id", "full_name"]),
            models.Index(fields=["clinic_id", "phone"]),
        ]

    def __str__(self) -> str:
        return self.full_name
