# clinic_core/clinics/models.py
import uuid
from django.db import models

from clinic_core.common.models import TimeStampedModel


class Clinic(TimeStampedModel):
    """
    Top-level organization.
    Root of all scoping in the system.
    NOT a ClinicScopedModel (it *is* the clinic).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=255)
    code = models.SlugField(max_length=64, unique=True)  # stable identifier (subdomain-friendly)

    # Informational; reminder day arithmetic is done on UTC calendar days.
    timezone = models.CharField(max_length=64, default="Europe/Istanbul")

    phone = models.CharField(max_length=32, blank=True, default="")
    email = models.EmailField(blank=True, default="")

    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        db_table = "clinics_clinic"
        indexes = [
            models.Index(fields=["is_active", "name"]),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"


class ClinicMembership(TimeStampedModel):
    """
    Staff user <-> clinic link. user_id is a plain integer (no FK) to keep the
    clinic app free of auth-app coupling.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name="memberships")
    user_id = models.BigIntegerField(db_index=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "clinics_membership"
        constraints = [
            models.UniqueConstraint(fields=["clinic", "user_id"], name="uq_clinic_membership_user"),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} @ {self.clinic_id}"
