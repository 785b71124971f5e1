# clinic_core/clinics/services.py
from __future__ import annotations

from uuid import UUID

from django.core.exceptions import ValidationError
from django.db import transaction

from clinic_core.clinics.models import Clinic, ClinicMembership


class ClinicService:
    """
    All Clinic mutations live here (write-model boundary).
    """

    @staticmethod
    @transaction.atomic
    def create(*, name: str, code: str, timezone: str = "Europe/Istanbul") -> Clinic:
        code = (code or "").strip()
        name = (name or "").strip()

        if not code:
            raise ValidationError({"code": "This field is required."})
        if not name:
            raise ValidationError({"name": "This field is required."})

        return Clinic.objects.create(name=name, code=code, timezone=timezone)

    @staticmethod
    @transaction.atomic
    def set_active(*, clinic_id: UUID, is_active: bool) -> Clinic:
        c = Clinic.objects.select_for_update().get(id=clinic_id)

        # idempotent no-op
        if c.is_active == is_active:
            return c

        c.is_active = is_active
        c.save(update_fields=["is_active", "updated_at"])
        return c

    @staticmethod
    @transaction.atomic
    def add_member(*, clinic_id: UUID, user_id: int) -> ClinicMembership:
        membership, created = ClinicMembership.objects.get_or_create(
            clinic_id=clinic_id,
            user_id=user_id,
            defaults={"is_active": True},
        )
        if not created and not membership.is_active:
            membership.is_active = True
            membership.save(update_fields=["is_active", "updated_at"])
        return membership
