# clinic_core/clinics/selectors.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from django.db.models import QuerySet

from clinic_core.clinics.models import Clinic, ClinicMembership


def active_clinics_qs() -> QuerySet[Clinic]:
    return Clinic.objects.filter(is_active=True).order_by("name", "id")


def get_clinic_or_none(*, clinic_id: UUID) -> Optional[Clinic]:
    return Clinic.objects.filter(id=clinic_id).first()


def is_user_member_of_clinic(*, user_id: int, clinic_id: UUID) -> bool:
    return ClinicMembership.objects.filter(
        clinic_id=clinic_id,
        user_id=user_id,
        is_active=True,
        clinic__is_active=True,
    ).exists()
