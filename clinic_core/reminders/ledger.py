# clinic_core/reminders/ledger.py
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from django.db import IntegrityError, transaction
from django.utils import timezone

from clinic_core.reminders.models import ReminderDispatch


class DispatchLedger:
    """
    Read/write access to the dispatch ledger (ReminderDispatch).

    Write semantics (record_sent):
    - stored value is always max(existing, incoming)
    - writing the same (key, timestamp) twice is a no-op
    - concurrent writers never lose the newer timestamp: the move-forward is a single
      conditional UPDATE, and the first insert is savepoint-protected so a unique-key
      race falls back to the conditional UPDATE instead of poisoning the transaction
    """

    @staticmethod
    def get_last_sent(*, clinic_id: UUID, patient_id: UUID, category: str) -> Optional[datetime]:
        return (
            ReminderDispatch.objects.filter(clinic_id=clinic_id, patient_id=patient_id, category=category)
            .values_list("last_sent_at", flat=True)
            .first()
        )

    @staticmethod
    def snapshot(
        *,
        clinic_id: UUID,
        patient_ids: Optional[Iterable[UUID]] = None,
        categories: Optional[Iterable[str]] = None,
    ) -> dict[tuple[UUID, str], datetime]:
        qs = ReminderDispatch.objects.filter(clinic_id=clinic_id)
        if patient_ids is not None:
            qs = qs.filter(patient_id__in=list(patient_ids))
        if categories is not None:
            qs = qs.filter(category__in=list(categories))
        return {
            (patient_id, category): last_sent_at
            for patient_id, category, last_sent_at in qs.values_list("patient_id", "category", "last_sent_at")
        }

    @staticmethod
    def _move_forward(*, clinic_id: UUID, patient_id: UUID, category: str, sent_at: datetime) -> int:
        return ReminderDispatch.objects.filter(
            clinic_id=clinic_id,
            patient_id=patient_id,
            category=category,
            last_sent_at__lt=sent_at,
        ).update(last_sent_at=sent_at, updated_at=timezone.now())

    @staticmethod
    @transaction.atomic
    def record_sent(*, clinic_id: UUID, patient_id: UUID, category: str, sent_at: datetime) -> datetime:
        """
        Returns the value stored after the write (>= sent_at).
        """
        if timezone.is_naive(sent_at):
            raise ValueError("sent_at must be timezone-aware")

        if DispatchLedger._move_forward(clinic_id=clinic_id, patient_id=patient_id, category=category, sent_at=sent_at):
            return sent_at

        # Either no row yet, or the stored value is already >= sent_at.
        try:
            with transaction.atomic(savepoint=True):
                ReminderDispatch.objects.create(
                    clinic_id=clinic_id,
                    patient_id=patient_id,
                    category=category,
                    last_sent_at=sent_at,
                )
            return sent_at
        except IntegrityError:
            # Row exists (possibly inserted concurrently with an older value).
            DispatchLedger._move_forward(clinic_id=clinic_id, patient_id=patient_id, category=category, sent_at=sent_at)

        return DispatchLedger.get_last_sent(clinic_id=clinic_id, patient_id=patient_id, category=category)
