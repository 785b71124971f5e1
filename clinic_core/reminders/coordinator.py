# clinic_core/reminders/coordinator.py
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import Iterable, Optional
from uuid import UUID

from django.conf import settings
from django.db import connections, transaction
from django.utils import timezone

from clinic_core.clinics.models import Clinic
from clinic_core.clinics.selectors import active_clinics_qs, get_clinic_or_none
from clinic_core.patients.selectors import patients_by_id
from clinic_core.reminders.channels import BaseChannel, SendResult, get_channel
from clinic_core.reminders.evaluator import DuePair, DueSetEvaluator, unique_work_items
from clinic_core.reminders.ledger import DispatchLedger
from clinic_core.reminders.rendering import render_message
from clinic_core.reminders.services import ReminderLogService

logger = logging.getLogger(__name__)

SENT = "sent"
FAILED = "failed"
DEFERRED = "deferred"


@dataclass
class PairOutcome:
    patient_id: UUID
    patient_name: str
    category: str
    days_since: int
    status: str
    error: str = ""
    provider_message_id: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "patientId": str(self.patient_id),
            "name": self.patient_name,
            "category": self.category,
            "daysSince": self.days_since,
            "status": self.status,
            "error": self.error or None,
            "providerMessageId": self.provider_message_id,
        }


@dataclass
class ClinicResult:
    clinic_id: UUID
    clinic_name: str = ""
    sent: int = 0
    failed: int = 0
    deferred: int = 0
    error: Optional[str] = None
    details: list[PairOutcome] = field(default_factory=list)

    def add(self, outcome: PairOutcome) -> None:
        if outcome.status == SENT:
            self.sent += 1
        elif outcome.status == FAILED:
            self.failed += 1
        else:
            self.deferred += 1
        self.details.append(outcome)

    def as_dict(self) -> dict:
        return {
            "clinicId": str(self.clinic_id),
            "clinicName": self.clinic_name,
            "sent": self.sent,
            "failed": self.failed,
            "deferred": self.deferred,
            "error": self.error,
            "details": [d.as_dict() for d in self.details],
        }


@dataclass
class TickResult:
    timestamp: datetime
    clinics: list[ClinicResult] = field(default_factory=list)

    @property
    def total_sent(self) -> int:
        return sum(c.sent for c in self.clinics)

    @property
    def total_failed(self) -> int:
        return sum(c.failed for c in self.clinics)

    @property
    def total_deferred(self) -> int:
        return sum(c.deferred for c in self.clinics)


class _TimedSender:
    """
    Runs channel.send on a single worker thread so the caller can stop waiting.
    A timed-out call keeps its thread; the sender moves on to a fresh executor.
    """

    def __init__(self, channel: BaseChannel, timeout: float) -> None:
        self.channel = channel
        self.timeout = timeout
        self._executor = self._new_executor()

    @staticmethod
    def _new_executor() -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=1, thread_name_prefix="reminder-send")

    def send(self, destination: str, message: str) -> SendResult:
        future = self._executor.submit(self.channel.send, destination, message, timeout=self.timeout)
        try:
            return future.result(timeout=self.timeout)
        except FuturesTimeoutError:
            future.cancel()
            self._executor.shutdown(wait=False)
            self._executor = self._new_executor()
            raise

    def close(self) -> None:
        self._executor.shutdown(wait=False)


class ReminderDispatchCoordinator:
    """
    Turns due pairs into sends.

    - one send per (patient, category) per tick, in evaluator order
    - ledger is written only after the channel reports success
    - per-pair failures never abort the clinic; per-clinic failures never abort the tick
    - cancel_event / deadline_seconds stop new sends; the rest is reported as deferred
    """

    def __init__(
        self,
        *,
        channel: Optional[BaseChannel] = None,
        max_workers: Optional[int] = None,
        send_timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        deadline_seconds: Optional[float] = None,
    ) -> None:
        conf = settings.REMINDERS
        self._channel = channel
        self.max_workers = max(1, int(max_workers if max_workers is not None else conf.get("MAX_WORKERS", 1)))
        self.send_timeout = float(send_timeout if send_timeout is not None else conf.get("SEND_TIMEOUT_SECONDS", 15))
        self.cancel_event = cancel_event or threading.Event()
        self.deadline_seconds = deadline_seconds
        self._deadline: Optional[float] = None

    @property
    def channel(self) -> BaseChannel:
        if self._channel is None:
            self._channel = get_channel()
        return self._channel

    @staticmethod
    def _aware(now: Optional[datetime]) -> datetime:
        if now is None:
            return timezone.now()
        if timezone.is_naive(now):
            return timezone.make_aware(now, dt_timezone.utc)
        return now

    def _start_clock(self) -> None:
        # the deadline counts from the start of each run, not from construction
        self._deadline = time.monotonic() + self.deadline_seconds if self.deadline_seconds is not None else None

    def should_stop(self) -> bool:
        if self.cancel_event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    # ----------------------------
    # Reads
    # ----------------------------
    def get_pending_summary(self, *, clinic_id: UUID, now: Optional[datetime] = None) -> list[DuePair]:
        now = self._aware(now)
        return unique_work_items(DueSetEvaluator.compute_due(clinic_id=clinic_id, now=now))

    def pending_for_active_clinics(self, *, now: Optional[datetime] = None) -> list[tuple[Clinic, list[DuePair]]]:
        now = self._aware(now)
        return [(clinic, self.get_pending_summary(clinic_id=clinic.id, now=now)) for clinic in active_clinics_qs()]

    # ----------------------------
    # Dispatch
    # ----------------------------
    def process_clinic(self, *, clinic_id: UUID, now: Optional[datetime] = None, clinic_name: str = "") -> ClinicResult:
        now = self._aware(now)
        if not clinic_name:
            clinic = get_clinic_or_none(clinic_id=clinic_id)
            clinic_name = clinic.name if clinic else ""

        self._start_clock()
        result = ClinicResult(clinic_id=clinic_id, clinic_name=clinic_name)
        self._run_clinic(result, now=now)
        return result

    def send_one(self, *, clinic_id: UUID, patient_id: UUID, category: str, now: Optional[datetime] = None) -> Optional[PairOutcome]:
        """
        Staff-triggered send for a single (patient, category).
        Goes through the same path as a tick, so the ledger stays consistent.
        Returns None when the pair is not currently due.
        """
        now = self._aware(now)
        item = next(
            (i for i in self.get_pending_summary(clinic_id=clinic_id, now=now) if i.key == (patient_id, category)),
            None,
        )
        if item is None:
            return None

        patient = patients_by_id(clinic_id=clinic_id, patient_ids={patient_id}).get(patient_id)
        sender = _TimedSender(self.channel, self.send_timeout)
        try:
            return self._dispatch_pair(clinic_id=clinic_id, item=item, patient=patient, now=now, sender=sender)
        finally:
            sender.close()

    def _run_clinic(self, result: ClinicResult, *, now: datetime) -> None:
        """Fills result in place so a caller catching an error still sees the partial counts."""
        clinic_id = result.clinic_id
        items = self.get_pending_summary(clinic_id=clinic_id, now=now)
        if not items:
            return

        patients = patients_by_id(clinic_id=clinic_id, patient_ids={i.patient_id for i in items})
        sender = _TimedSender(self.channel, self.send_timeout)
        try:
            for index, item in enumerate(items):
                if self.should_stop():
                    for rest in items[index:]:
                        result.add(self._outcome(rest, DEFERRED))
                    logger.info("Reminder dispatch stopped for clinic %s; %s item(s) deferred", clinic_id, len(items) - index)
                    break
                result.add(self._dispatch_pair(clinic_id=clinic_id, item=item, patient=patients.get(item.patient_id), now=now, sender=sender))
        finally:
            sender.close()

        logger.info(
            "Reminders for clinic %s: sent=%s failed=%s deferred=%s",
            clinic_id, result.sent, result.failed, result.deferred,
        )

    def process_all_clinics(self, *, now: Optional[datetime] = None, clinic_ids: Optional[Iterable[UUID]] = None) -> TickResult:
        now = self._aware(now)
        self._start_clock()
        qs = active_clinics_qs()
        if clinic_ids is not None:
            qs = qs.filter(id__in=list(clinic_ids))
        clinics = list(qs)
        if clinics:
            # resolve once before fan-out; a misconfigured channel fails the whole tick
            self.channel

        if self.max_workers == 1 or len(clinics) <= 1:
            results = [self._process_clinic_safely(clinic, now) for clinic in clinics]
        else:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(clinics)), thread_name_prefix="reminders") as pool:
                results = list(pool.map(lambda c: self._process_clinic_in_worker(c, now), clinics))

        tick = TickResult(timestamp=now, clinics=results)
        logger.info(
            "Reminder tick finished: clinics=%s sent=%s failed=%s deferred=%s",
            len(results), tick.total_sent, tick.total_failed, tick.total_deferred,
        )
        return tick

    # ----------------------------
    # Internals
    # ----------------------------
    def _process_clinic_safely(self, clinic: Clinic, now: datetime) -> ClinicResult:
        result = ClinicResult(clinic_id=clinic.id, clinic_name=clinic.name)
        try:
            self._run_clinic(result, now=now)
        except Exception as exc:  # noqa: BLE001 - one clinic must not abort the tick
            logger.exception("Reminder processing failed for clinic %s", clinic.id)
            # sends already made stay counted; the interruption itself is one failure
            result.failed += 1
            result.error = str(exc) or exc.__class__.__name__
        return result

    def _process_clinic_in_worker(self, clinic: Clinic, now: datetime) -> ClinicResult:
        try:
            return self._process_clinic_safely(clinic, now)
        finally:
            connections.close_all()

    @staticmethod
    def _outcome(item: DuePair, status: str, *, error: str = "", provider_message_id: Optional[str] = None) -> PairOutcome:
        return PairOutcome(
            patient_id=item.patient_id,
            patient_name=item.patient_name,
            category=item.category,
            days_since=item.days_since,
            status=status,
            error=error,
            provider_message_id=provider_message_id,
        )

    def _dispatch_pair(self, *, clinic_id: UUID, item: DuePair, patient, now: datetime, sender: _TimedSender) -> PairOutcome:
        message = render_message(
            item.rule.message_template,
            patient_name=item.patient_name,
            category=item.category,
            days_since=item.days_since,
        )
        destination = self.channel.destination_for(patient) if patient is not None else ""

        if not destination:
            send_result = SendResult(ok=False, error=f"Patient has no contact for channel '{self.channel.name}'.")
        else:
            try:
                send_result = sender.send(destination, message)
            except FuturesTimeoutError:
                send_result = SendResult(ok=False, error=f"Send timed out after {self.send_timeout:g}s.")
            except Exception as exc:  # noqa: BLE001 - a failed send is an outcome, not an abort
                send_result = SendResult(ok=False, error=str(exc) or exc.__class__.__name__)

        if send_result.ok:
            DispatchLedger.record_sent(clinic_id=clinic_id, patient_id=item.patient_id, category=item.category, sent_at=now)
        else:
            logger.warning(
                "Reminder not sent: clinic=%s patient=%s category=%s error=%s",
                clinic_id, item.patient_id, item.category, send_result.error,
            )

        try:
            with transaction.atomic():
                ReminderLogService.record_attempt(
                    clinic_id=clinic_id,
                    patient_id=item.patient_id,
                    category=item.category,
                    channel=self.channel.name,
                    ok=send_result.ok,
                    days_since=item.days_since,
                    rule_id=item.rule.id,
                    message=message,
                    provider_message_id=send_result.provider_message_id,
                    error=send_result.error,
                )
        except Exception:  # noqa: BLE001 - the history row is informational; the outcome stands
            logger.exception(
                "Reminder log write failed: clinic=%s patient=%s category=%s",
                clinic_id, item.patient_id, item.category,
            )

        return self._outcome(
            item,
            SENT if send_result.ok else FAILED,
            error=send_result.error,
            provider_message_id=send_result.provider_message_id,
        )
