# clinic_core/reminders/evaluator.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone as dt_timezone
from typing import Iterable, Mapping, Optional
from uuid import UUID

from clinic_core.patients.selectors import patients_by_id
from clinic_core.reminders.ledger import DispatchLedger
from clinic_core.reminders.selectors import active_rules_qs
from clinic_core.treatments.selectors import latest_treatment_dates


@dataclass(frozen=True)
class RuleSnapshot:
    id: UUID
    category: str
    interval_days: int
    message_template: str
    is_active: bool = True

    @classmethod
    def from_model(cls, rule) -> "RuleSnapshot":
        return cls(
            id=rule.id,
            category=rule.category,
            interval_days=rule.interval_days,
            message_template=rule.message_template,
            is_active=rule.is_active,
        )


@dataclass(frozen=True)
class DuePair:
    patient_id: UUID
    category: str
    days_since: int
    last_treatment_on: date
    rule: RuleSnapshot
    patient_name: str = ""

    @property
    def key(self) -> tuple[UUID, str]:
        return (self.patient_id, self.category)


def utc_day(moment: datetime) -> date:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=dt_timezone.utc)
    return moment.astimezone(dt_timezone.utc).date()


def days_since(last_treatment_on: date, now: datetime) -> int:
    return max(0, (utc_day(now) - last_treatment_on).days)


def is_suppressed(last_treatment_on: date, last_sent_at: Optional[datetime], *, min_interval_days: int = 1) -> bool:
    """
    True when a successful reminder was sent after the treatment that would trigger it.

    Compared on UTC calendar days. A send on a later day always belongs to this
    treatment. A send on the treatment day itself can only have been triggered by
    this treatment when some rule for the category fires on day zero; otherwise it
    was the reminder for an earlier visit and the clock starts again.
    """
    if last_sent_at is None:
        return False
    sent_on = utc_day(last_sent_at)
    if sent_on > last_treatment_on:
        return True
    return sent_on == last_treatment_on and min_interval_days == 0


def _sort_key(pair: DuePair):
    return (
        -pair.days_since,
        pair.category,
        pair.patient_name,
        str(pair.patient_id),
        pair.rule.interval_days,
        str(pair.rule.id),
    )


def evaluate_due_pairs(
    *,
    rules: Iterable[RuleSnapshot],
    last_treatments: Mapping[tuple[UUID, str], date],
    ledger: Mapping[tuple[UUID, str], datetime],
    now: datetime,
    patient_names: Optional[Mapping[UUID, str]] = None,
) -> list[DuePair]:
    """
    Pure due-set computation.

    last_treatments: (patient_id, category) -> most recent performed_on
    ledger:          (patient_id, category) -> last successful send

    One DuePair per (patient, rule); overlapping rules for the same category
    each produce their own pair (see unique_work_items).
    """
    names = patient_names or {}
    active = [r for r in rules if r.is_active]
    if not active:
        return []

    by_category: dict[str, list[tuple[UUID, date]]] = {}
    for (patient_id, category), performed_on in last_treatments.items():
        by_category.setdefault(category, []).append((patient_id, performed_on))

    # the ledger is per category, so suppression uses the shortest active interval
    min_interval: dict[str, int] = {}
    for rule in active:
        min_interval[rule.category] = min(rule.interval_days, min_interval.get(rule.category, rule.interval_days))

    due: list[DuePair] = []
    for rule in active:
        for patient_id, performed_on in by_category.get(rule.category, ()):
            elapsed = days_since(performed_on, now)
            if elapsed < rule.interval_days:
                continue
            last_sent_at = ledger.get((patient_id, rule.category))
            if is_suppressed(performed_on, last_sent_at, min_interval_days=min_interval[rule.category]):
                continue
            due.append(
                DuePair(
                    patient_id=patient_id,
                    category=rule.category,
                    days_since=elapsed,
                    last_treatment_on=performed_on,
                    rule=rule,
                    patient_name=names.get(patient_id, ""),
                )
            )

    due.sort(key=_sort_key)
    return due


def unique_work_items(pairs: Iterable[DuePair]) -> list[DuePair]:
    """At most one item per (patient, category); the first in order wins."""
    seen: set[tuple[UUID, str]] = set()
    out: list[DuePair] = []
    for pair in pairs:
        if pair.key in seen:
            continue
        seen.add(pair.key)
        out.append(pair)
    return out


class DueSetEvaluator:
    """
    Loads plain inputs for one clinic and runs evaluate_due_pairs.
    Read-only: never writes.
    """

    @staticmethod
    def compute_due(*, clinic_id: UUID, now: datetime) -> list[DuePair]:
        rules = [RuleSnapshot.from_model(r) for r in active_rules_qs(clinic_id=clinic_id)]
        if not rules:
            return []

        categories = sorted({r.category for r in rules})
        last_treatments = latest_treatment_dates(clinic_id=clinic_id, categories=categories)
        if not last_treatments:
            return []

        patient_ids = {patient_id for patient_id, _ in last_treatments}
        ledger = DispatchLedger.snapshot(clinic_id=clinic_id, patient_ids=patient_ids, categories=categories)
        patients = patients_by_id(clinic_id=clinic_id, patient_ids=patient_ids)

        return evaluate_due_pairs(
            rules=rules,
            last_treatments=last_treatments,
            ledger=ledger,
            now=now,
            patient_names={pid: p.full_name for pid, p in patients.items()},
        )
