# clinic_core/reminders/management/commands/send_reminders.py
from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from clinic_core.clinics.selectors import get_clinic_or_none
from clinic_core.common.scope import parse_uuid
from clinic_core.reminders.channels import ChannelConfigurationError
from clinic_core.reminders.coordinator import ReminderDispatchCoordinator


class Command(BaseCommand):
    help = "Run one reminder dispatch tick (same work as POST /api/v1/cron/reminders/)."

    def add_arguments(self, parser):
        parser.add_argument("--dry-run", action="store_true", help="Print pending reminders only; do not send.")
        parser.add_argument("--clinic-id", type=str, default=None, help="Optional clinic UUID filter.")
        parser.add_argument("--workers", type=int, default=None, help="Clinics processed in parallel (default: settings).")
        parser.add_argument(
            "--deadline-seconds",
            type=float,
            default=None,
            help="Stop issuing new sends after this many seconds; the rest is deferred.",
        )

    def handle(self, *args, **opts):
        clinic_id = None
        if opts["clinic_id"]:
            clinic_id = parse_uuid(opts["clinic_id"])
            if clinic_id is None:
                raise CommandError("--clinic-id must be a UUID.")
            if get_clinic_or_none(clinic_id=clinic_id) is None:
                raise CommandError(f"Clinic {clinic_id} does not exist.")

        coordinator = ReminderDispatchCoordinator(
            max_workers=opts["workers"],
            deadline_seconds=opts["deadline_seconds"],
        )

        if opts["dry_run"]:
            self._print_pending(coordinator, clinic_id)
            return

        try:
            tick = coordinator.process_all_clinics(clinic_ids=[clinic_id] if clinic_id else None)
        except ChannelConfigurationError as e:
            raise CommandError(str(e))

        for c in tick.clinics:
            line = f"{c.clinic_name or c.clinic_id}: sent={c.sent} failed={c.failed} deferred={c.deferred}"
            if c.error:
                line += f" error={c.error}"
            self.stdout.write(line)

        style = self.style.SUCCESS if tick.total_failed == 0 else self.style.WARNING
        self.stdout.write(
            style(f"Reminders done. sent={tick.total_sent} failed={tick.total_failed} deferred={tick.total_deferred}")
        )

    def _print_pending(self, coordinator: ReminderDispatchCoordinator, clinic_id) -> None:
        total = 0
        for clinic, pending in coordinator.pending_for_active_clinics():
            if clinic_id and clinic.id != clinic_id:
                continue
            total += len(pending)
            self.stdout.write(f"{clinic.name}: {len(pending)} pending")
            for p in pending:
                self.stdout.write(
                    f"  - {p.patient_name} [{p.category}] {p.days_since} days (rule {p.rule.interval_days}d)"
                )
        self.stdout.write(self.style.SUCCESS(f"Dry run. Pending reminders: {total}"))
