# mos_core/orgs/management/commands/report_usage.py
from __future__ import annotations

from datetime import date

from django.core.management.base import BaseCommand, CommandError

from mos_core.orgs.services import UsageService


class Command(BaseCommand):
    help = "Record the nightly active-student usage snapshot for every org."

    def add_arguments(self, parser):
        parser.add_argument("--period", type=str, default=None, help="Snapshot date (YYYY-MM-DD). Default: today.")

    def handle(self, *args, **opts):
        period = None
        if opts["period"]:
            try:
                period = date.fromisoformat(opts["period"])
            except ValueError:
                raise CommandError("--period must be YYYY-MM-DD")

        result = UsageService.report_nightly(period=period)

        self.stdout.write(f"Orgs reported: {result.succeeded}/{result.checked}")
        if result.failed:
            self.stdout.write(self.style.WARNING(f"Failures: {result.failed}"))
        else:
            self.stdout.write(self.style.SUCCESS("Usage report complete."))
