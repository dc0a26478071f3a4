# mos_core/orgs/management/commands/suspend_overdue_orgs.py
from __future__ import annotations

from datetime import date

from django.core.management.base import BaseCommand, CommandError

from mos_core.orgs.lifecycle import OrgStatusManager


class Command(BaseCommand):
    help = "Suspend active orgs whose platform subscription is overdue beyond the grace period."

    def add_arguments(self, parser):
        parser.add_argument("--today", type=str, default=None, help="Override today's date (YYYY-MM-DD).")

    def handle(self, *args, **opts):
        today = None
        if opts["today"]:
            try:
                today = date.fromisoformat(opts["today"])
            except ValueError:
                raise CommandError("--today must be YYYY-MM-DD")

        result = OrgStatusManager.suspend_overdue(today=today)
        suspended = [r for r in result.results if r.get("status") == "suspended"]

        for r in suspended:
            self.stdout.write(f"Suspended {r['org_name']} ({r['days_overdue']} days overdue)")

        self.stdout.write(f"Orgs checked: {result.checked}")
        self.stdout.write(f"Orgs suspended: {len(suspended)}")
        if result.failed:
            self.stdout.write(self.style.WARNING(f"Failures: {result.failed}"))
        else:
            self.stdout.write(self.style.SUCCESS("Overdue check complete."))
