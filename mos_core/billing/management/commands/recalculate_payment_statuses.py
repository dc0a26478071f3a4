# mos_core/billing/management/commands/recalculate_payment_statuses.py
from __future__ import annotations

from django.core.management.base import BaseCommand

from mos_core.billing.services import PaymentRecordService


class Command(BaseCommand):
    help = "Recalculate LATE/OVERDUE statuses of unpaid monthly payment records for every org."

    def handle(self, *args, **opts):
        result = PaymentRecordService.recalculate_all()
        updated = sum(r.get("updated", 0) for r in result.results)

        self.stdout.write(f"Orgs checked: {result.checked}")
        self.stdout.write(f"Orgs succeeded: {result.succeeded}")
        self.stdout.write(f"Records updated: {updated}")
        if result.failed:
            self.stdout.write(self.style.WARNING(f"Failures: {result.failed}"))
        else:
            self.stdout.write(self.style.SUCCESS("Payment statuses recalculated."))
