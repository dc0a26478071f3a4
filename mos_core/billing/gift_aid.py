# mos_core/billing/gift_aid.py
"""
Gift Aid declarations and the HMRC claim schedule.

The schedule aggregates PAID fee records per declaring parent: one row per
parent with the total paid in the claim period and the date of the earliest
payment, in the column layout of HMRC's Gift Aid schedule spreadsheet.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional
from uuid import UUID

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from mos_core.audit.services import AuditService
from mos_core.billing.models import GiftAidDeclaration, GiftAidStatus, MonthlyPaymentRecord, RecordStatus
from mos_core.billing.services import org_tz
from mos_core.orgs.models import Org

logger = logging.getLogger(__name__)

SCHEDULE_HEADERS = [
    "Item",
    "Title",
    "First Name",
    "Last Name",
    "House Name or Number",
    "Postcode",
    "Aggregated Donations",
    "Sponsored Event",
    "Donation Date (DD/MM/YY)",
    "Amount",
]

# HMRC field limits
TITLE_MAX = 4
NAME_MAX = 35
HOUSE_MAX = 40


@dataclass(frozen=True)
class ScheduleRow:
    title: str
    first_name: str
    last_name: str
    house: str
    postcode: str
    donation_date: date
    amount_p: int

    def as_csv(self, item: int) -> list[str]:
        return [
            str(item),
            self.title[:TITLE_MAX],
            self.first_name[:NAME_MAX],
            self.last_name[:NAME_MAX],
            self.house[:HOUSE_MAX],
            self.postcode,
            "",
            "",
            self.donation_date.strftime("%d/%m/%y"),
            f"{self.amount_p / 100:.2f}",
        ]


def normalise_postcode(value: str) -> str:
    return " ".join((value or "").upper().split())


@transaction.atomic
def declare(
    *,
    org_id: UUID,
    parent_id: int,
    status: str,
    title: str = "",
    house: str = "",
    postcode: str = "",
    actor_user_id: Optional[int] = None,
) -> GiftAidDeclaration:
    """
    Creates or replaces the parent's declaration. A YES needs the home address
    HMRC asks for; declared_at is stamped when the answer becomes YES.
    """
    house = (house or "").strip()
    postcode = normalise_postcode(postcode)
    if status == GiftAidStatus.YES:
        errors = {}
        if not house:
            errors["house"] = "House name or number is required to claim Gift Aid."
        if not postcode:
            errors["postcode"] = "Postcode is required to claim Gift Aid."
        if errors:
            raise ValidationError(errors)

    declaration, created = GiftAidDeclaration.objects.select_for_update().get_or_create(
        org_id=org_id,
        parent_id=parent_id,
    )
    previous = None if created else declaration.status

    declaration.status = status
    declaration.title = (title or "").strip()
    declaration.house = house
    declaration.postcode = postcode
    if status == GiftAidStatus.YES:
        if previous != GiftAidStatus.YES or declaration.declared_at is None:
            declaration.declared_at = timezone.now()
    else:
        declaration.declared_at = None
    declaration.save()

    AuditService.log(
        action="GIFT_AID_DECLARATION",
        target_type="GiftAidDeclaration",
        target_id=declaration.id,
        org_id=org_id,
        actor_user_id=actor_user_id,
        data={"parent_id": parent_id, "status": status, "previous": previous},
    )
    return declaration


def build_schedule(*, org_id: UUID, start: date, end: date) -> list[ScheduleRow]:
    """
    Rows for PAID records whose payment date (org local time) falls in
    [start, end], keyed on the student's primary parent. Parents without a
    YES declaration are left out.
    """
    if start > end:
        raise ValidationError({"end": "End date must be on or after the start date."})

    org = Org.objects.get(id=org_id)
    tz = org_tz(org)

    declarations = {
        d.parent_id: d
        for d in GiftAidDeclaration.objects.for_org(org_id).filter(status=GiftAidStatus.YES)
    }
    if not declarations:
        return []

    records = (
        MonthlyPaymentRecord.objects.for_org(org_id)
        .filter(
            status=RecordStatus.PAID,
            paid_at__isnull=False,
            student__primary_parent_id__in=list(declarations),
        )
        .select_related("student__primary_parent")
    )

    totals: dict[int, int] = {}
    earliest: dict[int, date] = {}
    parents = {}
    for record in records:
        paid_on = timezone.localtime(record.paid_at, tz).date()
        if not (start <= paid_on <= end):
            continue
        parent = record.student.primary_parent
        parents[parent.id] = parent
        totals[parent.id] = totals.get(parent.id, 0) + record.amount_p
        if parent.id not in earliest or paid_on < earliest[parent.id]:
            earliest[parent.id] = paid_on

    rows = []
    for parent_id, parent in parents.items():
        declaration = declarations[parent_id]
        rows.append(
            ScheduleRow(
                title=declaration.title,
                first_name=parent.first_name,
                last_name=parent.last_name,
                house=declaration.house,
                postcode=declaration.postcode,
                donation_date=earliest[parent_id],
                amount_p=totals[parent_id],
            )
        )
    rows.sort(key=lambda r: (r.last_name.lower(), r.first_name.lower(), r.donation_date))

    logger.info("Gift Aid schedule built", extra={"org_id": str(org_id), "rows": len(rows)})
    return rows
