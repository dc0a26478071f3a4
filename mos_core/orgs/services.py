# mos_core/orgs/services.py
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from mos_core.audit.services import AuditService
from mos_core.common.batch import BatchResult, run_per_org
from mos_core.iam.models import MembershipRole
from mos_core.iam.services.membership import ensure_membership
from mos_core.orgs.models import Org, OrgStatus, UsageReport, default_org_settings
from mos_core.students.models import Student

logger = logging.getLogger(__name__)

_PLAIN_FIELDS = (
    "name",
    "timezone",
    "contact_email",
    "fee_due_day",
    "card_payments_enabled",
    "cash_payments_enabled",
    "bank_transfer_enabled",
    "payment_instructions",
)


def _check_timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError({"timezone": f"Unknown timezone: {value}"})
    return value


class OrgService:
    """
    Org identity and configuration writes. Status changes go through
    orgs.lifecycle.OrgStatusManager instead.
    """

    @staticmethod
    @transaction.atomic
    def create(
        *,
        name: str,
        slug: str,
        timezone_name: str = "Europe/London",
        contact_email: str = "",
        admin_user_id: Optional[int] = None,
        actor_user_id: Optional[int] = None,
    ) -> Org:
        name = (name or "").strip()
        slug = (slug or "").strip().lower()

        if not name:
            raise ValidationError({"name": "This field is required."})
        if not slug:
            raise ValidationError({"slug": "This field is required."})
        if Org.objects.filter(slug=slug).exists():
            raise ValidationError({"slug": "An organisation with this slug already exists."})

        org = Org.objects.create(
            name=name,
            slug=slug,
            timezone=_check_timezone(timezone_name),
            contact_email=contact_email or "",
            settings=default_org_settings(),
        )

        if admin_user_id is not None:
            ensure_membership(user_id=admin_user_id, org_id=org.id, role=MembershipRole.ADMIN)

        AuditService.log(
            action="ORG_CREATED",
            target_type="Org",
            target_id=org.id,
            org_id=org.id,
            actor_user_id=actor_user_id,
            data={"name": name, "slug": slug, "admin_user_id": admin_user_id},
        )
        logger.info("Org created: %s (%s)", org.id, slug)
        return org

    @staticmethod
    @transaction.atomic
    def update(*, org_id: UUID, changes: dict[str, Any], actor_user_id: Optional[int]) -> Org:
        """
        Apply validated changes (OrgUpdateSerializer) to the org.
        `settings` is merged key by key into the stored settings.
        """
        org = Org.objects.select_for_update().get(id=org_id)

        update_fields: list[str] = []
        before: dict[str, Any] = {}

        for field_name in _PLAIN_FIELDS:
            if field_name not in changes:
                continue
            value = changes[field_name]
            if field_name == "timezone":
                value = _check_timezone(value)
            if getattr(org, field_name) != value:
                before[field_name] = getattr(org, field_name)
                setattr(org, field_name, value)
                update_fields.append(field_name)

        if "settings" in changes:
            merged = {**default_org_settings(), **(org.settings or {}), **(changes["settings"] or {})}
            if merged != org.settings:
                before["settings"] = org.settings
                org.settings = merged
                update_fields.append("settings")

        if org.bank_transfer_enabled and not (org.payment_instructions or "").strip():
            raise ValidationError({"payment_instructions": "Bank transfer needs payment instructions."})

        if not update_fields:
            return org

        org.save(update_fields=update_fields + ["updated_at"])

        AuditService.log(
            action="UPDATE_ORG_SETTINGS",
            target_type="Org",
            target_id=org.id,
            org_id=org.id,
            actor_user_id=actor_user_id,
            data={"fields": update_fields, "before": before},
        )
        return org


class UsageService:
    """
    Nightly usage snapshot for platform metered billing.
    """

    @staticmethod
    def report_nightly(*, period: date | None = None) -> BatchResult:
        period = period or timezone.localdate()
        orgs = Org.objects.exclude(status=OrgStatus.DEACTIVATED).order_by("created_at")

        def _report(org: Org) -> dict:
            count = Student.objects.filter(org_id=org.id, is_archived=False).count()
            UsageReport.objects.update_or_create(
                org=org,
                period=period,
                defaults={"student_count": count},
            )
            return {"status": "reported", "student_count": count}

        result = run_per_org(orgs, _report, job="report_usage")

        AuditService.log(
            action="NIGHTLY_USAGE_REPORT",
            target_type="UsageReport",
            target_id=period.isoformat(),
            org_id=None,
            actor_user_id=None,
            data={
                "period": period,
                "checked": result.checked,
                "succeeded": result.succeeded,
                "failed": result.failed,
                "total_students": sum(r.get("student_count", 0) for r in result.results),
            },
        )
        return result
