# mos_core/audit/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import QuerySet

from mos_core.audit.models import AuditLog


def list_audit_logs(
    *,
    org_id: UUID,
    action: str | None = None,
    target_type: str | None = None,
    target_id: str | None = None,
    actor_user_id: int | None = None,
) -> QuerySet[AuditLog]:
    qs = AuditLog.objects.filter(org_id=org_id)

    if action:
        qs = qs.filter(action=action)
    if target_type:
        qs = qs.filter(target_type=target_type)
    if target_id:
        qs = qs.filter(target_id=target_id)
    if actor_user_id is not None:
        qs = qs.filter(actor_user_id=actor_user_id)

    return qs.order_by("-created_at")
