# mos_core/audit/services.py
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import UUID

from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction

from mos_core.audit.models import AuditLog


@dataclass(frozen=True)
class AuditRecord:
    id: UUID
    action: str
    target_type: str
    target_id: str
    org_id: UUID | None
    actor_user_id: int | None
    data: Dict[str, Any]


def _json_safe(data: Dict[str, Any]) -> Dict[str, Any]:
    # UUIDs, datetimes and Decimals in payloads are stored as strings
    return json.loads(json.dumps(data, cls=DjangoJSONEncoder))


class AuditService:
    """
    Central audit writer. Persists into AuditLog (append-only).
    """

    @staticmethod
    @transaction.atomic
    def log(
        *,
        action: str,
        target_type: str,
        target_id: UUID | str | None,
        org_id: UUID | None,
        actor_user_id: int | None,
        data: Optional[Dict[str, Any]] = None,
    ) -> AuditRecord:
        data = _json_safe(data or {})

        entry = AuditLog.objects.create(
            org_id=org_id,
            actor_user_id=actor_user_id,
            action=action,
            target_type=target_type,
            target_id=str(target_id) if target_id is not None else "",
            data=data,
        )

        return AuditRecord(
            id=entry.id,
            action=action,
            target_type=target_type,
            target_id=entry.target_id,
            org_id=org_id,
            actor_user_id=actor_user_id,
            data=data,
        )
