# mos_core/audit/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import viewsets
from rest_framework.exceptions import ValidationError

from mos_core.audit.api.serializers import AuditLogSerializer
from mos_core.audit.models import AuditLog
from mos_core.audit.selectors import list_audit_logs
from mos_core.common.api.pagination import paginate
from mos_core.common.permissions import OrgRolePermission
from mos_core.iam.roles import ADMIN_ROLES


class AuditLogPermission(OrgRolePermission):
    allowed_roles_per_action = {
        "list": ADMIN_ROLES,
    }


class AuditLogViewSet(viewsets.GenericViewSet):
    """
    Audit trail of the active org (ADMIN/OWNER).
    """
    permission_classes = [AuditLogPermission]
    serializer_class = AuditLogSerializer
    queryset = AuditLog.objects.none()

    @extend_schema(
        tags=["Audit"],
        responses={200: AuditLogSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="action", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="target_type", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="target_id", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="actor_user_id", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        ctx = request.org_context

        actor_raw = request.query_params.get("actor_user_id")
        actor_user_id = None
        if actor_raw not in (None, ""):
            try:
                actor_user_id = int(actor_raw)
            except ValueError:
                raise ValidationError({"actor_user_id": "Invalid actor_user_id (int expected)"})

        qs = list_audit_logs(
            org_id=ctx.org_id,
            action=request.query_params.get("action") or None,
            target_type=request.query_params.get("target_type") or None,
            target_id=request.query_params.get("target_id") or None,
            actor_user_id=actor_user_id,
        )
        return paginate(request, qs, AuditLogSerializer)
