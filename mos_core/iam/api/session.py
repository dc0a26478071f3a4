# mos_core/iam/api/session.py

from __future__ import annotations

from django.utils import timezone
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from mos_core.iam.api.me import user_payload
from mos_core.iam.api.schema_serializers import SessionBootstrapResponseSerializer
from mos_core.iam.roles import allowed_actions, allowed_sections
from mos_core.iam.scope import get_org_context
from mos_core.iam.services.membership import list_user_orgs
from mos_core.orgs.models import Org


class SessionBootstrapView(APIView):
    """
    Frontend bootstrap endpoint.

    - Requires auth (cookie or header JWT).
    - X-Org-Id OPTIONAL.
      - If provided -> validated + membership enforced.
      - If not provided -> cookie, then oldest membership.
    - Returns everything needed for UI initialization (role, subrole, permission keys, visible sections and allowed actions).
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(
        responses={200: SessionBootstrapResponseSerializer},
        tags=["IAM"],
        parameters=[
            OpenApiParameter(name="X-Org-Id", location=OpenApiParameter.HEADER, required=False, type=str),
        ],
    )
    def get(self, request):
        memberships = list_user_orgs(request.user.id)
        ctx = get_org_context(request)

        active_org = None
        if ctx is not None:
            org = Org.objects.only("id", "name", "slug", "status").get(id=ctx.org_id)
            active_org = {"id": str(org.id), "name": org.name, "slug": org.slug, "status": org.status}

        return Response(
            {
                "user": user_payload(request.user),
                "memberships": memberships,
                "active_org": active_org,
                "role": ctx.role if ctx else None,
                "staff_subrole": ctx.staff_subrole if ctx else None,
                "permissions": ctx.permission_keys if ctx else [],
                "sections": allowed_sections(ctx.role, ctx.staff_subrole) if ctx else [],
                "actions": allowed_actions(ctx.role, ctx.staff_subrole) if ctx else [],
                "server_time": timezone.now(),
                "api_version": "0.1.0",
            }
        )
