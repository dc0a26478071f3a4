# mos_core/iam/api/me.py

from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from mos_core.iam.api.auth import AuthCookies
from mos_core.iam.api.schema_serializers import (
    MeResponseSerializer,
    OrgSwitchRequestSerializer,
    OrgSwitchResponseSerializer,
)
from mos_core.iam.scope import NOT_MEMBER_MSG, OrgContext, get_org_context
from mos_core.iam.services.membership import get_membership, list_user_orgs
from mos_core.iam import roles
from mos_core.orgs.models import Org


def user_payload(user) -> dict:
    return {
        "id": user.id,
        "username": user.get_username(),
        "email": user.email or None,
        "name": user.get_full_name(),
        "is_superuser": bool(user.is_superuser),
    }


def active_org_payload(ctx: OrgContext | None) -> dict | None:
    if ctx is None:
        return None
    return {
        "org_id": str(ctx.org_id),
        "role": ctx.role,
        "staff_subrole": ctx.staff_subrole,
        "org_status": ctx.org_status,
    }


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(responses={200: MeResponseSerializer}, tags=["IAM"])
    def get(self, request):
        """
        Returns user info + memberships + the resolved active org.
        X-Org-Id is optional here; if provided it must be valid and the user a member (400/403).
        """
        ctx = get_org_context(request)
        return Response(
            {
                "user": user_payload(request.user),
                "memberships": list_user_orgs(request.user.id),
                "active_org": active_org_payload(ctx),
            },
            status=status.HTTP_200_OK,
        )

    @extend_schema(request=OrgSwitchRequestSerializer, responses={200: OrgSwitchResponseSerializer}, tags=["IAM"])
    def post(self, request):
        """
        Switch active org.
        Membership is checked here; the choice is persisted in the HttpOnly mos_org cookie.
        """
        ser = OrgSwitchRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        org_id = ser.validated_data["org_id"]

        user = request.user
        membership = get_membership(user_id=user.id, org_id=org_id)
        if membership is not None:
            ctx = OrgContext(
                user_id=user.id,
                org_id=org_id,
                org_status=membership.org.status,
                role=roles.ROLE_OWNER if user.is_superuser else membership.role,
                staff_subrole=membership.staff_subrole or None,
            )
        else:
            org = Org.objects.filter(id=org_id).only("status").first() if user.is_superuser else None
            if org is None:
                raise PermissionDenied(NOT_MEMBER_MSG)
            ctx = OrgContext(user_id=user.id, org_id=org_id, org_status=org.status, role=roles.ROLE_OWNER)

        res = Response(
            {"message": "Organisation switched successfully", "active_org": active_org_payload(ctx)},
            status=status.HTTP_200_OK,
        )
        cookies = AuthCookies()
        res.set_cookie(
            cookies.org,
            str(org_id),
            max_age=60 * 60 * 24 * 365,
            httponly=True,
            secure=cookies.secure,
            samesite=cookies.samesite,
            path="/",
        )
        return res
