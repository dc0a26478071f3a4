# mos_core/orgs/api/views.py
from __future__ import annotations

from dataclasses import asdict
from uuid import UUID

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from mos_core.common.api.pagination import paginate
from mos_core.common.api.routing import UUID_PATTERN
from mos_core.common.permissions import IsPlatformOwner, OrgRolePermission
from mos_core.iam.roles import ACCESS_SETTINGS, ADMIN_ROLES, ALL_ROLES
from mos_core.orgs.api.serializers import (
    LifecycleResultSerializer,
    OrgCreateSerializer,
    OrgSerializer,
    OrgStatusActionSerializer,
    OrgUpdateSerializer,
    OwnerOrgSerializer,
)
from mos_core.orgs.lifecycle import OrgStatusManager
from mos_core.orgs.models import Org
from mos_core.orgs.selectors import get_org, orgs_filtered
from mos_core.orgs.services import OrgService, UsageService


class ActiveOrgPermission(OrgRolePermission):
    allowed_roles_per_action = {
        "list": ALL_ROLES,
        "partial_update": ADMIN_ROLES,
    }
    permission_per_action = {
        "partial_update": ACCESS_SETTINGS,
    }


class ActiveOrgView(APIView):
    """
    The caller's active org: profile, fee collection config and typed settings.
    """
    permission_classes = [ActiveOrgPermission]

    @extend_schema(tags=["Orgs"], responses={200: OrgSerializer})
    def get(self, request):
        org = get_org(org_id=request.org_context.org_id)
        return Response(OrgSerializer(org).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Orgs"], request=OrgUpdateSerializer, responses={200: OrgSerializer})
    def patch(self, request):
        ctx = request.org_context

        ser = OrgUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        org = OrgService.update(
            org_id=ctx.org_id,
            changes=ser.validated_data,
            actor_user_id=request.user.id,
        )
        return Response(OrgSerializer(org).data, status=status.HTTP_200_OK)


class OwnerOrgViewSet(viewsets.GenericViewSet):
    """
    Platform owner console:
    - list/retrieve/create orgs
    - pause / suspend / reactivate / deactivate
    - usage report run
    """
    permission_classes = [IsPlatformOwner]
    lookup_value_regex = UUID_PATTERN
    serializer_class = OwnerOrgSerializer
    queryset = Org.objects.none()

    @extend_schema(
        tags=["Owner"],
        responses={200: OwnerOrgSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="search", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        qs = orgs_filtered(
            status=request.query_params.get("status") or None,
            search=request.query_params.get("search") or None,
        )
        return paginate(request, qs, OwnerOrgSerializer)

    @extend_schema(tags=["Owner"], responses={200: OwnerOrgSerializer})
    def retrieve(self, request, pk=None):
        org = orgs_filtered().get(id=UUID(str(pk)))
        return Response(OwnerOrgSerializer(org).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Owner"], request=OrgCreateSerializer, responses={201: OwnerOrgSerializer})
    def create(self, request):
        ser = OrgCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        org = OrgService.create(
            name=data["name"],
            slug=data["slug"],
            timezone_name=data["timezone"],
            contact_email=data["contact_email"],
            admin_user_id=data["admin_user_id"],
            actor_user_id=request.user.id,
        )
        return Response(OwnerOrgSerializer(org).data, status=status.HTTP_201_CREATED)

    def _transition(self, request, pk, handler):
        ser = OrgStatusActionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = handler(
            org_id=UUID(str(pk)),
            actor_user_id=request.user.id,
            reason=ser.validated_data["reason"],
        )
        return Response(LifecycleResultSerializer(asdict(result)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Owner"], request=OrgStatusActionSerializer, responses={200: LifecycleResultSerializer})
    @action(detail=True, methods=["post"], url_path="pause")
    def pause(self, request, pk=None):
        return self._transition(request, pk, OrgStatusManager.pause)

    @extend_schema(tags=["Owner"], request=OrgStatusActionSerializer, responses={200: LifecycleResultSerializer})
    @action(detail=True, methods=["post"], url_path="suspend")
    def suspend(self, request, pk=None):
        return self._transition(request, pk, OrgStatusManager.suspend)

    @extend_schema(tags=["Owner"], request=OrgStatusActionSerializer, responses={200: LifecycleResultSerializer})
    @action(detail=True, methods=["post"], url_path="reactivate")
    def reactivate(self, request, pk=None):
        return self._transition(request, pk, OrgStatusManager.reactivate)

    @extend_schema(tags=["Owner"], request=OrgStatusActionSerializer, responses={200: LifecycleResultSerializer})
    @action(detail=True, methods=["post"], url_path="deactivate")
    def deactivate(self, request, pk=None):
        return self._transition(request, pk, OrgStatusManager.deactivate)

    @extend_schema(tags=["Owner"], request=None, responses={200: OpenApiTypes.OBJECT})
    @action(detail=False, methods=["post"], url_path="usage-report")
    def usage_report(self, request):
        result = UsageService.report_nightly()
        return Response(result.as_dict(), status=status.HTTP_200_OK)
