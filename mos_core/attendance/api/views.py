# mos_core/attendance/api/views.py
from __future__ import annotations

from dataclasses import asdict
from datetime import date
from uuid import UUID

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from mos_core.attendance.api.serializers import (
    AttendanceSerializer,
    BulkAttendanceResultSerializer,
    BulkAttendanceSerializer,
)
from mos_core.attendance.models import Attendance
from mos_core.attendance.selectors import attendance_filtered, class_register
from mos_core.attendance.services import AttendanceService
from mos_core.common.api.pagination import paginate
from mos_core.common.api.routing import UUID_PATTERN
from mos_core.common.permissions import OrgRolePermission
from mos_core.iam.roles import ALL_ROLES, ROLE_PARENT, STAFF_ROLES
from mos_core.students.selectors import students_for_parent


def _uuid_or_none(value: str | None, field_name: str) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError({field_name: "Invalid UUID"})


def _date_or_none(value: str | None, field_name: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError({field_name: "Invalid date format. Expected YYYY-MM-DD"})


class AttendancePermission(OrgRolePermission):
    allowed_roles_per_action = {
        "list": ALL_ROLES,
        "bulk": STAFF_ROLES,
        "class_register": STAFF_ROLES,
    }
    permission_per_action = {
        "list": "view_all_data",
        "bulk": "mark_attendance",
        "class_register": "mark_attendance",
    }


class AttendanceViewSet(viewsets.GenericViewSet):
    """
    Attendance of the active org.
    - list (parents: own children only)
    - bulk: upsert a class register for one day
    - class/<id>: the register for one day
    """
    permission_classes = [AttendancePermission]
    lookup_value_regex = UUID_PATTERN
    serializer_class = AttendanceSerializer
    queryset = Attendance.objects.none()

    @extend_schema(
        tags=["Attendance"],
        responses={200: AttendanceSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="class", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="student", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_from", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_to", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        ctx = request.org_context
        qp = request.query_params

        student_ids = None
        if ctx.role == ROLE_PARENT:
            student_ids = students_for_parent(org_id=ctx.org_id, parent_id=request.user.id).values("id")

        qs = attendance_filtered(
            org_id=ctx.org_id,
            class_id=_uuid_or_none(qp.get("class"), "class"),
            student_id=_uuid_or_none(qp.get("student"), "student"),
            student_ids=student_ids,
            date_from=_date_or_none(qp.get("date_from"), "date_from"),
            date_to=_date_or_none(qp.get("date_to"), "date_to"),
            status=qp.get("status") or None,
        )
        return paginate(request, qs, AttendanceSerializer)

    @extend_schema(tags=["Attendance"], request=BulkAttendanceSerializer, responses={200: BulkAttendanceResultSerializer})
    @action(detail=False, methods=["post"], url_path="bulk")
    def bulk(self, request):
        ctx = request.org_context

        ser = BulkAttendanceSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        result = AttendanceService.bulk_upsert(
            org_id=ctx.org_id,
            class_id=data["class_id"],
            on=data["date"],
            marks=data["attendance"],
            actor_user_id=request.user.id,
        )
        return Response(BulkAttendanceResultSerializer(asdict(result)).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Attendance"],
        responses={200: OpenApiTypes.OBJECT},
        parameters=[
            OpenApiParameter(name="date", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=True),
        ],
    )
    @action(detail=False, methods=["get"], url_path=rf"class/(?P<class_id>{UUID_PATTERN})")
    def class_register(self, request, class_id=None):
        ctx = request.org_context

        on = _date_or_none(request.query_params.get("date"), "date")
        if on is None:
            raise ValidationError({"date": "Date parameter is required"})

        data = class_register(org_id=ctx.org_id, class_id=UUID(str(class_id)), on=on)
        return Response(data, status=status.HTTP_200_OK)
