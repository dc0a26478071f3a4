# mos_core/students/api/views.py
from __future__ import annotations

from dataclasses import asdict
from uuid import UUID

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from mos_core.common.api.pagination import paginate
from mos_core.common.api.routing import UUID_PATTERN
from mos_core.common.permissions import OrgRolePermission
from mos_core.common.throttling import StrictRateThrottle, UploadRateThrottle
from mos_core.iam.roles import ADMIN_ROLES, ALL_ROLES, ROLE_PARENT, STAFF_ROLES
from mos_core.students import claims
from mos_core.students.api.serializers import (
    ArchiveSerializer,
    BulkConfirmSerializer,
    BulkUploadFileSerializer,
    ClaimRequestSerializer,
    ClaimResponseSerializer,
    ClaimStudentPublicSerializer,
    ClaimValidateRequestSerializer,
    ClaimValidateResponseSerializer,
    ClaimVerifySerializer,
    ClassSerializer,
    ClassWriteSerializer,
    EnrollSerializer,
    ParentStudentSerializer,
    StudentCreateSerializer,
    StudentSerializer,
    StudentUpdateSerializer,
)
from mos_core.students.csv_import import confirm_import, preview_csv
from mos_core.students.models import Class, Student
from mos_core.students.selectors import classes_qs, students_filtered, students_for_parent
from mos_core.students.services import ClassService, StudentService


def _uuid_or_none(value: str | None, field_name: str) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError({field_name: "Invalid UUID"})


def _truthy(value: str | None) -> bool:
    return (value or "").lower() in ("1", "true", "yes")


class ClassPermission(OrgRolePermission):
    allowed_roles_per_action = {
        "list": STAFF_ROLES,
        "retrieve": STAFF_ROLES,
        "create": STAFF_ROLES,
        "partial_update": STAFF_ROLES,
        "archive": STAFF_ROLES,
    }
    permission_per_action = {
        "list": "view_all_classes",
        "retrieve": "view_all_classes",
        "create": "manage_classes",
        "partial_update": "manage_classes",
        "archive": "manage_classes",
    }


class ClassViewSet(viewsets.GenericViewSet):
    """
    Classes of the active org.
    """
    permission_classes = [ClassPermission]
    lookup_value_regex = UUID_PATTERN
    serializer_class = ClassSerializer
    queryset = Class.objects.none()

    @extend_schema(
        tags=["Classes"],
        responses={200: ClassSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="include_archived", type=OpenApiTypes.BOOL, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        ctx = request.org_context
        qs = classes_qs(org_id=ctx.org_id, include_archived=_truthy(request.query_params.get("include_archived")))
        return paginate(request, qs, ClassSerializer)

    @extend_schema(tags=["Classes"], responses={200: ClassSerializer})
    def retrieve(self, request, pk=None):
        ctx = request.org_context
        obj = classes_qs(org_id=ctx.org_id, include_archived=True).get(id=UUID(str(pk)))
        return Response(ClassSerializer(obj).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Classes"], request=ClassWriteSerializer, responses={201: ClassSerializer})
    def create(self, request):
        ctx = request.org_context

        ser = ClassWriteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        obj = ClassService.create(org_id=ctx.org_id, actor_user_id=request.user.id, **ser.validated_data)
        return Response(ClassSerializer(obj).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Classes"], request=ClassWriteSerializer, responses={200: ClassSerializer})
    def partial_update(self, request, pk=None):
        ctx = request.org_context

        ser = ClassWriteSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        obj = ClassService.update(
            org_id=ctx.org_id,
            class_id=UUID(str(pk)),
            changes=ser.validated_data,
            actor_user_id=request.user.id,
        )
        return Response(ClassSerializer(obj).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Classes"], request=ArchiveSerializer, responses={200: ClassSerializer})
    @action(detail=True, methods=["post"], url_path="archive")
    def archive(self, request, pk=None):
        ctx = request.org_context

        ser = ArchiveSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        obj = ClassService.set_archived(
            org_id=ctx.org_id,
            class_id=UUID(str(pk)),
            archived=ser.validated_data["archived"],
            actor_user_id=request.user.id,
        )
        return Response(ClassSerializer(obj).data, status=status.HTTP_200_OK)


class StudentPermission(OrgRolePermission):
    allowed_roles_per_action = {
        "list": ALL_ROLES,
        "retrieve": ALL_ROLES,
        "create": STAFF_ROLES,
        "partial_update": STAFF_ROLES,
        "enroll": STAFF_ROLES,
        "archive": STAFF_ROLES,
        "bulk_preview": STAFF_ROLES,
        "bulk_confirm": STAFF_ROLES,
        "regenerate_claim_code": ADMIN_ROLES,
    }
    permission_per_action = {
        "list": "manage_students",
        "retrieve": "manage_students",
        "create": "manage_students",
        "partial_update": "manage_students",
        "enroll": "manage_students",
        "archive": "manage_students",
        "bulk_preview": "manage_students",
        "bulk_confirm": "manage_students",
    }


class StudentViewSet(viewsets.GenericViewSet):
    """
    Students of the active org.
    Parents only ever see their own (verified) children.
    """
    permission_classes = [StudentPermission]
    lookup_value_regex = UUID_PATTERN
    serializer_class = StudentSerializer
    queryset = Student.objects.none()

    @extend_schema(
        tags=["Students"],
        responses={200: StudentSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="class", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="search", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="claim_status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="include_archived", type=OpenApiTypes.BOOL, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        ctx = request.org_context

        if ctx.role == ROLE_PARENT:
            qs = students_for_parent(org_id=ctx.org_id, parent_id=request.user.id)
            return paginate(request, qs, ParentStudentSerializer)

        qs = students_filtered(
            org_id=ctx.org_id,
            class_id=_uuid_or_none(request.query_params.get("class"), "class"),
            search=request.query_params.get("search") or None,
            claim_status=request.query_params.get("claim_status") or None,
            include_archived=_truthy(request.query_params.get("include_archived")),
        )
        return paginate(request, qs, StudentSerializer)

    @extend_schema(tags=["Students"], responses={200: StudentSerializer})
    def retrieve(self, request, pk=None):
        ctx = request.org_context
        student_id = UUID(str(pk))

        if ctx.role == ROLE_PARENT:
            obj = students_for_parent(org_id=ctx.org_id, parent_id=request.user.id).get(id=student_id)
            return Response(ParentStudentSerializer(obj).data, status=status.HTTP_200_OK)

        obj = students_filtered(org_id=ctx.org_id, include_archived=True).get(id=student_id)
        return Response(StudentSerializer(obj).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Students"], request=StudentCreateSerializer, responses={201: StudentSerializer})
    def create(self, request):
        ctx = request.org_context

        ser = StudentCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        student = StudentService.create(org_id=ctx.org_id, actor_user_id=request.user.id, **ser.validated_data)
        return Response(StudentSerializer(student).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Students"], request=StudentUpdateSerializer, responses={200: StudentSerializer})
    def partial_update(self, request, pk=None):
        ctx = request.org_context

        ser = StudentUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        student = StudentService.update(
            org_id=ctx.org_id,
            student_id=UUID(str(pk)),
            changes=ser.validated_data,
            actor_user_id=request.user.id,
        )
        return Response(StudentSerializer(student).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Students"], request=EnrollSerializer, responses={200: StudentSerializer})
    @action(detail=True, methods=["post"], url_path="enroll")
    def enroll(self, request, pk=None):
        ctx = request.org_context

        ser = EnrollSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        enrollment = StudentService.enroll(
            org_id=ctx.org_id,
            student_id=UUID(str(pk)),
            class_id=ser.validated_data["class_id"],
            actor_user_id=request.user.id,
        )
        return Response(StudentSerializer(enrollment.student).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Students"], request=ArchiveSerializer, responses={200: StudentSerializer})
    @action(detail=True, methods=["post"], url_path="archive")
    def archive(self, request, pk=None):
        ctx = request.org_context

        ser = ArchiveSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        student = StudentService.set_archived(
            org_id=ctx.org_id,
            student_id=UUID(str(pk)),
            archived=ser.validated_data["archived"],
            actor_user_id=request.user.id,
        )
        return Response(StudentSerializer(student).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Students"], request=None, responses={200: StudentSerializer})
    @action(detail=True, methods=["post"], url_path="regenerate-claim-code")
    def regenerate_claim_code(self, request, pk=None):
        ctx = request.org_context
        student = claims.regenerate_claim_code(
            org_id=ctx.org_id,
            student_id=UUID(str(pk)),
            actor_user_id=request.user.id,
        )
        return Response(StudentSerializer(student).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Students"], request=BulkUploadFileSerializer, responses={200: OpenApiTypes.OBJECT})
    @action(
        detail=False,
        methods=["post"],
        url_path="bulk-upload",
        parser_classes=[MultiPartParser, FormParser],
        throttle_classes=[UploadRateThrottle],
    )
    def bulk_preview(self, request):
        ctx = request.org_context

        ser = BulkUploadFileSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        rows = preview_csv(org_id=ctx.org_id, content=ser.validated_data["file"].read())
        valid = sum(1 for r in rows if r.is_valid)
        return Response(
            {
                "rows": [asdict(r) for r in rows],
                "total": len(rows),
                "valid": valid,
                "invalid": len(rows) - valid,
                "duplicates": sum(1 for r in rows if r.is_duplicate),
            },
            status=status.HTTP_200_OK,
        )

    @extend_schema(tags=["Students"], request=BulkConfirmSerializer, responses={200: OpenApiTypes.OBJECT})
    @action(
        detail=False,
        methods=["post"],
        url_path="bulk-upload/confirm",
        parser_classes=[JSONParser],
        throttle_classes=[UploadRateThrottle],
    )
    def bulk_confirm(self, request):
        ctx = request.org_context

        ser = BulkConfirmSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = confirm_import(
            org_id=ctx.org_id,
            rows=ser.validated_data["students"],
            actor_user_id=request.user.id,
        )
        return Response(result.as_dict(), status=status.HTTP_200_OK)


# -------------------------------------------------------------------
# Public claim flow
# -------------------------------------------------------------------

class ClaimValidateView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [StrictRateThrottle]

    @extend_schema(tags=["Claims"], request=ClaimValidateRequestSerializer, responses={200: ClaimValidateResponseSerializer})
    def post(self, request):
        ser = ClaimValidateRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        preview = claims.validate_claim_code(ser.validated_data["claim_code"], ser.validated_data["org_id"])
        return Response(
            {
                "student": ClaimStudentPublicSerializer(preview.student).data,
                "org": {"id": str(preview.org_id), "name": preview.org_name},
                "classes": preview.classes,
            },
            status=status.HTTP_200_OK,
        )


class ClaimView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [StrictRateThrottle]

    @extend_schema(tags=["Claims"], request=ClaimRequestSerializer, responses={201: ClaimResponseSerializer})
    def post(self, request):
        ser = ClaimRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = claims.claim_student(
            ser.validated_data["claim_code"],
            ser.validated_data["email"],
            ser.validated_data["password"],
        )
        return Response(ClaimResponseSerializer(asdict(result)).data, status=status.HTTP_201_CREATED)


class ClaimVerifyView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [StrictRateThrottle]

    @extend_schema(tags=["Claims"], request=ClaimVerifySerializer, responses={200: ClaimStudentPublicSerializer})
    def post(self, request):
        ser = ClaimVerifySerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        student = claims.verify_claim(ser.validated_data["token"])
        return Response(ClaimStudentPublicSerializer(student).data, status=status.HTTP_200_OK)
