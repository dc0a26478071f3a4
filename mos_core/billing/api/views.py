# mos_core/billing/api/views.py
from __future__ import annotations

import csv
from dataclasses import asdict
from datetime import date
from uuid import UUID

from django.http import HttpResponse
from django.utils import timezone
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.response import Response

from mos_core.billing.api.serializers import (
    GiftAidDeclarationSerializer,
    GiftAidDeclareSerializer,
    GenerateInvoicesResultSerializer,
    GenerateMonthlySerializer,
    GenerateRecordsResultSerializer,
    GenerateRecordsSerializer,
    InvoiceCreateSerializer,
    InvoiceSerializer,
    PaymentRecordSerializer,
    PaymentRecordUpdateSerializer,
    RecalculateResultSerializer,
    RecordCashResultSerializer,
    RecordCashSerializer,
)
from mos_core.billing import gift_aid
from mos_core.billing.models import GiftAidDeclaration, Invoice, MonthlyPaymentRecord, PaymentMethod
from mos_core.billing.payment_status import parse_month
from mos_core.billing.selectors import (
    get_invoice,
    invoices_filtered,
    payment_records_filtered,
    payments_for_export,
)
from mos_core.billing.services import InvoiceService, PaymentRecordService
from mos_core.common.api.pagination import paginate
from mos_core.common.api.routing import UUID_PATTERN
from mos_core.common.permissions import OrgRolePermission
from mos_core.iam.roles import ADMIN_ROLES, ALL_ROLES, ROLE_PARENT, STAFF_ROLES
from mos_core.students.selectors import students_for_parent

CSV_HEADERS = [
    "Student Name",
    "Parent Name",
    "Parent Email",
    "Payment Method",
    "Payment Date",
    "Amount",
    "Class",
]

METHOD_LABELS = {
    PaymentMethod.CARD: "Card Payment",
    PaymentMethod.CASH: "Cash",
    PaymentMethod.BANK_TRANSFER: "Bank Transfer",
    PaymentMethod.DIRECT_DEBIT: "Direct Debit",
}


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


def _month_or_none(value: str | None) -> str | None:
    if not value:
        return None
    try:
        parse_month(value)
    except ValueError:
        raise ValidationError({"month": "Invalid month format. Expected YYYY-MM"})
    return value


class InvoicePermission(OrgRolePermission):
    allowed_roles_per_action = {
        "list": ALL_ROLES,
        "retrieve": ALL_ROLES,
        "create": STAFF_ROLES,
        "generate_monthly": STAFF_ROLES,
        "record_cash": STAFF_ROLES,
    }
    permission_per_action = {
        "list": "view_invoices",
        "retrieve": "view_invoices",
        "create": "manage_invoices",
        "generate_monthly": "manage_invoices",
        "record_cash": "reconcile_payments",
    }


class InvoiceViewSet(viewsets.GenericViewSet):
    """
    Parent fee invoices of the active org.
    - list/retrieve (parents: own children only)
    - create, generate-monthly
    - record-cash: manual CASH/DIRECT_DEBIT payment
    """
    permission_classes = [InvoicePermission]
    lookup_value_regex = UUID_PATTERN
    serializer_class = InvoiceSerializer
    queryset = Invoice.objects.none()

    def _visible(self, request):
        ctx = request.org_context
        student_ids = None
        if ctx.role == ROLE_PARENT:
            student_ids = students_for_parent(org_id=ctx.org_id, parent_id=request.user.id).values("id")
        return ctx, student_ids

    @extend_schema(
        tags=["Invoices"],
        responses={200: InvoiceSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="student", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        ctx, student_ids = self._visible(request)
        qs = invoices_filtered(
            org_id=ctx.org_id,
            status=request.query_params.get("status") or None,
            student_id=_uuid_or_none(request.query_params.get("student"), "student"),
            student_ids=student_ids,
        )
        return paginate(request, qs, InvoiceSerializer)

    @extend_schema(tags=["Invoices"], responses={200: InvoiceSerializer})
    def retrieve(self, request, pk=None):
        ctx, student_ids = self._visible(request)
        if student_ids is None:
            obj = get_invoice(org_id=ctx.org_id, invoice_id=UUID(str(pk)))
        else:
            obj = invoices_filtered(org_id=ctx.org_id, student_ids=student_ids).get(id=UUID(str(pk)))
        return Response(InvoiceSerializer(obj).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Invoices"], request=InvoiceCreateSerializer, responses={201: InvoiceSerializer})
    def create(self, request):
        ctx = request.org_context

        ser = InvoiceCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        obj = InvoiceService.create(org_id=ctx.org_id, actor_user_id=request.user.id, **ser.validated_data)
        return Response(InvoiceSerializer(obj).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Invoices"], request=GenerateMonthlySerializer, responses={200: GenerateInvoicesResultSerializer})
    @action(detail=False, methods=["post"], url_path="generate-monthly")
    def generate_monthly(self, request):
        ctx = request.org_context

        ser = GenerateMonthlySerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = InvoiceService.generate_monthly(
            org_id=ctx.org_id,
            month=ser.validated_data["month"],
            actor_user_id=request.user.id,
        )
        return Response(GenerateInvoicesResultSerializer(asdict(result)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Invoices"], request=RecordCashSerializer, responses={200: RecordCashResultSerializer})
    @action(detail=True, methods=["post"], url_path="record-cash")
    def record_cash(self, request, pk=None):
        ctx = request.org_context

        ser = RecordCashSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = InvoiceService.record_cash(
            org_id=ctx.org_id,
            invoice_id=UUID(str(pk)),
            actor_user_id=request.user.id,
            **ser.validated_data,
        )
        return Response(
            RecordCashResultSerializer({"payment": result.payment, "invoice": result.invoice}).data,
            status=status.HTTP_200_OK,
        )


class PaymentRecordPermission(OrgRolePermission):
    allowed_roles_per_action = {
        "list": STAFF_ROLES,
        "partial_update": STAFF_ROLES,
        "generate": STAFF_ROLES,
        "recalculate": ADMIN_ROLES,
        "export": STAFF_ROLES,
    }
    permission_per_action = {
        "list": "view_invoices",
        "partial_update": "reconcile_payments",
        "generate": "manage_invoices",
        "export": "view_reports",
    }


class PaymentRecordViewSet(viewsets.GenericViewSet):
    """
    Monthly fee ledger of the active org.
    """
    permission_classes = [PaymentRecordPermission]
    lookup_value_regex = UUID_PATTERN
    serializer_class = PaymentRecordSerializer
    queryset = MonthlyPaymentRecord.objects.none()

    @extend_schema(
        tags=["Payments"],
        responses={200: PaymentRecordSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="month", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="class", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="method", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        ctx = request.org_context
        qp = request.query_params
        qs = payment_records_filtered(
            org_id=ctx.org_id,
            month=_month_or_none(qp.get("month")),
            class_id=_uuid_or_none(qp.get("class"), "class"),
            method=qp.get("method") or None,
            status=qp.get("status") or None,
        )
        return paginate(request, qs, PaymentRecordSerializer)

    @extend_schema(tags=["Payments"], request=PaymentRecordUpdateSerializer, responses={200: PaymentRecordSerializer})
    def partial_update(self, request, pk=None):
        ctx = request.org_context

        ser = PaymentRecordUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        obj = PaymentRecordService.update(
            org_id=ctx.org_id,
            record_id=UUID(str(pk)),
            changes=ser.validated_data,
            actor_user_id=request.user.id,
        )
        return Response(PaymentRecordSerializer(obj).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Payments"], request=GenerateRecordsSerializer, responses={200: GenerateRecordsResultSerializer})
    @action(detail=False, methods=["post"], url_path="generate")
    def generate(self, request):
        ctx = request.org_context

        ser = GenerateRecordsSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = PaymentRecordService.generate_for_month(
            org_id=ctx.org_id,
            month=ser.validated_data["month"],
            actor_user_id=request.user.id,
        )
        return Response(GenerateRecordsResultSerializer(asdict(result)).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Payments"], request=None, responses={200: RecalculateResultSerializer})
    @action(detail=False, methods=["post"], url_path="recalculate")
    def recalculate(self, request):
        ctx = request.org_context
        result = PaymentRecordService.recalculate_statuses(org_id=ctx.org_id)
        return Response(RecalculateResultSerializer(asdict(result)).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Payments"],
        responses={(200, "text/csv"): OpenApiTypes.STR},
        parameters=[
            OpenApiParameter(name="date_from", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_to", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="class", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    @action(detail=False, methods=["get"], url_path="export")
    def export(self, request):
        ctx = request.org_context
        qp = request.query_params

        payments = payments_for_export(
            org_id=ctx.org_id,
            date_from=_date_or_none(qp.get("date_from"), "date_from"),
            date_to=_date_or_none(qp.get("date_to"), "date_to"),
            class_id=_uuid_or_none(qp.get("class"), "class"),
        )

        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = f'attachment; filename="payments-{timezone.localdate().isoformat()}.csv"'

        writer = csv.writer(response)
        writer.writerow(CSV_HEADERS)
        for payment in payments:
            student = payment.invoice.student if payment.invoice else None
            parent = student.primary_parent if student else None
            classes = ", ".join(c.name for c in student.classes.all()) if student else ""
            writer.writerow([
                student.full_name if student else "Unknown",
                (parent.get_full_name() or parent.username) if parent else "Unknown",
                parent.email if parent else "",
                METHOD_LABELS.get(payment.method, payment.method),
                payment.created_at.date().isoformat(),
                f"{payment.amount_p / 100:.2f}",
                classes or "N/A",
            ])
        return response


def _required_date(value: str | None, field_name: str) -> date:
    parsed = _date_or_none(value, field_name)
    if parsed is None:
        raise ValidationError({field_name: "This query parameter is required."})
    return parsed


class GiftAidPermission(OrgRolePermission):
    allowed_roles_per_action = {
        "list": ADMIN_ROLES,
        "export": ADMIN_ROLES,
        "declaration": frozenset({ROLE_PARENT}),
    }


class GiftAidViewSet(viewsets.GenericViewSet):
    """
    Gift Aid of the active org.
    - declaration: the calling parent's own answer (GET/PUT)
    - list: every declaration (admins)
    - export: HMRC schedule CSV for a claim period (admins)
    """
    permission_classes = [GiftAidPermission]
    serializer_class = GiftAidDeclarationSerializer
    queryset = GiftAidDeclaration.objects.none()

    @extend_schema(
        tags=["Gift Aid"],
        responses={200: GiftAidDeclarationSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def list(self, request):
        ctx = request.org_context
        qs = GiftAidDeclaration.objects.for_org(ctx.org_id).select_related("parent")
        if request.query_params.get("status"):
            qs = qs.filter(status=request.query_params["status"])
        return paginate(request, qs.order_by("parent__last_name", "parent__first_name"), GiftAidDeclarationSerializer)

    @extend_schema(
        tags=["Gift Aid"],
        methods=["GET"],
        request=None,
        responses={200: GiftAidDeclarationSerializer},
    )
    @extend_schema(
        tags=["Gift Aid"],
        methods=["PUT"],
        request=GiftAidDeclareSerializer,
        responses={200: GiftAidDeclarationSerializer},
    )
    @action(detail=False, methods=["get", "put"], url_path="declaration")
    def declaration(self, request):
        ctx = request.org_context

        if request.method == "GET":
            obj = (
                GiftAidDeclaration.objects.for_org(ctx.org_id)
                .select_related("parent")
                .filter(parent_id=request.user.id)
                .first()
            )
            if obj is None:
                # Nothing declared yet
                obj = GiftAidDeclaration(id=None, org_id=ctx.org_id, parent=request.user)
            return Response(GiftAidDeclarationSerializer(obj).data, status=status.HTTP_200_OK)

        ser = GiftAidDeclareSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        obj = gift_aid.declare(
            org_id=ctx.org_id,
            parent_id=request.user.id,
            actor_user_id=request.user.id,
            **ser.validated_data,
        )
        return Response(GiftAidDeclarationSerializer(obj).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Gift Aid"],
        responses={(200, "text/csv"): OpenApiTypes.STR},
        parameters=[
            OpenApiParameter(name="start", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=True),
            OpenApiParameter(name="end", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=True),
        ],
    )
    @action(detail=False, methods=["get"], url_path="export")
    def export(self, request):
        ctx = request.org_context
        start = _required_date(request.query_params.get("start"), "start")
        end = _required_date(request.query_params.get("end"), "end")

        rows = gift_aid.build_schedule(org_id=ctx.org_id, start=start, end=end)
        if not rows:
            raise NotFound("No Gift Aid eligible payments in the selected period.")

        filename = f"Gift-Aid-Schedule-{start.isoformat()}-to-{end.isoformat()}.csv"
        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = f'attachment; filename="{filename}"'

        writer = csv.writer(response)
        writer.writerow(gift_aid.SCHEDULE_HEADERS)
        for item, row in enumerate(rows, start=1):
            writer.writerow(row.as_csv(item))
        return response
