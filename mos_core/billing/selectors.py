# mos_core/billing/selectors.py
from __future__ import annotations

from datetime import date
from uuid import UUID

from django.db.models import QuerySet

from mos_core.billing.models import Invoice, MonthlyPaymentRecord, Payment, PaymentStatus


def invoices_filtered(
    *,
    org_id: UUID,
    status: str | None = None,
    student_id: UUID | None = None,
    student_ids=None,
) -> QuerySet[Invoice]:
    qs = (
        Invoice.objects.for_org(org_id)
        .select_related("student")
        .order_by("-created_at")
    )
    if student_ids is not None:
        qs = qs.filter(student_id__in=student_ids)
    if student_id:
        qs = qs.filter(student_id=student_id)
    if status:
        qs = qs.filter(status=status)
    return qs


def get_invoice(*, org_id: UUID, invoice_id: UUID) -> Invoice:
    return Invoice.objects.select_related("student").get(org_id=org_id, id=invoice_id)


def payment_records_filtered(
    *,
    org_id: UUID,
    month: str | None = None,
    class_id: UUID | None = None,
    method: str | None = None,
    status: str | None = None,
    student_ids=None,
) -> QuerySet[MonthlyPaymentRecord]:
    qs = (
        MonthlyPaymentRecord.objects.for_org(org_id)
        .select_related("student", "klass")
        .order_by("-month", "student__last_name", "student__first_name")
    )
    if student_ids is not None:
        qs = qs.filter(student_id__in=student_ids)
    if month:
        qs = qs.filter(month=month)
    if class_id:
        qs = qs.filter(klass_id=class_id)
    if method:
        qs = qs.filter(method=method)
    if status:
        qs = qs.filter(status=status)
    return qs


def payments_for_export(
    *,
    org_id: UUID,
    date_from: date | None = None,
    date_to: date | None = None,
    class_id: UUID | None = None,
) -> QuerySet[Payment]:
    """
    Successful payments with their invoice, student, parent and classes loaded.
    """
    qs = (
        Payment.objects.filter(org_id=org_id, status=PaymentStatus.SUCCEEDED)
        .select_related("invoice__student__primary_parent")
        .prefetch_related("invoice__student__classes")
        .order_by("-created_at")
    )
    if date_from:
        qs = qs.filter(created_at__date__gte=date_from)
    if date_to:
        qs = qs.filter(created_at__date__lte=date_to)
    if class_id:
        qs = qs.filter(invoice__student__enrollments__klass_id=class_id).distinct()
    return qs
