# mos_core/billing/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from mos_core.audit.services import AuditService
from mos_core.billing.models import (
    Invoice,
    InvoiceStatus,
    MonthlyPaymentRecord,
    Payment,
    PaymentMethod,
    PaymentStatus,
    RecordStatus,
)
from mos_core.billing.payment_status import calculate_payment_status, parse_month
from mos_core.common.batch import BatchResult, run_per_org
from mos_core.notifications import email
from mos_core.orgs.models import Org, OrgStatus
from mos_core.students.models import Student, StudentClass

logger = logging.getLogger(__name__)

MANUAL_METHODS = (PaymentMethod.CASH, PaymentMethod.DIRECT_DEBIT)
CONFIRMATION_EMAIL_METHODS = (PaymentMethod.CASH, PaymentMethod.BANK_TRANSFER)


def current_month(today: date | None = None) -> str:
    today = today or timezone.localdate()
    return f"{today.year:04d}-{today.month:02d}"


def first_of_next_month(month: str) -> date:
    year, month_num = parse_month(month)
    if month_num == 12:
        return date(year + 1, 1, 1)
    return date(year, month_num + 1, 1)


def _check_month(month: str) -> str:
    try:
        parse_month(month)
    except ValueError:
        raise ValidationError({"month": "Invalid month format. Expected YYYY-MM"})
    return month


def org_tz(org: Org):
    return ZoneInfo(org.timezone or "Europe/London")


@dataclass(frozen=True)
class GenerateInvoicesResult:
    month: str
    created: int
    skipped: int
    invoices: list[dict] = field(default_factory=list)


@dataclass(frozen=True)
class RecordCashResult:
    payment: Payment
    invoice: Invoice


@dataclass(frozen=True)
class GenerateRecordsResult:
    month: str
    created: int
    existing: int


@dataclass(frozen=True)
class RecalculateResult:
    checked: int
    updated: int


class InvoiceService:
    """
    All Invoice/Payment writes for parent fees live here (write-model boundary).
    """

    @staticmethod
    @transaction.atomic
    def create(
        *,
        org_id: UUID,
        student_id: UUID,
        amount_p: int,
        due_date: date,
        notes: str = "",
        actor_user_id: Optional[int],
    ) -> Invoice:
        if amount_p <= 0:
            raise ValidationError({"amount_p": "Invoice amount must be greater than 0"})

        student = Student.objects.get(org_id=org_id, id=student_id)

        invoice = Invoice.objects.create(
            org_id=org_id,
            student=student,
            amount_p=amount_p,
            due_date=due_date,
            notes=notes or "",
            status=InvoiceStatus.DRAFT,
        )

        AuditService.log(
            action="CREATE_INVOICE",
            target_type="Invoice",
            target_id=invoice.id,
            org_id=org_id,
            actor_user_id=actor_user_id,
            data={"student_id": student.id, "amount_p": amount_p, "due_date": due_date},
        )
        return invoice

    @staticmethod
    @transaction.atomic
    def generate_monthly(
        *,
        org_id: UUID,
        month: Optional[str] = None,
        actor_user_id: Optional[int],
    ) -> GenerateInvoicesResult:
        """
        One DRAFT invoice per active student for `month`, for the sum of the
        fees of the classes they are enrolled in. Students already invoiced
        for the month are skipped, so re-running is safe.
        """
        month = _check_month(month or current_month())

        fees: dict[UUID, int] = {}
        enrollments = StudentClass.objects.filter(
            org_id=org_id,
            student__is_archived=False,
            klass__is_archived=False,
            klass__monthly_fee_p__gt=0,
        ).values_list("student_id", "klass__monthly_fee_p")
        for student_id, fee in enrollments:
            fees[student_id] = fees.get(student_id, 0) + fee

        if not fees:
            if not Student.objects.filter(org_id=org_id, is_archived=False).exists():
                raise ValidationError({"detail": "No students found"})
            raise ValidationError({"detail": "No classes with a monthly fee found"})

        already = set(
            Invoice.objects.filter(org_id=org_id, month=month, student_id__in=list(fees))
            .exclude(status=InvoiceStatus.VOID)
            .values_list("student_id", flat=True)
        )

        due = first_of_next_month(month)
        to_create = [
            Invoice(
                org_id=org_id,
                student_id=student_id,
                month=month,
                amount_p=amount_p,
                due_date=due,
                status=InvoiceStatus.DRAFT,
            )
            for student_id, amount_p in fees.items()
            if student_id not in already
        ]
        Invoice.objects.bulk_create(to_create)

        AuditService.log(
            action="GENERATE_MONTHLY_INVOICES",
            target_type="Invoice",
            target_id=None,
            org_id=org_id,
            actor_user_id=actor_user_id,
            data={"month": month, "invoice_count": len(to_create), "skipped": len(already)},
        )
        logger.info("Generated %s invoices for org %s month %s", len(to_create), org_id, month)

        return GenerateInvoicesResult(
            month=month,
            created=len(to_create),
            skipped=len(already),
            invoices=[
                {"id": inv.id, "student_id": inv.student_id, "amount_p": inv.amount_p}
                for inv in to_create
            ],
        )

    @staticmethod
    @transaction.atomic
    def record_cash(
        *,
        org_id: UUID,
        invoice_id: UUID,
        amount_p: int,
        method: str,
        notes: str = "",
        actor_user_id: Optional[int],
    ) -> RecordCashResult:
        if method not in MANUAL_METHODS:
            raise ValidationError({"method": "Method must be CASH or DIRECT_DEBIT"})
        if amount_p <= 0:
            raise ValidationError({"amount_p": "Amount must be greater than 0"})

        invoice = Invoice.objects.select_for_update().select_related("student").get(org_id=org_id, id=invoice_id)
        if invoice.status == InvoiceStatus.PAID:
            raise ValidationError({"detail": "Invoice already paid"})

        now = timezone.now()
        payment = Payment.objects.create(
            org_id=org_id,
            invoice=invoice,
            method=method,
            amount_p=amount_p,
            status=PaymentStatus.SUCCEEDED,
            provider_id=f"{method.lower()}_{int(now.timestamp() * 1000)}",
            meta={"notes": notes} if notes else {},
        )

        invoice.status = InvoiceStatus.PAID
        invoice.paid_at = now
        invoice.paid_method = method
        invoice.save(update_fields=["status", "paid_at", "paid_method", "updated_at"])

        AuditService.log(
            action="RECORD_CASH_PAYMENT",
            target_type="Payment",
            target_id=payment.id,
            org_id=org_id,
            actor_user_id=actor_user_id,
            data={
                "invoice_id": invoice.id,
                "amount_p": amount_p,
                "method": method,
                "student_name": invoice.student.full_name,
            },
        )
        return RecordCashResult(payment=payment, invoice=invoice)

    @staticmethod
    @transaction.atomic
    def apply_provider_outcome(*, org_id: UUID, invoice_id: UUID, provider_id: str, succeeded: bool,
                               amount_p: int, failure_reason: str = "") -> Payment:
        """
        Card payment outcome reported by the payment provider. The attempt is
        matched on provider_id; a missing attempt is created from the event.
        """
        invoice = Invoice.objects.select_for_update().get(org_id=org_id, id=invoice_id)
        new_status = PaymentStatus.SUCCEEDED if succeeded else PaymentStatus.FAILED

        payment = (
            Payment.objects.select_for_update()
            .filter(org_id=org_id, invoice=invoice, provider_id=provider_id)
            .first()
        )
        if payment is None:
            payment = Payment.objects.create(
                org_id=org_id,
                invoice=invoice,
                method=PaymentMethod.CARD,
                amount_p=amount_p,
                status=new_status,
                provider_id=provider_id,
                meta={"failure_reason": failure_reason} if failure_reason else {},
            )
        elif payment.status == PaymentStatus.PENDING:
            payment.status = new_status
            payment.save(update_fields=["status", "updated_at"])

        if succeeded and invoice.status != InvoiceStatus.PAID:
            invoice.status = InvoiceStatus.PAID
            invoice.paid_at = timezone.now()
            invoice.paid_method = PaymentMethod.CARD
            invoice.save(update_fields=["status", "paid_at", "paid_method", "updated_at"])

        AuditService.log(
            action="PAYMENT_SUCCEEDED" if succeeded else "PAYMENT_FAILED",
            target_type="Payment",
            target_id=payment.id,
            org_id=org_id,
            actor_user_id=None,
            data={
                "invoice_id": invoice.id,
                "amount_p": amount_p,
                "provider_id": provider_id,
                "reason": failure_reason,
            },
        )
        return payment


class PaymentRecordService:
    """
    Monthly fee ledger (MonthlyPaymentRecord) writes.
    """

    @staticmethod
    @transaction.atomic
    def generate_for_month(*, org_id: UUID, month: str, actor_user_id: Optional[int]) -> GenerateRecordsResult:
        """
        Ensures a record exists for every active enrollment in a fee-paying class.
        """
        month = _check_month(month)
        org = Org.objects.get(id=org_id)
        tz = org_tz(org)

        enrollments = StudentClass.objects.filter(
            org_id=org_id,
            student__is_archived=False,
            klass__is_archived=False,
            klass__monthly_fee_p__gt=0,
        ).select_related("klass")

        existing = set(
            MonthlyPaymentRecord.objects.filter(org_id=org_id, month=month).values_list("student_id", "klass_id")
        )

        to_create = []
        for sc in enrollments:
            if (sc.student_id, sc.klass_id) in existing:
                continue
            to_create.append(
                MonthlyPaymentRecord(
                    org_id=org_id,
                    student_id=sc.student_id,
                    klass_id=sc.klass_id,
                    month=month,
                    amount_p=sc.klass.monthly_fee_p,
                    status=calculate_payment_status(
                        RecordStatus.PENDING, month, sc.klass.fee_due_day or org.fee_due_day, None, tz=tz,
                    ),
                )
            )
        MonthlyPaymentRecord.objects.bulk_create(to_create)

        AuditService.log(
            action="GENERATE_PAYMENT_RECORDS",
            target_type="MonthlyPaymentRecord",
            target_id=None,
            org_id=org_id,
            actor_user_id=actor_user_id,
            data={"month": month, "created": len(to_create), "existing": len(existing)},
        )
        return GenerateRecordsResult(month=month, created=len(to_create), existing=len(existing))

    @staticmethod
    @transaction.atomic
    def update(
        *,
        org_id: UUID,
        record_id: UUID,
        changes: dict[str, Any],
        actor_user_id: Optional[int],
    ) -> MonthlyPaymentRecord:
        """
        Mark paid, add notes/reference. A PENDING cash or bank-transfer record
        marked PAID sends the parent a confirmation email after commit.
        """
        record = (
            MonthlyPaymentRecord.objects.select_for_update()
            .select_related("student__primary_parent", "klass", "org")
            .get(org_id=org_id, id=record_id)
        )
        previous_status = record.status
        now = timezone.now()

        update_fields: list[str] = []
        for name in ("notes", "reference", "method"):
            if name in changes:
                setattr(record, name, changes[name] or "")
                update_fields.append(name)

        if "paid_at" in changes:
            record.paid_at = changes["paid_at"] or now
            update_fields.append("paid_at")

        new_status = changes.get("status")
        if new_status:
            record.status = new_status
            update_fields.append("status")
            if new_status == RecordStatus.PAID and record.paid_at is None:
                record.paid_at = now
                update_fields.append("paid_at")
            elif new_status != RecordStatus.PAID and record.paid_at is not None:
                # paid_at always means PAID
                record.paid_at = None
                update_fields.append("paid_at")

        if not update_fields:
            return record

        record.save(update_fields=sorted(set(update_fields)) + ["updated_at"])

        AuditService.log(
            action="UPDATE_PAYMENT_RECORD",
            target_type="MonthlyPaymentRecord",
            target_id=record.id,
            org_id=org_id,
            actor_user_id=actor_user_id,
            data={
                "fields": sorted(set(update_fields)),
                "previous_status": previous_status,
                "status": record.status,
                "month": record.month,
            },
        )

        parent = record.student.primary_parent
        if (
            previous_status == RecordStatus.PENDING
            and record.status == RecordStatus.PAID
            and record.method in CONFIRMATION_EMAIL_METHODS
            and parent is not None
            and parent.email
        ):
            kwargs = dict(
                to=parent.email,
                org_name=record.org.name,
                student_name=record.student.full_name,
                month=record.month,
                amount_p=record.amount_p,
                method=record.method,
            )
            transaction.on_commit(lambda: email.send_payment_confirmation_email(**kwargs))

        return record

    @staticmethod
    @transaction.atomic
    def recalculate_statuses(*, org_id: UUID, now: datetime | None = None) -> RecalculateResult:
        """
        Re-runs the status engine over every unpaid record of one org.
        The class fee_due_day wins over the org's.
        """
        org = Org.objects.get(id=org_id)
        tz = org_tz(org)
        now = now or timezone.now()

        records = list(
            MonthlyPaymentRecord.objects.select_for_update()
            .filter(org_id=org_id)
            .exclude(status=RecordStatus.PAID)
            .select_related("klass")
        )

        changed: list[MonthlyPaymentRecord] = []
        for record in records:
            new_status = calculate_payment_status(
                record.status,
                record.month,
                record.klass.fee_due_day or org.fee_due_day,
                record.paid_at,
                now=now,
                tz=tz,
            )
            if new_status != record.status:
                record.status = new_status
                record.updated_at = now
                changed.append(record)

        if changed:
            MonthlyPaymentRecord.objects.bulk_update(changed, ["status", "updated_at"])
            logger.info("Payment statuses updated for org %s: %s of %s", org_id, len(changed), len(records))

        return RecalculateResult(checked=len(records), updated=len(changed))

    @staticmethod
    def recalculate_all(*, now: datetime | None = None) -> BatchResult:
        orgs = Org.objects.exclude(status=OrgStatus.DEACTIVATED).order_by("created_at")

        def _recalculate(org: Org) -> dict | None:
            result = PaymentRecordService.recalculate_statuses(org_id=org.id, now=now)
            if not result.updated:
                return None
            return {"status": "updated", "checked": result.checked, "updated": result.updated}

        return run_per_org(orgs, _recalculate, job="recalculate_payment_statuses")
