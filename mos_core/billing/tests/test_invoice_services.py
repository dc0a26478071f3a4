# mos_core/billing/tests/test_invoice_services.py
from datetime import date

import pytest
from rest_framework.exceptions import ValidationError

from mos_core.audit.models import AuditLog
from mos_core.billing.models import (
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentImmutableError,
    PaymentMethod,
    PaymentStatus,
)
from mos_core.billing.services import InvoiceService, first_of_next_month
from mos_core.students.models import Class, Student, StudentClass


@pytest.mark.django_db
def test_generate_monthly_sums_class_fees_and_is_idempotent(org, klass, student, admin_user):
    second = Class.objects.create(org=org, name="Arabic", monthly_fee_p=1500)
    StudentClass.objects.create(org=org, student=student, klass=second)
    free = Class.objects.create(org=org, name="Open Circle", monthly_fee_p=0)
    StudentClass.objects.create(org=org, student=student, klass=free)

    result = InvoiceService.generate_monthly(org_id=org.id, month="2025-03", actor_user_id=admin_user.id)
    assert result.created == 1
    assert result.skipped == 0

    inv = Invoice.objects.get(org=org, student=student, month="2025-03")
    assert inv.amount_p == 4000
    assert inv.status == InvoiceStatus.DRAFT
    assert inv.due_date == date(2025, 4, 1)

    again = InvoiceService.generate_monthly(org_id=org.id, month="2025-03", actor_user_id=admin_user.id)
    assert again.created == 0
    assert again.skipped == 1
    assert Invoice.objects.filter(org=org, month="2025-03").count() == 1

    assert AuditLog.objects.filter(org=org, action="GENERATE_MONTHLY_INVOICES").count() == 2


@pytest.mark.django_db
def test_generate_monthly_skips_archived_students(org, klass, student, admin_user):
    student.is_archived = True
    student.save(update_fields=["is_archived"])

    with pytest.raises(ValidationError):
        InvoiceService.generate_monthly(org_id=org.id, month="2025-03", actor_user_id=admin_user.id)


@pytest.mark.django_db
def test_generate_monthly_requires_fee_classes(org, admin_user):
    Student.objects.create(org=org, first_name="No", last_name="Class")
    with pytest.raises(ValidationError) as exc:
        InvoiceService.generate_monthly(org_id=org.id, month="2025-03", actor_user_id=admin_user.id)
    assert "fee" in str(exc.value.detail)


@pytest.mark.django_db
def test_generate_monthly_rejects_bad_month(org, student, admin_user):
    with pytest.raises(ValidationError):
        InvoiceService.generate_monthly(org_id=org.id, month="2025-3", actor_user_id=admin_user.id)


def test_first_of_next_month_rolls_over_year():
    assert first_of_next_month("2025-12") == date(2026, 1, 1)
    assert first_of_next_month("2025-01") == date(2025, 2, 1)


@pytest.mark.django_db
def test_record_cash_marks_invoice_paid(org, student, admin_user):
    inv = InvoiceService.create(
        org_id=org.id, student_id=student.id, amount_p=2500, due_date=date(2025, 2, 1), actor_user_id=admin_user.id,
    )

    result = InvoiceService.record_cash(
        org_id=org.id,
        invoice_id=inv.id,
        amount_p=2500,
        method=PaymentMethod.CASH,
        notes="Paid at the front desk",
        actor_user_id=admin_user.id,
    )

    inv.refresh_from_db()
    assert inv.status == InvoiceStatus.PAID
    assert inv.paid_method == PaymentMethod.CASH
    assert inv.paid_at is not None

    payment = result.payment
    assert payment.status == PaymentStatus.SUCCEEDED
    assert payment.provider_id.startswith("cash_")
    assert payment.meta == {"notes": "Paid at the front desk"}

    log = AuditLog.objects.get(org=org, action="RECORD_CASH_PAYMENT")
    assert log.target_id == str(payment.id)
    assert log.data["student_name"] == "Yusuf Khan"

    with pytest.raises(ValidationError):
        InvoiceService.record_cash(
            org_id=org.id, invoice_id=inv.id, amount_p=2500, method=PaymentMethod.CASH, actor_user_id=admin_user.id,
        )


@pytest.mark.django_db
def test_record_cash_rejects_card_and_other_orgs(org, other_org, student, admin_user):
    inv = InvoiceService.create(
        org_id=org.id, student_id=student.id, amount_p=2500, due_date=date(2025, 2, 1), actor_user_id=admin_user.id,
    )

    with pytest.raises(ValidationError):
        InvoiceService.record_cash(
            org_id=org.id, invoice_id=inv.id, amount_p=2500, method=PaymentMethod.CARD, actor_user_id=admin_user.id,
        )

    with pytest.raises(Invoice.DoesNotExist):
        InvoiceService.record_cash(
            org_id=other_org.id, invoice_id=inv.id, amount_p=2500, method=PaymentMethod.CASH, actor_user_id=None,
        )


@pytest.mark.django_db
def test_create_invoice_rejects_other_org_student(org, other_student, admin_user):
    with pytest.raises(Student.DoesNotExist):
        InvoiceService.create(
            org_id=org.id,
            student_id=other_student.id,
            amount_p=1000,
            due_date=date(2025, 2, 1),
            actor_user_id=admin_user.id,
        )


@pytest.mark.django_db
def test_payments_are_immutable_except_status(org, student):
    inv = Invoice.objects.create(org=org, student=student, amount_p=1000, due_date=date(2025, 2, 1))
    payment = Payment.objects.create(org=org, invoice=inv, method=PaymentMethod.CARD, amount_p=1000)

    payment.status = PaymentStatus.SUCCEEDED
    payment.save(update_fields=["status", "updated_at"])

    payment.amount_p = 1
    with pytest.raises(PaymentImmutableError):
        payment.save()
    with pytest.raises(PaymentImmutableError):
        payment.save(update_fields=["amount_p"])
    with pytest.raises(PaymentImmutableError):
        payment.delete()
    with pytest.raises(PaymentImmutableError):
        Payment.objects.filter(id=payment.id).delete()


@pytest.mark.django_db
def test_provider_outcome_updates_pending_attempt(org, student):
    inv = Invoice.objects.create(org=org, student=student, amount_p=2500, due_date=date(2025, 2, 1))
    Payment.objects.create(org=org, invoice=inv, method=PaymentMethod.CARD, amount_p=2500, provider_id="pi_1")

    payment = InvoiceService.apply_provider_outcome(
        org_id=org.id, invoice_id=inv.id, provider_id="pi_1", succeeded=True, amount_p=2500,
    )

    assert payment.status == PaymentStatus.SUCCEEDED
    assert Payment.objects.filter(invoice=inv).count() == 1
    inv.refresh_from_db()
    assert inv.status == InvoiceStatus.PAID
    assert inv.paid_method == PaymentMethod.CARD
    assert AuditLog.objects.filter(org=org, action="PAYMENT_SUCCEEDED").count() == 1
