# mos_core/billing/models.py
from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models

from mos_core.common.models import OrgScopedModel, OrgScopedQuerySet, TimeStampedModel


class InvoiceStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    PENDING = "PENDING", "Pending"
    PAID = "PAID", "Paid"
    OVERDUE = "OVERDUE", "Overdue"
    VOID = "VOID", "Void"


class PaymentMethod(models.TextChoices):
    CARD = "CARD", "Card"
    CASH = "CASH", "Cash"
    BANK_TRANSFER = "BANK_TRANSFER", "Bank transfer"
    DIRECT_DEBIT = "DIRECT_DEBIT", "Direct debit"


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    SUCCEEDED = "SUCCEEDED", "Succeeded"
    FAILED = "FAILED", "Failed"


class RecordStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    LATE = "LATE", "Late"
    OVERDUE = "OVERDUE", "Overdue"
    PAID = "PAID", "Paid"


class GiftAidStatus(models.TextChoices):
    YES = "YES", "Yes"
    NO = "NO", "No"
    NOT_SURE = "NOT_SURE", "Not sure"


class Invoice(OrgScopedModel):
    student = models.ForeignKey("students.Student", on_delete=models.CASCADE, related_name="invoices")
    # Billing month, "YYYY-MM"; one generated invoice per student per month.
    month = models.CharField(max_length=7, blank=True, db_index=True)
    amount_p = models.PositiveIntegerField()
    due_date = models.DateField()
    status = models.CharField(max_length=16, choices=InvoiceStatus.choices, default=InvoiceStatus.DRAFT, db_index=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    paid_method = models.CharField(max_length=16, choices=PaymentMethod.choices, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        db_table = "billing_invoice"
        indexes = [
            models.Index(fields=["org", "status"]),
            models.Index(fields=["org", "student", "month"]),
        ]


class PaymentQuerySet(OrgScopedQuerySet):
    def delete(self):
        raise PaymentImmutableError("Payments cannot be deleted.")


class PaymentImmutableError(Exception):
    pass


class Payment(OrgScopedModel):
    """
    One collection attempt. Amount, method and links are fixed at creation;
    only `status` moves afterwards (PENDING -> SUCCEEDED/FAILED) as the
    provider reports the outcome.
    """
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, null=True, blank=True, related_name="payments")
    method = models.CharField(max_length=16, choices=PaymentMethod.choices)
    amount_p = models.PositiveIntegerField()
    status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.PENDING, db_index=True)
    provider_id = models.CharField(max_length=128, blank=True, db_index=True)
    meta = models.JSONField(default=dict, blank=True)

    objects = PaymentQuerySet.as_manager()

    _MUTABLE_FIELDS = frozenset({"status", "updated_at"})

    class Meta:
        db_table = "billing_payment"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            update_fields = kwargs.get("update_fields")
            if update_fields is None or not set(update_fields) <= self._MUTABLE_FIELDS:
                raise PaymentImmutableError("Only a payment's status can change after creation.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise PaymentImmutableError("Payments cannot be deleted.")


class MonthlyPaymentRecord(OrgScopedModel):
    """
    Fee ledger: one row per student per class per month.
    """
    student = models.ForeignKey("students.Student", on_delete=models.CASCADE, related_name="payment_records")
    klass = models.ForeignKey(
        "students.Class",
        on_delete=models.CASCADE,
        related_name="payment_records",
        db_column="class_id",
    )
    month = models.CharField(max_length=7, db_index=True)
    amount_p = models.PositiveIntegerField()
    status = models.CharField(max_length=16, choices=RecordStatus.choices, default=RecordStatus.PENDING, db_index=True)
    method = models.CharField(max_length=16, choices=PaymentMethod.choices, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    reference = models.CharField(max_length=255, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        db_table = "billing_monthly_payment_record"
        constraints = [
            models.UniqueConstraint(
                fields=["org", "student", "klass", "month"],
                name="uq_payment_record_student_class_month",
            ),
        ]
        indexes = [
            models.Index(fields=["org", "month"]),
            models.Index(fields=["org", "status"]),
        ]


class WebhookEvent(TimeStampedModel):
    """
    Provider event ids already handled. Providers retry deliveries, so a
    unique (provider, event_id) row makes handling at-most-once.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    provider = models.CharField(max_length=32)
    event_id = models.CharField(max_length=255)
    event_type = models.CharField(max_length=128)

    class Meta:
        db_table = "billing_webhook_event"
        constraints = [
            models.UniqueConstraint(fields=["provider", "event_id"], name="uq_webhook_event_provider_event"),
        ]


class GiftAidDeclaration(OrgScopedModel):
    """
    A parent's Gift Aid answer for one madrasah. Only YES declarations with
    an address feed the HMRC schedule.
    """
    parent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="gift_aid_declarations",
    )
    status = models.CharField(
        max_length=16,
        choices=GiftAidStatus.choices,
        default=GiftAidStatus.NOT_SURE,
        db_index=True,
    )
    title = models.CharField(max_length=16, blank=True)
    house = models.CharField(max_length=255, blank=True)
    postcode = models.CharField(max_length=16, blank=True)
    declared_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "billing_gift_aid_declaration"
        constraints = [
            models.UniqueConstraint(fields=["org", "parent"], name="uq_gift_aid_org_parent"),
        ]
