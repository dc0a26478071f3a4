# mos_core/orgs/models.py
import uuid
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from mos_core.common.models import TimeStampedModel


class OrgStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    PAUSED = "PAUSED", "Paused"
    SUSPENDED = "SUSPENDED", "Suspended"
    DEACTIVATED = "DEACTIVATED", "Deactivated"


class StatusSource(models.TextChoices):
    PAYMENT = "PAYMENT", "Payment"
    MANUAL = "MANUAL", "Manual"


class SubscriptionStatus(models.TextChoices):
    NONE = "", "None"
    TRIALING = "trialing", "Trialing"
    ACTIVE = "active", "Active"
    PAST_DUE = "past_due", "Past due"
    CANCELED = "canceled", "Canceled"
    UNPAID = "unpaid", "Unpaid"
    INCOMPLETE = "incomplete", "Incomplete"


def default_org_settings() -> dict:
    return {
        "attendance_days": ["SATURDAY", "SUNDAY"],
        "reminder_days_before": 3,
        "gift_aid_enabled": False,
    }


class Org(TimeStampedModel):
    """
    A single madrasah account.
    Root of all scoping in the system.
    NOT an OrgScopedModel (it *is* the org).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=64, unique=True)
    timezone = models.CharField(max_length=64, default="Europe/London")
    contact_email = models.EmailField(blank=True)

    # Lifecycle
    status = models.CharField(
        max_length=16,
        choices=OrgStatus.choices,
        default=OrgStatus.ACTIVE,
        db_index=True,
    )
    status_source = models.CharField(max_length=16, choices=StatusSource.choices, blank=True)
    paused_at = models.DateTimeField(null=True, blank=True)
    paused_reason = models.CharField(max_length=500, blank=True)
    suspended_at = models.DateTimeField(null=True, blank=True)
    suspended_reason = models.CharField(max_length=500, blank=True)
    deactivated_at = models.DateTimeField(null=True, blank=True)
    deactivated_reason = models.CharField(max_length=500, blank=True)

    payment_failure_count = models.PositiveIntegerField(default=0)
    last_payment_at = models.DateTimeField(null=True, blank=True)
    auto_suspend_enabled = models.BooleanField(default=True)

    # Parent fee collection
    fee_due_day = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(28)],
    )
    card_payments_enabled = models.BooleanField(default=True)
    cash_payments_enabled = models.BooleanField(default=True)
    bank_transfer_enabled = models.BooleanField(default=False)
    payment_instructions = models.TextField(blank=True)

    # Platform billing (org -> platform)
    stripe_customer_id = models.CharField(max_length=64, blank=True, db_index=True)
    stripe_subscription_id = models.CharField(max_length=64, blank=True)
    subscription_status = models.CharField(
        max_length=16,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.NONE,
        blank=True,
    )
    billing_anniversary_day = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(28)],
    )
    last_billed_at = models.DateTimeField(null=True, blank=True)

    whatsapp_phone_number_id = models.CharField(max_length=64, blank=True, db_index=True)

    # Shape is fixed by OrgSettingsSerializer; validated before every write.
    settings = models.JSONField(default=default_org_settings, blank=True)

    class Meta:
        db_table = "orgs_org"
        indexes = [
            models.Index(fields=["status"]),
            models.Index(fields=["created_at"]),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.slug})"

    @property
    def is_active(self) -> bool:
        return self.status == OrgStatus.ACTIVE


class UsageReport(TimeStampedModel):
    """
    Nightly snapshot of billable usage (active students) per org.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    org = models.ForeignKey(Org, on_delete=models.CASCADE, related_name="usage_reports")
    period = models.DateField(db_index=True)
    student_count = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "orgs_usage_report"
        constraints = [
            models.UniqueConstraint(fields=["org", "period"], name="uq_usage_report_org_period"),
        ]
