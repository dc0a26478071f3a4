# mos_core/students/models.py
from __future__ import annotations

import uuid

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from mos_core.common.models import OrgScopedModel, TimeStampedModel


class ClaimStatus(models.TextChoices):
    NOT_CLAIMED = "NOT_CLAIMED", "Not claimed"
    PENDING_VERIFICATION = "PENDING_VERIFICATION", "Pending verification"
    CLAIMED = "CLAIMED", "Claimed"


class Class(OrgScopedModel):
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    teacher = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="taught_classes",
    )
    monthly_fee_p = models.PositiveIntegerField(default=0)
    # Overrides Org.fee_due_day when set.
    fee_due_day = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(28)],
    )
    is_archived = models.BooleanField(default=False, db_index=True)
    archived_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "students_class"
        indexes = [
            models.Index(fields=["org", "is_archived"]),
        ]
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class Student(OrgScopedModel):
    first_name = models.CharField(max_length=128)
    last_name = models.CharField(max_length=128)
    dob = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)

    primary_parent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="primary_students",
    )

    is_archived = models.BooleanField(default=False, db_index=True)
    archived_at = models.DateTimeField(null=True, blank=True)

    # Parent claim
    claim_code = models.CharField(max_length=16, unique=True, null=True, blank=True)
    claim_code_expires_at = models.DateTimeField(null=True, blank=True)
    claim_status = models.CharField(
        max_length=24,
        choices=ClaimStatus.choices,
        default=ClaimStatus.NOT_CLAIMED,
        db_index=True,
    )
    claimed_by_parent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="claimed_students",
    )

    classes = models.ManyToManyField(Class, through="StudentClass", related_name="students")

    class Meta:
        db_table = "students_student"
        indexes = [
            models.Index(fields=["org", "is_archived"]),
            models.Index(fields=["org", "last_name", "first_name"]),
        ]
        ordering = ["last_name", "first_name"]

    def __str__(self) -> str:
        return self.full_name

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class StudentClass(OrgScopedModel):
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="enrollments")
    klass = models.ForeignKey(Class, on_delete=models.CASCADE, related_name="enrollments", db_column="class_id")

    class Meta:
        db_table = "students_student_class"
        constraints = [
            models.UniqueConstraint(fields=["student", "klass"], name="uq_student_class"),
        ]


class ParentStudentLink(OrgScopedModel):
    parent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="student_links",
    )
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="parent_links")
    # Set once the parent's email is verified.
    claimed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "students_parent_student_link"
        constraints = [
            models.UniqueConstraint(fields=["parent", "student"], name="uq_parent_student"),
        ]


class ClaimVerification(TimeStampedModel):
    """
    Email verification token issued by claim_student.
    Single use; consumed by verify_claim.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    link = models.ForeignKey(ParentStudentLink, on_delete=models.CASCADE, related_name="verifications")
    email = models.EmailField()
    token = models.CharField(max_length=64, unique=True)
    expires_at = models.DateTimeField()
    used_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "students_claim_verification"