# mos_core/attendance/models.py
from __future__ import annotations

from django.conf import settings
from django.db import models

from mos_core.common.models import OrgScopedModel


class AttendanceStatus(models.TextChoices):
    PRESENT = "PRESENT", "Present"
    LATE = "LATE", "Late"
    ABSENT = "ABSENT", "Absent"


class Attendance(OrgScopedModel):
    """
    One mark per student per class per day. Re-marking updates in place.
    """
    klass = models.ForeignKey(
        "students.Class",
        on_delete=models.CASCADE,
        related_name="attendance",
        db_column="class_id",
    )
    student = models.ForeignKey("students.Student", on_delete=models.CASCADE, related_name="attendance")
    date = models.DateField(db_index=True)
    status = models.CharField(max_length=8, choices=AttendanceStatus.choices)
    marked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        db_table = "attendance_attendance"
        constraints = [
            models.UniqueConstraint(fields=["klass", "student", "date"], name="uq_attendance_class_student_date"),
        ]
        indexes = [
            models.Index(fields=["org", "date"]),
            models.Index(fields=["org", "student", "date"]),
        ]
