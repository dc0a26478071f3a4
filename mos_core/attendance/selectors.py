# mos_core/attendance/selectors.py
from __future__ import annotations

from datetime import date
from uuid import UUID

from django.db.models import QuerySet

from mos_core.attendance.models import Attendance
from mos_core.students.models import Class, Student


def attendance_filtered(
    *,
    org_id: UUID,
    class_id: UUID | None = None,
    student_id: UUID | None = None,
    student_ids=None,
    date_from: date | None = None,
    date_to: date | None = None,
    status: str | None = None,
) -> QuerySet[Attendance]:
    qs = (
        Attendance.objects.for_org(org_id)
        .select_related("student", "klass")
        .order_by("-date", "student__last_name", "student__first_name")
    )

    if class_id:
        qs = qs.filter(klass_id=class_id)
    if student_id:
        qs = qs.filter(student_id=student_id)
    if student_ids is not None:
        qs = qs.filter(student_id__in=student_ids)
    if date_from:
        qs = qs.filter(date__gte=date_from)
    if date_to:
        qs = qs.filter(date__lte=date_to)
    if status:
        qs = qs.filter(status=status)

    return qs


def class_register(*, org_id: UUID, class_id: UUID, on: date) -> dict:
    """
    Roster of a class for one day, with the mark (or None) per student.
    """
    klass = Class.objects.select_related("teacher").get(org_id=org_id, id=class_id, is_archived=False)

    students = (
        Student.objects.filter(org_id=org_id, enrollments__klass_id=class_id, is_archived=False)
        .order_by("last_name", "first_name")
        .distinct()
    )
    marks = dict(
        Attendance.objects.filter(org_id=org_id, klass_id=class_id, date=on).values_list("student_id", "status")
    )

    return {
        "class": {
            "id": str(klass.id),
            "name": klass.name,
            "teacher_id": klass.teacher_id,
        },
        "date": on.isoformat(),
        "students": [
            {
                "id": str(s.id),
                "first_name": s.first_name,
                "last_name": s.last_name,
                "status": marks.get(s.id),
            }
            for s in students
        ],
    }
