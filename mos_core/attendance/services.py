# mos_core/attendance/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional
from uuid import UUID

from django.db import transaction
from rest_framework.exceptions import ValidationError

from mos_core.attendance.models import Attendance, AttendanceStatus
from mos_core.audit.services import AuditService
from mos_core.students.models import Class
from mos_core.students.selectors import class_student_ids

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BulkAttendanceResult:
    class_id: UUID
    date: date
    created: int
    updated: int


class AttendanceService:
    """
    All Attendance mutations live here (write-model boundary).
    """

    @staticmethod
    @transaction.atomic
    def bulk_upsert(
        *,
        org_id: UUID,
        class_id: UUID,
        on: date,
        marks: Iterable[dict],
        actor_user_id: Optional[int],
    ) -> BulkAttendanceResult:
        """
        marks: [{"student_id": UUID, "status": PRESENT|LATE|ABSENT}, ...]
        Class must belong to the org (404). Every student must be enrolled in it (400).
        """
        klass = Class.objects.get(org_id=org_id, id=class_id)

        by_student: dict[UUID, str] = {}
        for m in marks:
            if m["status"] not in AttendanceStatus.values:
                raise ValidationError({"attendance": f"Invalid status: {m['status']}"})
            # last mark for a student wins
            by_student[m["student_id"]] = m["status"]

        if not by_student:
            raise ValidationError({"attendance": "At least one attendance mark is required."})

        enrolled = class_student_ids(org_id=org_id, class_id=klass.id)
        unknown = sorted(str(sid) for sid in by_student if sid not in enrolled)
        if unknown:
            raise ValidationError({"attendance": f"Students not enrolled in this class: {', '.join(unknown)}"})

        existing = {
            a.student_id: a
            for a in Attendance.objects.select_for_update().filter(
                org_id=org_id, klass=klass, date=on, student_id__in=list(by_student)
            )
        }

        to_create: list[Attendance] = []
        to_update: list[Attendance] = []
        for student_id, mark in by_student.items():
            row = existing.get(student_id)
            if row is None:
                to_create.append(
                    Attendance(
                        org_id=org_id,
                        klass=klass,
                        student_id=student_id,
                        date=on,
                        status=mark,
                        marked_by_id=actor_user_id,
                    )
                )
            elif row.status != mark:
                row.status = mark
                row.marked_by_id = actor_user_id
                to_update.append(row)

        if to_create:
            Attendance.objects.bulk_create(to_create)
        for row in to_update:
            row.save(update_fields=["status", "marked_by", "updated_at"])

        AuditService.log(
            action="BULK_UPDATE_ATTENDANCE",
            target_type="Attendance",
            target_id=klass.id,
            org_id=org_id,
            actor_user_id=actor_user_id,
            data={
                "class_id": klass.id,
                "date": on,
                "record_count": len(by_student),
                "created": len(to_create),
                "updated": len(to_update),
            },
        )
        logger.info("Attendance marked for class %s on %s: %s records", klass.id, on, len(by_student))

        return BulkAttendanceResult(class_id=klass.id, date=on, created=len(to_create), updated=len(to_update))
