# mos_core/students/services.py
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Iterable, Optional
from uuid import UUID

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from mos_core.audit.services import AuditService
from mos_core.iam.models import MembershipRole
from mos_core.iam.services.membership import ensure_membership, is_user_member_of_org
from mos_core.iam.services.users import get_or_create_user_by_email
from mos_core.students.claims import claim_code_expiry, generate_unique_claim_code
from mos_core.students.models import Class, ClaimStatus, Student, StudentClass

logger = logging.getLogger(__name__)


def _classes_for_org(*, org_id: UUID, class_ids: Iterable[UUID]) -> list[Class]:
    ids = list(dict.fromkeys(class_ids))
    if not ids:
        return []
    classes = list(Class.objects.filter(org_id=org_id, id__in=ids, is_archived=False))
    if len(classes) != len(ids):
        raise ValidationError({"class_ids": "One or more classes were not found."})
    return classes


def _is_teaching_member(user_id: int, org_id: UUID) -> bool:
    return is_user_member_of_org(
        user_id=user_id, org_id=org_id, roles=(MembershipRole.ADMIN, MembershipRole.STAFF)
    )


class ClassService:
    """
    All Class mutations live here (write-model boundary).
    """

    @staticmethod
    @transaction.atomic
    def create(
        *,
        org_id: UUID,
        name: str,
        monthly_fee_p: int = 0,
        fee_due_day: Optional[int] = None,
        description: str = "",
        teacher_id: Optional[int] = None,
        actor_user_id: Optional[int] = None,
    ) -> Class:
        name = (name or "").strip()
        if not name:
            raise ValidationError({"name": "This field is required."})
        if teacher_id is not None and not _is_teaching_member(teacher_id, org_id):
            raise ValidationError({"teacher_id": "Teacher must be an admin or staff member of this organisation."})

        obj = Class.objects.create(
            org_id=org_id,
            name=name,
            monthly_fee_p=monthly_fee_p or 0,
            fee_due_day=fee_due_day,
            description=description or "",
            teacher_id=teacher_id,
        )

        AuditService.log(
            action="CREATE_CLASS",
            target_type="Class",
            target_id=obj.id,
            org_id=org_id,
            actor_user_id=actor_user_id,
            data={"name": name, "monthly_fee_p": obj.monthly_fee_p},
        )
        return obj

    @staticmethod
    @transaction.atomic
    def update(*, org_id: UUID, class_id: UUID, changes: dict[str, Any], actor_user_id: Optional[int]) -> Class:
        obj = Class.objects.select_for_update().get(org_id=org_id, id=class_id)

        teacher_id = changes.get("teacher_id")
        if teacher_id is not None and not _is_teaching_member(teacher_id, org_id):
            raise ValidationError({"teacher_id": "Teacher must be an admin or staff member of this organisation."})

        update_fields: list[str] = []
        for field_name in ("name", "description", "monthly_fee_p", "fee_due_day", "teacher_id"):
            if field_name in changes and getattr(obj, field_name) != changes[field_name]:
                setattr(obj, field_name, changes[field_name])
                update_fields.append(field_name)

        if not update_fields:
            return obj

        obj.save(update_fields=update_fields + ["updated_at"])
        AuditService.log(
            action="UPDATE_CLASS",
            target_type="Class",
            target_id=obj.id,
            org_id=org_id,
            actor_user_id=actor_user_id,
            data={"fields": update_fields},
        )
        return obj

    @staticmethod
    @transaction.atomic
    def set_archived(*, org_id: UUID, class_id: UUID, archived: bool, actor_user_id: Optional[int]) -> Class:
        obj = Class.objects.select_for_update().get(org_id=org_id, id=class_id)
        if obj.is_archived == archived:
            return obj

        obj.is_archived = archived
        obj.archived_at = timezone.now() if archived else None
        obj.save(update_fields=["is_archived", "archived_at", "updated_at"])

        AuditService.log(
            action="ARCHIVE_CLASS" if archived else "UNARCHIVE_CLASS",
            target_type="Class",
            target_id=obj.id,
            org_id=org_id,
            actor_user_id=actor_user_id,
            data={"name": obj.name},
        )
        return obj


class StudentService:
    """
    All Student mutations live here (write-model boundary).
    """

    @staticmethod
    def attach_parent(*, org_id: UUID, parent_email: str):
        parent, _ = get_or_create_user_by_email(parent_email)
        ensure_membership(user_id=parent.id, org_id=org_id, role=MembershipRole.PARENT)
        return parent

    @staticmethod
    @transaction.atomic
    def create(
        *,
        org_id: UUID,
        first_name: str,
        last_name: str,
        dob: Optional[date] = None,
        notes: str = "",
        class_ids: Iterable[UUID] = (),
        parent_email: str = "",
        actor_user_id: Optional[int] = None,
    ) -> Student:
        first_name = (first_name or "").strip()
        last_name = (last_name or "").strip()
        if not first_name:
            raise ValidationError({"first_name": "This field is required."})
        if not last_name:
            raise ValidationError({"last_name": "This field is required."})

        classes = _classes_for_org(org_id=org_id, class_ids=class_ids)

        parent = None
        if parent_email:
            parent = StudentService.attach_parent(org_id=org_id, parent_email=parent_email)

        student = Student.objects.create(
            org_id=org_id,
            first_name=first_name,
            last_name=last_name,
            dob=dob,
            notes=notes or "",
            primary_parent=parent,
            claim_code=generate_unique_claim_code(),
            claim_code_expires_at=claim_code_expiry(),
            claim_status=ClaimStatus.NOT_CLAIMED,
        )
        StudentClass.objects.bulk_create(
            [StudentClass(org_id=org_id, student=student, klass=c) for c in classes]
        )

        AuditService.log(
            action="CREATE_STUDENT",
            target_type="Student",
            target_id=student.id,
            org_id=org_id,
            actor_user_id=actor_user_id,
            data={
                "name": student.full_name,
                "class_ids": [c.id for c in classes],
                "primary_parent_id": getattr(parent, "id", None),
            },
        )
        return student

    @staticmethod
    @transaction.atomic
    def update(*, org_id: UUID, student_id: UUID, changes: dict[str, Any], actor_user_id: Optional[int]) -> Student:
        student = Student.objects.select_for_update().get(org_id=org_id, id=student_id)

        update_fields: list[str] = []
        for field_name in ("first_name", "last_name", "dob", "notes"):
            if field_name in changes and getattr(student, field_name) != changes[field_name]:
                setattr(student, field_name, changes[field_name])
                update_fields.append(field_name)

        if "class_ids" in changes:
            StudentService.set_classes(
                org_id=org_id,
                student_id=student.id,
                class_ids=changes["class_ids"],
                actor_user_id=actor_user_id,
            )

        if update_fields:
            student.save(update_fields=update_fields + ["updated_at"])
            AuditService.log(
                action="UPDATE_STUDENT",
                target_type="Student",
                target_id=student.id,
                org_id=org_id,
                actor_user_id=actor_user_id,
                data={"fields": update_fields},
            )
        return student

    @staticmethod
    @transaction.atomic
    def set_classes(
        *,
        org_id: UUID,
        student_id: UUID,
        class_ids: Iterable[UUID],
        actor_user_id: Optional[int],
    ) -> list[UUID]:
        """
        Replace the student's enrollments with exactly `class_ids`.
        """
        student = Student.objects.select_for_update().get(org_id=org_id, id=student_id)
        wanted = {c.id: c for c in _classes_for_org(org_id=org_id, class_ids=class_ids)}
        current = set(StudentClass.objects.filter(student=student).values_list("klass_id", flat=True))

        to_add = [wanted[cid] for cid in wanted if cid not in current]
        to_remove = [cid for cid in current if cid not in wanted]

        if to_remove:
            StudentClass.objects.filter(student=student, klass_id__in=to_remove).delete()
        if to_add:
            StudentClass.objects.bulk_create(
                [StudentClass(org_id=org_id, student=student, klass=c) for c in to_add]
            )

        if to_add or to_remove:
            AuditService.log(
                action="UPDATE_STUDENT_CLASSES",
                target_type="Student",
                target_id=student.id,
                org_id=org_id,
                actor_user_id=actor_user_id,
                data={"added": [c.id for c in to_add], "removed": to_remove},
            )
        return list(wanted)

    @staticmethod
    @transaction.atomic
    def enroll(*, org_id: UUID, student_id: UUID, class_id: UUID, actor_user_id: Optional[int]) -> StudentClass:
        student = Student.objects.get(org_id=org_id, id=student_id)
        klass = Class.objects.get(org_id=org_id, id=class_id, is_archived=False)

        enrollment, created = StudentClass.objects.get_or_create(org_id=org_id, student=student, klass=klass)
        if created:
            AuditService.log(
                action="ENROLL_STUDENT",
                target_type="Student",
                target_id=student.id,
                org_id=org_id,
                actor_user_id=actor_user_id,
                data={"class_id": klass.id},
            )
        return enrollment

    @staticmethod
    @transaction.atomic
    def set_archived(*, org_id: UUID, student_id: UUID, archived: bool, actor_user_id: Optional[int]) -> Student:
        student = Student.objects.select_for_update().get(org_id=org_id, id=student_id)
        if student.is_archived == archived:
            return student

        student.is_archived = archived
        student.archived_at = timezone.now() if archived else None
        student.save(update_fields=["is_archived", "archived_at", "updated_at"])

        AuditService.log(
            action="ARCHIVE_STUDENT" if archived else "UNARCHIVE_STUDENT",
            target_type="Student",
            target_id=student.id,
            org_id=org_id,
            actor_user_id=actor_user_id,
            data={"name": student.full_name},
        )
        logger.info("Student %s archived=%s", student.id, archived)
        return student
