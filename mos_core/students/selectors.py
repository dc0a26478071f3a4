# mos_core/students/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import Count, Q, QuerySet

from mos_core.students.models import Class, ParentStudentLink, Student


def classes_qs(*, org_id: UUID, include_archived: bool = False) -> QuerySet[Class]:
    qs = Class.objects.for_org(org_id)
    if not include_archived:
        qs = qs.filter(is_archived=False)
    return qs.annotate(
        student_count=Count("enrollments", filter=Q(enrollments__student__is_archived=False), distinct=True),
    ).order_by("name")


def students_qs(*, org_id: UUID) -> QuerySet[Student]:
    return Student.objects.for_org(org_id).prefetch_related("classes")


def students_filtered(
    *,
    org_id: UUID,
    class_id: UUID | None = None,
    search: str | None = None,
    claim_status: str | None = None,
    include_archived: bool = False,
) -> QuerySet[Student]:
    qs = students_qs(org_id=org_id).order_by("last_name", "first_name")

    if not include_archived:
        qs = qs.filter(is_archived=False)

    if class_id:
        qs = qs.filter(enrollments__klass_id=class_id)

    if claim_status:
        qs = qs.filter(claim_status=claim_status)

    if search:
        qs = qs.filter(Q(first_name__icontains=search) | Q(last_name__icontains=search))

    return qs.distinct()


def students_for_parent(*, org_id: UUID, parent_id: int) -> QuerySet[Student]:
    """
    Children visible to a parent: verified links plus primary-parent students.
    """
    linked = ParentStudentLink.objects.filter(
        org_id=org_id,
        parent_id=parent_id,
        claimed_at__isnull=False,
    ).values("student_id")
    return (
        students_qs(org_id=org_id)
        .filter(is_archived=False)
        .filter(Q(id__in=linked) | Q(primary_parent_id=parent_id))
        .order_by("last_name", "first_name")
        .distinct()
    )


def class_student_ids(*, org_id: UUID, class_id: UUID) -> set[UUID]:
    return set(
        Student.objects.filter(org_id=org_id, enrollments__klass_id=class_id, is_archived=False)
        .values_list("id", flat=True)
    )
