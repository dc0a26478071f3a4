# mos_core/students/claims.py
"""
Parent claim codes.

A student carries a short random code that staff hand to the family. The
parent redeems it publicly (no session): validate -> claim -> verify email.

    NOT_CLAIMED --claim--> PENDING_VERIFICATION --verify--> CLAIMED

Validation never mutates. Expired or already claimed codes are rejected
before any write.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from mos_core.audit.services import AuditService
from mos_core.common.api.exceptions import ConflictError
from mos_core.iam.models import MembershipRole
from mos_core.iam.services.membership import ensure_membership
from mos_core.iam.services.users import check_password_strength, get_or_create_user_by_email, normalize_email
from mos_core.notifications import email as mail
from mos_core.students.models import ClaimStatus, ClaimVerification, ParentStudentLink, Student

logger = logging.getLogger(__name__)

# No 0/O or 1/I/L.
CLAIM_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
_MAX_ATTEMPTS = 10

UNKNOWN_CODE_MSG = "Invalid claim code. Please check the code and try again."
WRONG_ORG_MSG = "Invalid claim code for this organisation."
EXPIRED_MSG = "This claim code has expired. Please contact the madrasah for a new code."
ALREADY_CLAIMED_MSG = "This student has already been claimed by a parent."


def generate_claim_code(length: int | None = None) -> str:
    length = length or int(getattr(settings, "CLAIM_CODE_LENGTH", 8))
    return "".join(secrets.choice(CLAIM_CODE_ALPHABET) for _ in range(length))


def generate_unique_claim_code() -> str:
    for _ in range(_MAX_ATTEMPTS):
        code = generate_claim_code()
        if not Student.objects.filter(claim_code=code).exists():
            return code
    raise ConflictError("Could not allocate a unique claim code. Try again.")


def claim_code_expiry(now: datetime | None = None) -> datetime:
    now = now or timezone.now()
    return now + timedelta(days=int(getattr(settings, "CLAIM_CODE_TTL_DAYS", 90)))


def normalize_code(code: str) -> str:
    return (code or "").strip().upper().replace("-", "").replace(" ", "")


@dataclass(frozen=True)
class ClaimPreview:
    student: Student
    org_id: UUID
    org_name: str
    classes: list[dict] = field(default_factory=list)


@dataclass(frozen=True)
class ClaimResult:
    student_id: UUID
    parent_user_id: int
    parent_created: bool
    claim_status: str


def _lookup(code: str, *, for_update: bool = False) -> Student:
    code = normalize_code(code)
    if not code:
        raise ValidationError({"claim_code": "Claim code is required."})

    qs = Student.objects.select_related("org")
    if for_update:
        qs = qs.select_for_update()
    student = qs.filter(claim_code=code).first()
    if student is None:
        raise NotFound(UNKNOWN_CODE_MSG)
    return student


def _check_claimable(student: Student, *, now: datetime | None = None) -> None:
    now = now or timezone.now()
    if student.claim_code_expires_at and now > student.claim_code_expires_at:
        raise ValidationError(EXPIRED_MSG)
    if student.claim_status == ClaimStatus.CLAIMED:
        raise ValidationError(ALREADY_CLAIMED_MSG)


def validate_claim_code(code: str, org_id: UUID | None = None, *, now: datetime | None = None) -> ClaimPreview:
    """
    Public, read-only.
    404 unknown / 403 other org / 400 expired / 400 already claimed.
    """
    student = _lookup(code)

    if org_id is not None and student.org_id != org_id:
        raise PermissionDenied(WRONG_ORG_MSG)

    _check_claimable(student, now=now)

    classes = [
        {"id": str(c.id), "name": c.name}
        for c in student.classes.filter(is_archived=False).order_by("name")
    ]
    return ClaimPreview(student=student, org_id=student.org_id, org_name=student.org.name, classes=classes)


def _issue_verification(link: ParentStudentLink, email: str) -> ClaimVerification:
    ttl = int(getattr(settings, "CLAIM_VERIFICATION_TTL_DAYS", 7))
    # a fresh claim supersedes earlier unused tokens
    ClaimVerification.objects.filter(link=link, used_at__isnull=True).delete()
    return ClaimVerification.objects.create(
        link=link,
        email=email,
        token=secrets.token_hex(32),
        expires_at=timezone.now() + timedelta(days=ttl),
    )


@transaction.atomic
def claim_student(code: str, email: str, password: str) -> ClaimResult:
    """
    Public. Creates or reuses the parent account, links it to the student
    and emails a verification link. The student stays PENDING_VERIFICATION
    until verify_claim runs.
    """
    email = normalize_email(email)
    if not email or "@" not in email:
        raise ValidationError({"email": "Invalid email format."})
    if not password:
        raise ValidationError({"password": "This field is required."})

    student = _lookup(code, for_update=True)
    _check_claimable(student)
    check_password_strength(password)

    parent, created = get_or_create_user_by_email(email, password=password)

    link, link_created = ParentStudentLink.objects.get_or_create(
        org_id=student.org_id,
        parent=parent,
        student=student,
    )
    if not link_created and link.claimed_at is not None:
        raise ConflictError("You already have access to this student.")

    ensure_membership(user_id=parent.id, org_id=student.org_id, role=MembershipRole.PARENT)

    student.claim_status = ClaimStatus.PENDING_VERIFICATION
    student.claimed_by_parent = parent
    student.save(update_fields=["claim_status", "claimed_by_parent", "updated_at"])

    verification = _issue_verification(link, email)

    AuditService.log(
        action="CLAIM_STUDENT",
        target_type="Student",
        target_id=student.id,
        org_id=student.org_id,
        actor_user_id=parent.id,
        data={"parent_created": created, "status": student.claim_status},
    )
    logger.info("Student %s claimed, awaiting verification", student.id)

    org_name, student_name, token = student.org.name, student.full_name, verification.token
    transaction.on_commit(
        lambda: mail.send_claim_verification_email(
            to=email, org_name=org_name, student_name=student_name, token=token
        )
    )

    return ClaimResult(
        student_id=student.id,
        parent_user_id=parent.id,
        parent_created=created,
        claim_status=student.claim_status,
    )


@transaction.atomic
def complete_claim(student: Student, parent) -> Student:
    """
    PENDING_VERIFICATION -> CLAIMED. Sets the link's claimed_at and makes the
    parent the primary parent when there is none.
    """
    student = Student.objects.select_for_update().get(id=student.id)
    if student.claim_status == ClaimStatus.CLAIMED:
        return student

    now = timezone.now()
    ParentStudentLink.objects.filter(student=student, parent=parent, claimed_at__isnull=True).update(
        claimed_at=now,
        updated_at=now,
    )

    student.claim_status = ClaimStatus.CLAIMED
    student.claimed_by_parent = parent
    update_fields = ["claim_status", "claimed_by_parent", "updated_at"]
    if student.primary_parent_id is None:
        student.primary_parent = parent
        update_fields.append("primary_parent")
    student.save(update_fields=update_fields)

    AuditService.log(
        action="COMPLETE_CLAIM",
        target_type="Student",
        target_id=student.id,
        org_id=student.org_id,
        actor_user_id=parent.id,
        data={"status": student.claim_status},
    )
    return student


@transaction.atomic
def verify_claim(token: str) -> Student:
    """
    Public. Consumes a verification token issued by claim_student.
    """
    token = (token or "").strip()
    if not token:
        raise ValidationError({"token": "This field is required."})

    verification = (
        ClaimVerification.objects.select_for_update()
        .select_related("link", "link__student", "link__parent")
        .filter(token=token)
        .first()
    )
    if verification is None:
        raise NotFound("Invalid verification link.")
    if verification.used_at is not None:
        raise ValidationError("This verification link has already been used.")
    if timezone.now() > verification.expires_at:
        raise ValidationError("This verification link has expired. Claim the student again to get a new one.")

    verification.used_at = timezone.now()
    verification.save(update_fields=["used_at", "updated_at"])

    return complete_claim(verification.link.student, verification.link.parent)


@transaction.atomic
def regenerate_claim_code(*, org_id: UUID, student_id: UUID, actor_user_id: int | None) -> Student:
    """
    ADMIN/OWNER. New code and expiry; a pending claim is reset.
    """
    student = Student.objects.select_for_update().get(org_id=org_id, id=student_id)

    if student.claim_status == ClaimStatus.CLAIMED:
        raise ValidationError(
            "Cannot regenerate claim code for an already claimed student. Please contact support if needed."
        )

    student.claim_code = generate_unique_claim_code()
    student.claim_code_expires_at = claim_code_expiry()
    student.claim_status = ClaimStatus.NOT_CLAIMED
    student.claimed_by_parent = None
    student.save(update_fields=["claim_code", "claim_code_expires_at", "claim_status", "claimed_by_parent", "updated_at"])

    AuditService.log(
        action="REGENERATE_CLAIM_CODE",
        target_type="Student",
        target_id=student.id,
        org_id=org_id,
        actor_user_id=actor_user_id,
        data={"expires_at": student.claim_code_expires_at},
    )
    return student
