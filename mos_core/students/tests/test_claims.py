# mos_core/students/tests/test_claims.py
from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError
from rest_framework.test import APIClient

from mos_core.audit.models import AuditLog
from mos_core.common.api.exceptions import ConflictError
from mos_core.iam.models import MembershipRole, OrgMembership
from mos_core.students import claims
from mos_core.students.models import ClaimStatus, ClaimVerification, ParentStudentLink, Student

PASSWORD = "Str0ng-Passw0rd!"


@pytest.fixture
def unclaimed(org, klass):
    student = Student.objects.create(
        org=org,
        first_name="Maryam",
        last_name="Ali",
        claim_code="HJKM2345",
        claim_code_expires_at=timezone.now() + timedelta(days=30),
    )
    student.classes.through.objects.create(org=org, student=student, klass=klass)
    return student


def test_generated_codes_avoid_ambiguous_characters():
    for _ in range(50):
        code = claims.generate_claim_code()
        assert len(code) == 8
        assert not set(code) & set("01OIL")


def test_normalize_code():
    assert claims.normalize_code(" hjkm-2345 ") == "HJKM2345"


@pytest.mark.django_db
def test_validate_returns_preview_without_writing(org, unclaimed):
    before = unclaimed.updated_at

    preview = claims.validate_claim_code("hjkm2345", org.id)

    assert preview.student.id == unclaimed.id
    assert preview.org_name == "Al-Noor Madrasah"
    assert [c["name"] for c in preview.classes] == ["Quran Level 1"]
    unclaimed.refresh_from_db()
    assert unclaimed.updated_at == before
    assert unclaimed.claim_status == ClaimStatus.NOT_CLAIMED


@pytest.mark.django_db
def test_validate_errors(org, other_org, unclaimed):
    with pytest.raises(NotFound):
        claims.validate_claim_code("NOPE9999")

    with pytest.raises(PermissionDenied):
        claims.validate_claim_code(unclaimed.claim_code, other_org.id)

    with pytest.raises(ValidationError):
        claims.validate_claim_code("")


@pytest.mark.django_db
def test_expired_code_is_rejected_without_mutation(unclaimed):
    Student.objects.filter(id=unclaimed.id).update(claim_code_expires_at=timezone.now() - timedelta(seconds=1))

    with pytest.raises(ValidationError) as exc:
        claims.claim_student(unclaimed.claim_code, "mum@example.com", PASSWORD)
    assert "expired" in str(exc.value.detail)

    unclaimed.refresh_from_db()
    assert unclaimed.claim_status == ClaimStatus.NOT_CLAIMED
    assert unclaimed.claimed_by_parent is None
    assert not ParentStudentLink.objects.exists()


@pytest.mark.django_db
def test_claim_then_verify(org, unclaimed, mailoutbox, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        result = claims.claim_student(unclaimed.claim_code, "Mum@Example.com", PASSWORD)

    assert result.parent_created is True
    assert result.claim_status == ClaimStatus.PENDING_VERIFICATION

    membership = OrgMembership.objects.get(org=org, user_id=result.parent_user_id)
    assert membership.role == MembershipRole.PARENT

    verification = ClaimVerification.objects.get(link__student=unclaimed)
    assert verification.email == "mum@example.com"
    assert len(mailoutbox) == 1
    assert verification.token in mailoutbox[0].body

    student = claims.verify_claim(verification.token)
    assert student.claim_status == ClaimStatus.CLAIMED
    assert student.primary_parent_id == result.parent_user_id
    assert ParentStudentLink.objects.get(student=unclaimed).claimed_at is not None

    with pytest.raises(ValidationError):
        claims.verify_claim(verification.token)

    with pytest.raises(ValidationError):
        claims.validate_claim_code(unclaimed.claim_code)

    actions = list(AuditLog.objects.filter(target_id=str(unclaimed.id)).values_list("action", flat=True))
    assert sorted(actions) == ["CLAIM_STUDENT", "COMPLETE_CLAIM"]


@pytest.mark.django_db
def test_existing_parent_keeps_password_and_role(org, admin_user, unclaimed):
    result = claims.claim_student(unclaimed.claim_code, admin_user.email, "An0ther-Passw0rd!")

    assert result.parent_created is False
    admin_user.refresh_from_db()
    assert admin_user.check_password("testpass")
    assert OrgMembership.objects.get(org=org, user=admin_user).role == MembershipRole.ADMIN


@pytest.mark.django_db
def test_weak_password_rejected(unclaimed):
    with pytest.raises(ValidationError):
        claims.claim_student(unclaimed.claim_code, "mum@example.com", "123")


@pytest.mark.django_db
def test_expired_verification_token(unclaimed):
    result = claims.claim_student(unclaimed.claim_code, "mum@example.com", PASSWORD)
    verification = ClaimVerification.objects.get(link__parent_id=result.parent_user_id)
    ClaimVerification.objects.filter(id=verification.id).update(expires_at=timezone.now() - timedelta(minutes=1))

    with pytest.raises(ValidationError):
        claims.verify_claim(verification.token)
    with pytest.raises(NotFound):
        claims.verify_claim("not-a-token")


@pytest.mark.django_db
def test_reclaim_after_verification_is_conflict(unclaimed):
    claims.claim_student(unclaimed.claim_code, "mum@example.com", PASSWORD)
    token = ClaimVerification.objects.get().token
    student = claims.verify_claim(token)

    # the same parent cannot claim an already verified link again
    Student.objects.filter(id=student.id).update(claim_status=ClaimStatus.NOT_CLAIMED)
    with pytest.raises(ConflictError):
        claims.claim_student(unclaimed.claim_code, "mum@example.com", PASSWORD)


@pytest.mark.django_db
def test_regenerate_code(org, unclaimed, admin_user):
    old = unclaimed.claim_code
    claims.claim_student(old, "mum@example.com", PASSWORD)

    student = claims.regenerate_claim_code(org_id=org.id, student_id=unclaimed.id, actor_user_id=admin_user.id)
    assert student.claim_code != old
    assert student.claim_status == ClaimStatus.NOT_CLAIMED
    assert student.claimed_by_parent is None
    assert student.claim_code_expires_at > timezone.now() + timedelta(days=89)


@pytest.mark.django_db
def test_regenerate_blocked_once_claimed(org, student, admin_user):
    Student.objects.filter(id=student.id).update(claim_status=ClaimStatus.CLAIMED)

    with pytest.raises(ValidationError):
        claims.regenerate_claim_code(org_id=org.id, student_id=student.id, actor_user_id=admin_user.id)


@pytest.mark.django_db
def test_public_claim_endpoints(org, other_org, unclaimed):
    client = APIClient()

    res = client.post("/api/v1/claims/validate/", {"claim_code": unclaimed.claim_code}, format="json")
    assert res.status_code == 200
    assert res.json()["org"]["name"] == "Al-Noor Madrasah"
    assert res.json()["student"]["first_name"] == "Maryam"

    res = client.post(
        "/api/v1/claims/validate/",
        {"claim_code": unclaimed.claim_code, "org_id": str(other_org.id)},
        format="json",
    )
    assert res.status_code == 403

    res = client.post("/api/v1/claims/validate/", {"claim_code": "QQQQ7777"}, format="json")
    assert res.status_code == 404

    res = client.post(
        "/api/v1/claims/claim/",
        {"claim_code": unclaimed.claim_code, "email": "dad@example.com", "password": PASSWORD},
        format="json",
    )
    assert res.status_code == 201, res.content
    assert res.json()["claim_status"] == ClaimStatus.PENDING_VERIFICATION

    token = ClaimVerification.objects.get().token
    res = client.post("/api/v1/claims/verify/", {"token": token}, format="json")
    assert res.status_code == 200
