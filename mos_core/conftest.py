# mos_core/conftest.py
import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient

from mos_core.iam.models import MembershipRole, OrgMembership, StaffSubrole
from mos_core.orgs.models import Org
from mos_core.students.models import Class, Student, StudentClass


def org_headers(org):
    """
    Active-org header for the DRF test client (HTTP_ prefix required).
    """
    return {"HTTP_X_ORG_ID": str(org.id)}


def make_user(username, *, email=None, password="testpass", **extra):
    User = get_user_model()
    return User.objects.create_user(
        username=username,
        email=email if email is not None else f"{username}@example.com",
        password=password,
        **extra,
    )


def add_member(user, org, role, staff_subrole=""):
    return OrgMembership.objects.create(user=user, org=org, role=role, staff_subrole=staff_subrole)


def client_for(user):
    c = APIClient()
    c.force_authenticate(user=user)
    return c


@pytest.fixture(autouse=True)
def _clear_cache():
    # throttle counters live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def org(db):
    return Org.objects.create(
        name="Al-Noor Madrasah",
        slug="al-noor",
        timezone="Europe/London",
        contact_email="office@alnoor.example.com",
        fee_due_day=15,
    )


@pytest.fixture
def other_org(db):
    return Org.objects.create(name="Other Madrasah", slug="other", timezone="Europe/London")


@pytest.fixture
def admin_user(db, org):
    user = make_user("admin", first_name="Amina", last_name="Admin")
    add_member(user, org, MembershipRole.ADMIN)
    return user


@pytest.fixture
def teacher_user(db, org):
    user = make_user("teacher")
    add_member(user, org, MembershipRole.STAFF, StaffSubrole.TEACHER)
    return user


@pytest.fixture
def finance_user(db, org):
    user = make_user("finance")
    add_member(user, org, MembershipRole.STAFF, StaffSubrole.FINANCE_OFFICER)
    return user


@pytest.fixture
def parent_user(db, org):
    user = make_user("parent", first_name="Pat", last_name="Parent")
    add_member(user, org, MembershipRole.PARENT)
    return user


@pytest.fixture
def owner_user(db):
    User = get_user_model()
    return User.objects.create_superuser(username="owner", email="owner@example.com", password="testpass")


@pytest.fixture
def outsider_user(db, other_org):
    user = make_user("outsider")
    add_member(user, other_org, MembershipRole.ADMIN)
    return user


@pytest.fixture
def api_client(admin_user):
    return client_for(admin_user)


@pytest.fixture
def klass(db, org, teacher_user):
    return Class.objects.create(
        org=org,
        name="Quran Level 1",
        teacher=teacher_user,
        monthly_fee_p=2500,
    )


@pytest.fixture
def student(db, org, klass, parent_user):
    s = Student.objects.create(
        org=org,
        first_name="Yusuf",
        last_name="Khan",
        primary_parent=parent_user,
        claim_code="ABCD2345",
    )
    StudentClass.objects.create(org=org, student=s, klass=klass)
    return s


@pytest.fixture
def other_student(db, other_org):
    return Student.objects.create(org=other_org, first_name="Other", last_name="Child", claim_code="ZZZZ9999")
