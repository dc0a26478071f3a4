# mos_core/orgs/tests/test_api.py
import pytest

from mos_core.audit.models import AuditLog
from mos_core.conftest import client_for, make_user, org_headers
from mos_core.iam.models import MembershipRole, OrgMembership
from mos_core.orgs.models import Org, OrgStatus

OWNER_ORGS = "/api/v1/owner/orgs/"
ACTIVE_ORG = "/api/v1/org/"


@pytest.mark.django_db
def test_any_member_reads_active_org(org, parent_user):
    res = client_for(parent_user).get(ACTIVE_ORG, **org_headers(org))
    assert res.status_code == 200
    assert res.json()["slug"] == "al-noor"
    assert res.json()["settings"]["reminder_days_before"] == 3


@pytest.mark.django_db
def test_admin_updates_settings_partially(api_client, org):
    res = api_client.patch(
        ACTIVE_ORG,
        {"fee_due_day": 10, "settings": {"attendance_days": ["SUNDAY", "FRIDAY", "SUNDAY"]}},
        format="json",
        **org_headers(org),
    )
    assert res.status_code == 200, res.content
    body = res.json()
    assert body["fee_due_day"] == 10
    assert body["settings"]["attendance_days"] == ["FRIDAY", "SUNDAY"]
    # untouched keys survive the merge
    assert body["settings"]["reminder_days_before"] == 3

    log = AuditLog.objects.get(org=org, action="UPDATE_ORG_SETTINGS")
    assert set(log.data["fields"]) == {"fee_due_day", "settings"}


@pytest.mark.django_db
def test_resending_default_settings_only_audits_real_changes(api_client, org):
    res = api_client.patch(
        ACTIVE_ORG,
        {"fee_due_day": 10, "settings": {"attendance_days": ["SUNDAY", "SATURDAY", "SUNDAY"]}},
        format="json",
        **org_headers(org),
    )
    assert res.status_code == 200, res.content
    assert res.json()["settings"]["attendance_days"] == ["SATURDAY", "SUNDAY"]

    log = AuditLog.objects.get(org=org, action="UPDATE_ORG_SETTINGS")
    assert log.data["fields"] == ["fee_due_day"]


@pytest.mark.django_db
@pytest.mark.parametrize(
    "payload",
    [
        {"settings": {"unknown_key": True}},
        {"favourite_colour": "green"},
        {"fee_due_day": 31},
        {"timezone": "Mars/Olympus"},
        {"bank_transfer_enabled": True},
    ],
)
def test_invalid_org_updates_are_rejected(api_client, org, payload):
    res = api_client.patch(ACTIVE_ORG, payload, format="json", **org_headers(org))
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "validation_error"


@pytest.mark.django_db
def test_staff_cannot_update_org(org, finance_user):
    res = client_for(finance_user).patch(ACTIVE_ORG, {"name": "x"}, format="json", **org_headers(org))
    assert res.status_code == 403


@pytest.mark.django_db
def test_owner_endpoints_require_superuser(api_client):
    assert api_client.get(OWNER_ORGS).status_code == 403


@pytest.mark.django_db
def test_owner_creates_org_with_admin(owner_user):
    new_admin = make_user("newadmin")
    client = client_for(owner_user)

    res = client.post(
        OWNER_ORGS,
        {"name": "Darul Uloom", "slug": "darul-uloom", "admin_user_id": new_admin.id},
        format="json",
    )
    assert res.status_code == 201, res.content
    org = Org.objects.get(slug="darul-uloom")
    assert OrgMembership.objects.get(org=org, user=new_admin).role == MembershipRole.ADMIN

    dup = client.post(OWNER_ORGS, {"name": "Again", "slug": "darul-uloom"}, format="json")
    assert dup.status_code == 400


@pytest.mark.django_db
def test_owner_lists_and_filters_orgs(owner_user, org, other_org, admin_user):
    client = client_for(owner_user)

    res = client.get(OWNER_ORGS, {"search": "noor"})
    assert res.status_code == 200
    rows = res.json()["results"]
    assert [r["slug"] for r in rows] == ["al-noor"]
    assert rows[0]["member_count"] == 1


@pytest.mark.django_db
def test_owner_status_actions(owner_user, org, admin_user):
    client = client_for(owner_user)

    res = client.post(f"{OWNER_ORGS}{org.id}/suspend/", {"reason": "Chargebacks"}, format="json")
    assert res.status_code == 200
    assert res.json()["status"] == OrgStatus.SUSPENDED
    assert res.json()["affected_users"][0]["email"] == "admin@example.com"

    # suspended orgs are read-only for their members
    admin = client_for(admin_user)
    assert admin.get(ACTIVE_ORG, **org_headers(org)).status_code == 200
    assert admin.patch(ACTIVE_ORG, {"name": "x"}, format="json", **org_headers(org)).status_code == 403

    res = client.post(f"{OWNER_ORGS}{org.id}/pause/", {}, format="json")
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "conflict"

    res = client.post(f"{OWNER_ORGS}{org.id}/reactivate/", {}, format="json")
    assert res.status_code == 200
    assert res.json()["status"] == OrgStatus.ACTIVE

    res = client.post(f"{OWNER_ORGS}{org.id}/deactivate/", {}, format="json")
    assert res.status_code == 200
    assert admin.get(ACTIVE_ORG, **org_headers(org)).status_code == 403


@pytest.mark.django_db
def test_owner_runs_usage_report(owner_user, org, student):
    res = client_for(owner_user).post(f"{OWNER_ORGS}usage-report/")
    assert res.status_code == 200
    body = res.json()
    assert body["checked"] == 1
    assert body["results"][0]["student_count"] == 1
