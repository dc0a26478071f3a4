# mos_core/billing/tests/test_gift_aid.py
import csv
import io
from datetime import date, datetime, timezone as dt_timezone

import pytest
from rest_framework.exceptions import ValidationError

from mos_core.audit.models import AuditLog
from mos_core.billing import gift_aid
from mos_core.billing.models import GiftAidDeclaration, GiftAidStatus, MonthlyPaymentRecord, RecordStatus
from mos_core.conftest import add_member, client_for, make_user, org_headers
from mos_core.iam.models import MembershipRole
from mos_core.students.models import Student, StudentClass

URL = "/api/v1/gift-aid/"


def _paid(org, student, klass, month, paid_at, amount_p=2500):
    return MonthlyPaymentRecord.objects.create(
        org=org,
        student=student,
        klass=klass,
        month=month,
        amount_p=amount_p,
        status=RecordStatus.PAID,
        paid_at=paid_at,
    )


@pytest.fixture
def declared(org, parent_user):
    return gift_aid.declare(
        org_id=org.id,
        parent_id=parent_user.id,
        status=GiftAidStatus.YES,
        title="Mr",
        house="12",
        postcode="b11 1aa",
        actor_user_id=parent_user.id,
    )


@pytest.mark.django_db
def test_declare_yes_stamps_date_and_normalises_postcode(declared, parent_user):
    assert declared.postcode == "B11 1AA"
    assert declared.declared_at is not None
    assert AuditLog.objects.filter(action="GIFT_AID_DECLARATION", target_id=str(declared.id)).exists()


@pytest.mark.django_db
def test_declare_yes_requires_address(org, parent_user):
    with pytest.raises(ValidationError) as exc:
        gift_aid.declare(org_id=org.id, parent_id=parent_user.id, status=GiftAidStatus.YES)
    assert set(exc.value.detail) == {"house", "postcode"}
    assert not GiftAidDeclaration.objects.exists()


@pytest.mark.django_db
def test_redeclaring_keeps_original_date_until_withdrawn(org, parent_user, declared):
    first = declared.declared_at

    again = gift_aid.declare(
        org_id=org.id, parent_id=parent_user.id, status=GiftAidStatus.YES, house="12", postcode="B11 1AA",
    )
    assert again.id == declared.id
    assert again.declared_at == first

    withdrawn = gift_aid.declare(org_id=org.id, parent_id=parent_user.id, status=GiftAidStatus.NO)
    assert withdrawn.declared_at is None
    assert GiftAidDeclaration.objects.count() == 1


@pytest.mark.django_db
def test_schedule_aggregates_paid_records_per_parent(org, klass, student, parent_user, declared):
    sibling = Student.objects.create(org=org, first_name="Maryam", last_name="Khan", primary_parent=parent_user)
    StudentClass.objects.create(org=org, student=sibling, klass=klass)

    _paid(org, student, klass, "2026-05", datetime(2026, 5, 3, 10, tzinfo=dt_timezone.utc))
    _paid(org, sibling, klass, "2026-05", datetime(2026, 4, 28, 9, tzinfo=dt_timezone.utc), amount_p=2000)
    # outside the period
    _paid(org, student, klass, "2026-03", datetime(2026, 3, 1, 9, tzinfo=dt_timezone.utc))
    # not paid
    MonthlyPaymentRecord.objects.create(org=org, student=student, klass=klass, month="2026-04", amount_p=2500)

    rows = gift_aid.build_schedule(org_id=org.id, start=date(2026, 4, 1), end=date(2026, 5, 31))

    assert len(rows) == 1
    assert rows[0].amount_p == 4500
    assert rows[0].donation_date == date(2026, 4, 28)
    assert rows[0].as_csv(1) == ["1", "Mr", "Pat", "Parent", "12", "B11 1AA", "", "", "28/04/26", "45.00"]


@pytest.mark.django_db
def test_schedule_skips_parents_without_yes(org, klass, student, parent_user):
    gift_aid.declare(org_id=org.id, parent_id=parent_user.id, status=GiftAidStatus.NOT_SURE)
    _paid(org, student, klass, "2026-05", datetime(2026, 5, 3, 10, tzinfo=dt_timezone.utc))

    assert gift_aid.build_schedule(org_id=org.id, start=date(2026, 5, 1), end=date(2026, 5, 31)) == []


@pytest.mark.django_db
def test_schedule_uses_org_local_date(org, klass, student, declared):
    # 23:30 UTC on 31 May is 1 June in London (BST)
    _paid(org, student, klass, "2026-05", datetime(2026, 5, 31, 23, 30, tzinfo=dt_timezone.utc))

    assert gift_aid.build_schedule(org_id=org.id, start=date(2026, 5, 1), end=date(2026, 5, 31)) == []
    rows = gift_aid.build_schedule(org_id=org.id, start=date(2026, 6, 1), end=date(2026, 6, 30))
    assert rows[0].donation_date == date(2026, 6, 1)


@pytest.mark.django_db
def test_schedule_rejects_inverted_period(org):
    with pytest.raises(ValidationError):
        gift_aid.build_schedule(org_id=org.id, start=date(2026, 6, 1), end=date(2026, 5, 1))


@pytest.mark.django_db
def test_parent_declares_through_api(org, parent_user):
    client = client_for(parent_user)

    empty = client.get(f"{URL}declaration/", **org_headers(org))
    assert empty.status_code == 200
    assert empty.json()["status"] == GiftAidStatus.NOT_SURE
    assert empty.json()["id"] is None

    res = client.put(
        f"{URL}declaration/",
        {"status": "YES", "title": "Mr", "house": "12 Oak Road", "postcode": "b11 1aa"},
        format="json",
        **org_headers(org),
    )
    assert res.status_code == 200
    assert res.json()["postcode"] == "B11 1AA"
    assert res.json()["declared_at"] is not None

    missing = client.put(f"{URL}declaration/", {"status": "YES"}, format="json", **org_headers(org))
    assert missing.status_code == 400
    assert missing.json()["error"]["code"] == "validation_error"


@pytest.mark.django_db
def test_declaration_is_parent_only(org, api_client, teacher_user):
    assert api_client.get(f"{URL}declaration/", **org_headers(org)).status_code == 403
    assert client_for(teacher_user).get(f"{URL}declaration/", **org_headers(org)).status_code == 403


@pytest.mark.django_db
def test_admin_lists_declarations_of_own_org_only(org, other_org, api_client, declared):
    stranger = make_user("stranger")
    add_member(stranger, other_org, MembershipRole.PARENT)
    gift_aid.declare(org_id=other_org.id, parent_id=stranger.id, status=GiftAidStatus.NO)

    res = api_client.get(URL, **org_headers(org))
    assert res.status_code == 200
    assert [d["parent_name"] for d in res.json()["results"]] == ["Pat Parent"]

    filtered = api_client.get(URL, {"status": "NO"}, **org_headers(org))
    assert filtered.json()["results"] == []


@pytest.mark.django_db
def test_export_csv(org, klass, student, api_client, finance_user, declared):
    _paid(org, student, klass, "2026-05", datetime(2026, 5, 3, 10, tzinfo=dt_timezone.utc))

    res = api_client.get(f"{URL}export/", {"start": "2026-05-01", "end": "2026-05-31"}, **org_headers(org))
    assert res.status_code == 200
    assert res["Content-Type"].startswith("text/csv")
    assert 'filename="Gift-Aid-Schedule-2026-05-01-to-2026-05-31.csv"' in res["Content-Disposition"]

    rows = list(csv.reader(io.StringIO(res.content.decode())))
    assert rows[0] == gift_aid.SCHEDULE_HEADERS
    assert rows[1] == ["1", "Mr", "Pat", "Parent", "12", "B11 1AA", "", "", "03/05/26", "25.00"]

    denied = client_for(finance_user).get(f"{URL}export/", {"start": "2026-05-01", "end": "2026-05-31"}, **org_headers(org))
    assert denied.status_code == 403


@pytest.mark.django_db
def test_export_needs_both_dates_and_some_rows(org, api_client, declared):
    missing = api_client.get(f"{URL}export/", {"start": "2026-05-01"}, **org_headers(org))
    assert missing.status_code == 400
    assert "end" in missing.json()["error"]["details"]

    empty = api_client.get(f"{URL}export/", {"start": "2026-05-01", "end": "2026-05-31"}, **org_headers(org))
    assert empty.status_code == 404
    assert empty.json()["error"]["code"] == "not_found"
