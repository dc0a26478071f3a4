# mos_core/billing/tests/test_api.py
import csv
import io
from datetime import date

import pytest

from mos_core.billing.models import Invoice, InvoiceStatus, MonthlyPaymentRecord, Payment, PaymentMethod, PaymentStatus
from mos_core.conftest import client_for, org_headers
from mos_core.orgs.lifecycle import OrgStatusManager
from mos_core.students.models import Student

INVOICES = "/api/v1/invoices/"
RECORDS = "/api/v1/payment-records/"


def _invoice(org, student, **kw):
    kw.setdefault("amount_p", 2500)
    kw.setdefault("due_date", date(2025, 2, 1))
    return Invoice.objects.create(org=org, student=student, **kw)


@pytest.mark.django_db
def test_admin_creates_and_lists_invoices(api_client, org, student):
    res = api_client.post(
        INVOICES,
        {"student_id": str(student.id), "amount_p": 2500, "due_date": "2025-02-01"},
        format="json",
        **org_headers(org),
    )
    assert res.status_code == 201, res.content
    body = res.json()
    assert body["status"] == InvoiceStatus.DRAFT
    assert body["student_name"] == "Yusuf Khan"

    res = api_client.get(INVOICES, **org_headers(org))
    assert res.status_code == 200
    assert res.json()["count"] == 1


@pytest.mark.django_db
def test_create_invoice_rejects_zero_amount(api_client, org, student):
    res = api_client.post(
        INVOICES,
        {"student_id": str(student.id), "amount_p": 0, "due_date": "2025-02-01"},
        format="json",
        **org_headers(org),
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "validation_error"


@pytest.mark.django_db
def test_invoice_from_other_org_is_404(api_client, org, other_org, other_student):
    foreign = _invoice(other_org, other_student)

    res = api_client.get(f"{INVOICES}{foreign.id}/", **org_headers(org))
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "not_found"


@pytest.mark.django_db
def test_non_member_org_header_is_403(api_client, other_org):
    res = api_client.get(INVOICES, **org_headers(other_org))
    assert res.status_code == 403


@pytest.mark.django_db
def test_parent_sees_only_own_childrens_invoices(org, student, parent_user):
    sibling = Student.objects.create(org=org, first_name="Not", last_name="Mine")
    mine = _invoice(org, student)
    theirs = _invoice(org, sibling)

    client = client_for(parent_user)
    res = client.get(INVOICES, **org_headers(org))
    assert res.status_code == 200
    ids = {row["id"] for row in res.json()["results"]}
    assert ids == {str(mine.id)}

    assert client.get(f"{INVOICES}{theirs.id}/", **org_headers(org)).status_code == 404

    res = client.post(
        INVOICES,
        {"student_id": str(student.id), "amount_p": 100, "due_date": "2025-02-01"},
        format="json",
        **org_headers(org),
    )
    assert res.status_code == 403


@pytest.mark.django_db
def test_teacher_cannot_see_invoices_but_finance_can(org, student, teacher_user, finance_user):
    _invoice(org, student)

    assert client_for(teacher_user).get(INVOICES, **org_headers(org)).status_code == 403
    assert client_for(finance_user).get(INVOICES, **org_headers(org)).status_code == 200


@pytest.mark.django_db
def test_record_cash_endpoint(org, student, finance_user):
    inv = _invoice(org, student)
    client = client_for(finance_user)
    url = f"{INVOICES}{inv.id}/record-cash/"

    res = client.post(url, {"amount_p": 2500, "method": "CASH", "notes": "envelope"}, format="json", **org_headers(org))
    assert res.status_code == 200, res.content
    assert res.json()["invoice"]["status"] == InvoiceStatus.PAID
    assert res.json()["payment"]["method"] == PaymentMethod.CASH

    res = client.post(url, {"amount_p": 2500, "method": "CASH"}, format="json", **org_headers(org))
    assert res.status_code == 400
    assert res.json()["error"]["message"] == "Invoice already paid"


@pytest.mark.django_db
def test_generate_monthly_endpoint(api_client, org, student):
    res = api_client.post(f"{INVOICES}generate-monthly/", {"month": "2025-05"}, format="json", **org_headers(org))
    assert res.status_code == 200, res.content
    assert res.json()["created"] == 1

    res = api_client.post(f"{INVOICES}generate-monthly/", {"month": "May 2025"}, format="json", **org_headers(org))
    assert res.status_code == 400


@pytest.mark.django_db
def test_writes_blocked_while_org_suspended(api_client, org, student, owner_user):
    OrgStatusManager.suspend(org_id=org.id, actor_user_id=owner_user.id)

    res = api_client.post(
        INVOICES,
        {"student_id": str(student.id), "amount_p": 2500, "due_date": "2025-02-01"},
        format="json",
        **org_headers(org),
    )
    assert res.status_code == 403
    # reads still work
    assert api_client.get(INVOICES, **org_headers(org)).status_code == 200


@pytest.mark.django_db
def test_payment_records_filter_and_mark_paid(api_client, org, klass, student):
    MonthlyPaymentRecord.objects.create(org=org, student=student, klass=klass, month="2025-01", amount_p=2500)
    feb = MonthlyPaymentRecord.objects.create(org=org, student=student, klass=klass, month="2025-02", amount_p=2500)

    res = api_client.get(RECORDS, {"month": "2025-02"}, **org_headers(org))
    assert res.status_code == 200
    rows = res.json()["results"]
    assert [r["id"] for r in rows] == [str(feb.id)]
    assert rows[0]["class_name"] == "Quran Level 1"

    assert api_client.get(RECORDS, {"month": "2025-2"}, **org_headers(org)).status_code == 400

    res = api_client.patch(
        f"{RECORDS}{feb.id}/",
        {"status": "PAID", "method": "BANK_TRANSFER", "reference": "TX-1"},
        format="json",
        **org_headers(org),
    )
    assert res.status_code == 200, res.content
    assert res.json()["status"] == "PAID"
    assert res.json()["paid_at"] is not None


@pytest.mark.django_db
def test_recalculate_is_admin_only(org, finance_user, api_client):
    assert client_for(finance_user).post(f"{RECORDS}recalculate/", **org_headers(org)).status_code == 403

    res = api_client.post(f"{RECORDS}recalculate/", **org_headers(org))
    assert res.status_code == 200
    assert res.json() == {"checked": 0, "updated": 0}


@pytest.mark.django_db
def test_export_csv(api_client, org, student):
    inv = _invoice(org, student)
    Payment.objects.create(
        org=org, invoice=inv, method=PaymentMethod.CASH, amount_p=2500, status=PaymentStatus.SUCCEEDED,
    )
    Payment.objects.create(org=org, invoice=inv, method=PaymentMethod.CARD, amount_p=2500, status=PaymentStatus.FAILED)

    res = api_client.get(f"{RECORDS}export/", **org_headers(org))
    assert res.status_code == 200
    assert res["Content-Type"].startswith("text/csv")

    rows = list(csv.reader(io.StringIO(res.content.decode())))
    assert rows[0] == [
        "Student Name",
        "Parent Name",
        "Parent Email",
        "Payment Method",
        "Payment Date",
        "Amount",
        "Class",
    ]
    assert len(rows) == 2
    assert rows[1][0] == "Yusuf Khan"
    assert rows[1][1] == "Pat Parent"
    assert rows[1][2] == "parent@example.com"
    assert rows[1][3] == "Cash"
    assert rows[1][5] == "25.00"
    assert rows[1][6] == "Quran Level 1"


@pytest.mark.django_db
def test_export_rejects_bad_dates(api_client, org):
    res = api_client.get(f"{RECORDS}export/", {"date_from": "01/02/2025"}, **org_headers(org))
    assert res.status_code == 400
