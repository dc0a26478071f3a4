# mos_core/messaging/tests/test_messages.py
from unittest import mock

import pytest
from rest_framework.exceptions import ValidationError

from mos_core.audit.models import AuditLog
from mos_core.conftest import add_member, client_for, make_user, org_headers
from mos_core.iam.models import MembershipRole
from mos_core.messaging import services
from mos_core.messaging.models import Audience, Channel, Message, MessageRecipient, MessageStatus
from mos_core.students.models import Class, Student, StudentClass

URL = "/api/v1/messages/"


@pytest.fixture
def second_parent(org):
    user = make_user("parent2", first_name="Sara", last_name="Ali")
    add_member(user, org, MembershipRole.PARENT)
    return user


@pytest.fixture
def arabic(org, second_parent):
    klass = Class.objects.create(org=org, name="Arabic 1", monthly_fee_p=2000)
    s = Student.objects.create(org=org, first_name="Zaid", last_name="Ali", primary_parent=second_parent)
    StudentClass.objects.create(org=org, student=s, klass=klass)
    return klass


@pytest.mark.django_db
def test_all_audience_is_every_parent_member(org, student, parent_user, second_parent, teacher_user, outsider_user):
    ids = services.resolve_recipients(org_id=org.id, audience=Audience.ALL)
    assert ids == sorted([parent_user.id, second_parent.id])


@pytest.mark.django_db
def test_by_class_uses_primary_parents_of_enrolled_students(org, klass, student, parent_user, arabic, second_parent):
    assert services.resolve_recipients(org_id=org.id, audience=Audience.BY_CLASS, class_ids=[arabic.id]) == [
        second_parent.id
    ]

    Student.objects.filter(id=student.id).update(is_archived=True)
    assert services.resolve_recipients(org_id=org.id, audience=Audience.BY_CLASS, class_ids=[klass.id]) == []


@pytest.mark.django_db
def test_by_class_rejects_foreign_or_missing_classes(org, other_org):
    foreign = Class.objects.create(org=other_org, name="Elsewhere")

    with pytest.raises(ValidationError):
        services.resolve_recipients(org_id=org.id, audience=Audience.BY_CLASS, class_ids=[])
    with pytest.raises(ValidationError):
        services.resolve_recipients(org_id=org.id, audience=Audience.BY_CLASS, class_ids=[foreign.id])


@pytest.mark.django_db
def test_individual_must_be_a_parent_here(org, parent_user, teacher_user, outsider_user):
    assert services.resolve_recipients(org_id=org.id, audience=Audience.INDIVIDUAL, parent_id=parent_user.id) == [
        parent_user.id
    ]
    for user in (teacher_user, outsider_user):
        with pytest.raises(ValidationError):
            services.resolve_recipients(org_id=org.id, audience=Audience.INDIVIDUAL, parent_id=user.id)


@pytest.mark.django_db
def test_send_emails_each_recipient_and_audits(org, admin_user, parent_user, second_parent, mailoutbox):
    result = services.send_message(
        org_id=org.id,
        title="Eid holiday",
        body="Classes resume on Monday.",
        audience=Audience.ALL,
        actor_user_id=admin_user.id,
    )

    assert (result.recipients, result.success_count, result.failure_count) == (2, 2, 0)
    assert sorted(m.to[0] for m in mailoutbox) == ["parent2@example.com", "parent@example.com"]
    assert mailoutbox[0].subject == "Eid holiday"
    assert "Al-Noor Madrasah" in mailoutbox[0].body

    msg = Message.objects.get(id=result.message.id)
    assert msg.status == MessageStatus.SENT
    assert msg.sent_at is not None
    assert set(MessageRecipient.objects.filter(message=msg).values_list("delivered", flat=True)) == {True}

    log = AuditLog.objects.get(action="SEND_MESSAGE")
    assert log.data["recipients"] == 2
    assert log.data["failure_count"] == 0


@pytest.mark.django_db
def test_failed_delivery_is_counted_not_raised(org, admin_user, parent_user, second_parent):
    with mock.patch("mos_core.notifications.email.send_mail", side_effect=[1, OSError("smtp down")]):
        result = services.send_message(
            org_id=org.id, title="Fees", body="Reminder", audience=Audience.ALL, actor_user_id=admin_user.id,
        )

    assert (result.success_count, result.failure_count) == (1, 1)
    assert result.message.status == MessageStatus.SENT
    assert MessageRecipient.objects.filter(message=result.message, delivered=False).count() == 1


@pytest.mark.django_db
@pytest.mark.parametrize("extra", [{"save_only": True}, {"channel": Channel.WHATSAPP}])
def test_save_only_and_whatsapp_store_without_email(org, admin_user, parent_user, mailoutbox, extra):
    result = services.send_message(
        org_id=org.id, title="Note", body="Body", audience=Audience.ALL, actor_user_id=admin_user.id, **extra,
    )

    assert mailoutbox == []
    assert result.success_count == 1
    assert MessageRecipient.objects.get(message=result.message).delivered is None


@pytest.mark.django_db
def test_send_endpoint_gates_on_send_messages(org, api_client, teacher_user, finance_user, parent_user):
    payload = {"title": "Trip", "body": "Permission slips due.", "audience": "INDIVIDUAL", "parent_id": parent_user.id}

    res = api_client.post(URL, payload, format="json", **org_headers(org))
    assert res.status_code == 201
    assert res.json()["recipients"] == 1
    assert res.json()["message"]["status"] == "SENT"

    assert client_for(teacher_user).post(URL, payload, format="json", **org_headers(org)).status_code == 201
    assert client_for(finance_user).post(URL, payload, format="json", **org_headers(org)).status_code == 403
    assert client_for(parent_user).post(URL, payload, format="json", **org_headers(org)).status_code == 403


@pytest.mark.django_db
def test_parents_only_see_messages_addressed_to_them(org, api_client, parent_user, second_parent):
    to_pat = services.send_message(
        org_id=org.id, title="For Pat", body="x", audience=Audience.INDIVIDUAL, parent_id=parent_user.id,
        save_only=True,
    ).message
    to_sara = services.send_message(
        org_id=org.id, title="For Sara", body="x", audience=Audience.INDIVIDUAL, parent_id=second_parent.id,
        save_only=True,
    ).message

    client = client_for(parent_user)
    titles = [m["title"] for m in client.get(URL, **org_headers(org)).json()["results"]]
    assert titles == ["For Pat"]
    assert client.get(f"{URL}{to_pat.id}/", **org_headers(org)).status_code == 200
    assert client.get(f"{URL}{to_sara.id}/", **org_headers(org)).status_code == 404

    assert api_client.get(URL, **org_headers(org)).json()["count"] == 2


@pytest.mark.django_db
def test_messages_are_org_scoped(org, other_org, outsider_user, parent_user):
    services.send_message(org_id=org.id, title="Here", body="x", audience=Audience.ALL, save_only=True)

    res = client_for(outsider_user).get(URL, **org_headers(other_org))
    assert res.status_code == 200
    assert res.json()["count"] == 0
