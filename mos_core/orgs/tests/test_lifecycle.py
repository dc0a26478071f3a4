# mos_core/orgs/tests/test_lifecycle.py
from datetime import date, datetime, timezone as dt_timezone

import pytest
from django.test import override_settings

from mos_core.audit.models import AuditLog
from mos_core.common.api.exceptions import ConflictError
from mos_core.orgs.lifecycle import (
    ACTION_NONE,
    ACTION_PAUSED,
    ACTION_REACTIVATED,
    ACTION_SUSPENDED,
    OrgStatusManager,
    days_overdue,
    last_anniversary,
)
from mos_core.orgs.models import Org, OrgStatus, StatusSource, SubscriptionStatus


@pytest.mark.django_db
def test_failure_thresholds_pause_then_suspend(org, admin_user):
    first = OrgStatusManager.handle_payment_failure(org_id=org.id, reason="card_declined")
    assert first.action == ACTION_NONE
    assert first.status == OrgStatus.ACTIVE

    second = OrgStatusManager.handle_payment_failure(org_id=org.id, reason="card_declined")
    assert second.action == ACTION_PAUSED
    assert second.status == OrgStatus.PAUSED

    third = OrgStatusManager.handle_payment_failure(org_id=org.id, reason="card_declined")
    assert third.action == ACTION_SUSPENDED
    assert third.failure_count == 3
    assert third.affected_users[0]["email"] == "admin@example.com"

    org.refresh_from_db()
    assert org.status == OrgStatus.SUSPENDED
    assert org.status_source == StatusSource.PAYMENT
    assert org.suspended_reason.startswith("Automatically suspended after 3 failed payments")
    assert org.suspended_reason.endswith("card_declined")
    assert AuditLog.objects.filter(org=org, target_type="Org").count() == 3


@pytest.mark.django_db
@override_settings(ORG_PAYMENT_FAILURE_PAUSE_THRESHOLD=5, ORG_PAYMENT_FAILURE_SUSPEND_THRESHOLD=6)
def test_thresholds_come_from_settings(org):
    for _ in range(4):
        OrgStatusManager.handle_payment_failure(org_id=org.id)
    org.refresh_from_db()
    assert org.status == OrgStatus.ACTIVE
    assert org.payment_failure_count == 4


@pytest.mark.django_db
def test_failure_emails_admins_after_commit(org, admin_user, mailoutbox, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        OrgStatusManager.handle_payment_failure(org_id=org.id, reason="insufficient_funds", amount_p=4900)

    assert len(mailoutbox) == 1
    message = mailoutbox[0]
    assert message.to == ["admin@example.com"]
    assert "insufficient_funds" in message.body
    assert "£49.00" in message.body


@pytest.mark.django_db
def test_failure_falls_back_to_org_contact_email(org, mailoutbox, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        OrgStatusManager.handle_payment_failure(org_id=org.id)

    assert mailoutbox[0].to == ["office@alnoor.example.com"]


@pytest.mark.django_db
def test_auto_suspend_disabled_only_counts(org):
    Org.objects.filter(id=org.id).update(auto_suspend_enabled=False)

    for _ in range(3):
        result = OrgStatusManager.handle_payment_failure(org_id=org.id)
        assert result.action == ACTION_NONE

    org.refresh_from_db()
    assert org.status == OrgStatus.ACTIVE
    assert org.payment_failure_count == 3


@pytest.mark.django_db
def test_success_reactivates_payment_lock_and_clears_fields(org):
    for _ in range(3):
        OrgStatusManager.handle_payment_failure(org_id=org.id)

    result = OrgStatusManager.handle_payment_success(org_id=org.id, amount_p=4900)
    assert result.action == ACTION_REACTIVATED

    org.refresh_from_db()
    assert org.status == OrgStatus.ACTIVE
    assert org.payment_failure_count == 0
    assert org.status_source == ""
    assert org.paused_at is None
    assert org.paused_reason == ""
    assert org.suspended_at is None
    assert org.suspended_reason == ""
    assert org.last_payment_at is not None


@pytest.mark.django_db
def test_success_never_lifts_manual_pause(org, owner_user):
    OrgStatusManager.pause(org_id=org.id, actor_user_id=owner_user.id, reason="Requested by trustees")
    OrgStatusManager.handle_payment_failure(org_id=org.id)

    result = OrgStatusManager.handle_payment_success(org_id=org.id)
    assert result.action == ACTION_NONE

    org.refresh_from_db()
    assert org.status == OrgStatus.PAUSED
    assert org.status_source == StatusSource.MANUAL
    assert org.paused_reason == "Requested by trustees"
    assert org.payment_failure_count == 0


@pytest.mark.django_db
def test_payment_failure_never_touches_deactivated_org(org, owner_user):
    OrgStatusManager.deactivate(org_id=org.id, actor_user_id=owner_user.id)
    for _ in range(3):
        OrgStatusManager.handle_payment_failure(org_id=org.id)
    OrgStatusManager.handle_payment_success(org_id=org.id)

    org.refresh_from_db()
    assert org.status == OrgStatus.DEACTIVATED


@pytest.mark.django_db
def test_manual_transitions(org, owner_user):
    paused = OrgStatusManager.pause(org_id=org.id, actor_user_id=owner_user.id)
    assert paused.action == ACTION_PAUSED
    assert paused.reason == "Account paused by platform administrator"

    again = OrgStatusManager.pause(org_id=org.id, actor_user_id=owner_user.id)
    assert again.action == ACTION_NONE

    OrgStatusManager.suspend(org_id=org.id, actor_user_id=owner_user.id, reason="Fraud review")
    with pytest.raises(ConflictError):
        OrgStatusManager.pause(org_id=org.id, actor_user_id=owner_user.id)

    OrgStatusManager.reactivate(org_id=org.id, actor_user_id=owner_user.id, reason="Cleared")
    org.refresh_from_db()
    assert org.status == OrgStatus.ACTIVE
    assert org.suspended_reason == ""

    actions = set(AuditLog.objects.filter(org=org).values_list("action", flat=True))
    assert {"ORG_PAUSED", "ORG_SUSPENDED", "ORG_REACTIVATED"} <= actions


@pytest.mark.django_db
def test_deactivate_cancels_subscription_and_emails(
    org, admin_user, owner_user, mailoutbox, django_capture_on_commit_callbacks
):
    Org.objects.filter(id=org.id).update(
        stripe_subscription_id="sub_1", subscription_status=SubscriptionStatus.ACTIVE,
    )

    with django_capture_on_commit_callbacks(execute=True):
        result = OrgStatusManager.deactivate(org_id=org.id, actor_user_id=owner_user.id, reason="Closed")

    assert result.status == OrgStatus.DEACTIVATED
    org.refresh_from_db()
    assert org.subscription_status == SubscriptionStatus.CANCELED
    assert org.deactivated_reason == "Closed"
    assert mailoutbox[0].to == ["admin@example.com"]

    with pytest.raises(ConflictError):
        OrgStatusManager.suspend(org_id=org.id, actor_user_id=owner_user.id)


def test_last_anniversary():
    assert last_anniversary(date(2025, 3, 20), 15) == date(2025, 3, 15)
    assert last_anniversary(date(2025, 3, 10), 15) == date(2025, 2, 15)
    assert last_anniversary(date(2025, 1, 10), 15) == date(2024, 12, 15)


def test_days_overdue_past_due_counts_from_last_billed():
    org = Org(
        subscription_status=SubscriptionStatus.PAST_DUE,
        last_billed_at=datetime(2025, 3, 1, 12, tzinfo=dt_timezone.utc),
    )
    assert days_overdue(org, date(2025, 3, 21)) == 20


def test_days_overdue_active_billed_since_anniversary_is_not_overdue():
    org = Org(
        subscription_status=SubscriptionStatus.ACTIVE,
        billing_anniversary_day=1,
        last_billed_at=datetime(2025, 3, 2, 12, tzinfo=dt_timezone.utc),
    )
    assert days_overdue(org, date(2025, 3, 21)) is None

    org.last_billed_at = datetime(2025, 2, 1, 12, tzinfo=dt_timezone.utc)
    assert days_overdue(org, date(2025, 3, 21)) == 20


def test_days_overdue_without_billing_data():
    assert days_overdue(Org(subscription_status=SubscriptionStatus.PAST_DUE), date(2025, 3, 21)) is None
    assert days_overdue(Org(subscription_status=SubscriptionStatus.CANCELED), date(2025, 3, 21)) is None


@pytest.mark.django_db
def test_suspend_overdue_respects_grace_period(org, other_org):
    Org.objects.filter(id=org.id).update(
        subscription_status=SubscriptionStatus.PAST_DUE,
        last_billed_at=datetime(2025, 3, 1, 12, tzinfo=dt_timezone.utc),
    )
    Org.objects.filter(id=other_org.id).update(
        subscription_status=SubscriptionStatus.PAST_DUE,
        last_billed_at=datetime(2025, 3, 10, 12, tzinfo=dt_timezone.utc),
    )

    result = OrgStatusManager.suspend_overdue(today=date(2025, 3, 21))
    assert result.checked == 2
    assert [r["org_id"] for r in result.results] == [str(org.id)]

    org.refresh_from_db()
    other_org.refresh_from_db()
    assert org.status == OrgStatus.SUSPENDED
    assert org.status_source == StatusSource.PAYMENT
    assert "20 days overdue" in org.suspended_reason
    assert "Last billed: 2025-03-01" in org.suspended_reason
    assert other_org.status == OrgStatus.ACTIVE

    log = AuditLog.objects.get(org=org, action="ORG_AUTO_SUSPENDED_OVERDUE")
    assert log.data["days_overdue"] == 20
    assert log.data["grace_period_days"] == 14
