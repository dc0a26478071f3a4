# mos_core/orgs/lifecycle.py
"""
Organisation lifecycle: ACTIVE <-> PAUSED/SUSPENDED <-> ACTIVE, and * -> DEACTIVATED.

Two kinds of entry points share the same invariants:

- event driven: handle_payment_failure / handle_payment_success (platform
  billing webhooks) and suspend_overdue (scheduled job);
- manual, owner only: pause / suspend / reactivate / deactivate.

Every state change writes exactly one AuditLog row. Reactivation always
clears the failure counter and the pause/suspend/deactivate timestamps and
reasons. Payment events never deactivate, and never reactivate an org that
was paused or suspended manually.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from uuid import UUID

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from mos_core.audit.services import AuditService
from mos_core.common.api.exceptions import ConflictError
from mos_core.common.batch import BatchResult, run_per_org
from mos_core.iam.services.membership import admin_contacts
from mos_core.notifications import email
from mos_core.orgs.models import Org, OrgStatus, StatusSource, SubscriptionStatus

logger = logging.getLogger(__name__)

ACTION_NONE = "NONE"
ACTION_PAUSED = "PAUSED"
ACTION_SUSPENDED = "SUSPENDED"
ACTION_REACTIVATED = "REACTIVATED"
ACTION_DEACTIVATED = "DEACTIVATED"

_LIFECYCLE_FIELDS = [
    "status",
    "status_source",
    "paused_at",
    "paused_reason",
    "suspended_at",
    "suspended_reason",
    "deactivated_at",
    "deactivated_reason",
    "payment_failure_count",
    "last_payment_at",
    "updated_at",
]


@dataclass(frozen=True)
class LifecycleResult:
    org_id: UUID
    action: str
    status: str
    failure_count: int
    reason: str = ""
    affected_users: list[dict] = field(default_factory=list)


def failure_thresholds() -> tuple[int, int]:
    """(pause_at, suspend_at) consecutive failed payments."""
    return (
        int(getattr(settings, "ORG_PAYMENT_FAILURE_PAUSE_THRESHOLD", 2)),
        int(getattr(settings, "ORG_PAYMENT_FAILURE_SUSPEND_THRESHOLD", 3)),
    )


def _clear_lock_fields(org: Org) -> None:
    org.status_source = ""
    org.paused_at = None
    org.paused_reason = ""
    org.suspended_at = None
    org.suspended_reason = ""
    org.deactivated_at = None
    org.deactivated_reason = ""


def _apply_pause(org: Org, *, reason: str, source: str, at: datetime) -> None:
    org.status = OrgStatus.PAUSED
    org.status_source = source
    org.paused_at = at
    org.paused_reason = reason


def _apply_suspend(org: Org, *, reason: str, source: str, at: datetime) -> None:
    org.status = OrgStatus.SUSPENDED
    org.status_source = source
    org.suspended_at = at
    org.suspended_reason = reason


def _apply_reactivate(org: Org, *, at: datetime) -> None:
    org.status = OrgStatus.ACTIVE
    org.payment_failure_count = 0
    _clear_lock_fields(org)


def _audit(org: Org, *, action: str, actor_user_id: int | None, data: dict) -> None:
    AuditService.log(
        action=action,
        target_type="Org",
        target_id=org.id,
        org_id=org.id,
        actor_user_id=actor_user_id,
        data={"org_name": org.name, "status": org.status, **data},
    )


def _contact_emails(contacts: list[dict]) -> list[str]:
    return [c["email"] for c in contacts if c.get("email")]


def last_anniversary(today: date, day: int) -> date:
    """Most recent billing anniversary on or before `today`."""
    candidate = today.replace(day=day)
    if candidate > today:
        prev_month_end = today.replace(day=1) - timedelta(days=1)
        candidate = prev_month_end.replace(day=day)
    return candidate


def days_overdue(org: Org, today: date) -> int | None:
    """
    Days a platform subscription has gone unpaid, or None when it is not overdue.

    - past_due: counted from last_billed_at, else from the last anniversary.
    - active/trialing with an anniversary: overdue when nothing was billed since
      the last anniversary.
    """
    last_billed = timezone.localdate(org.last_billed_at) if org.last_billed_at else None

    if org.subscription_status == SubscriptionStatus.PAST_DUE:
        if last_billed is not None:
            return (today - last_billed).days
        if org.billing_anniversary_day:
            return (today - last_anniversary(today, org.billing_anniversary_day)).days
        return None

    if org.subscription_status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING) and org.billing_anniversary_day:
        anniversary = last_anniversary(today, org.billing_anniversary_day)
        if last_billed is not None and last_billed >= anniversary:
            return None
        return (today - anniversary).days

    return None


class OrgStatusManager:
    """
    All Org status mutations live here (write-model boundary).
    """

    # ------------------------------------------------------------------
    # Event driven
    # ------------------------------------------------------------------

    @staticmethod
    @transaction.atomic
    def handle_payment_failure(
        *,
        org_id: UUID,
        reason: str = "",
        amount_p: int | None = None,
        failed_at: datetime | None = None,
    ) -> LifecycleResult:
        org = Org.objects.select_for_update().get(id=org_id)
        now = timezone.now()
        failed_at = failed_at or now
        reason = reason or "Payment failed"

        org.payment_failure_count += 1
        org.last_payment_at = None
        count = org.payment_failure_count
        pause_at, suspend_at = failure_thresholds()

        action = ACTION_NONE
        if org.auto_suspend_enabled:
            if count >= suspend_at and org.status in (OrgStatus.ACTIVE, OrgStatus.PAUSED):
                _apply_suspend(
                    org,
                    reason=f"Automatically suspended after {count} failed payments. Last failure: {reason}",
                    source=StatusSource.PAYMENT,
                    at=now,
                )
                action = ACTION_SUSPENDED
            elif count >= pause_at and org.status == OrgStatus.ACTIVE:
                _apply_pause(
                    org,
                    reason=f"Automatically paused after {count} failed payments. Last failure: {reason}",
                    source=StatusSource.PAYMENT,
                    at=now,
                )
                action = ACTION_PAUSED

        org.save(update_fields=_LIFECYCLE_FIELDS)

        contacts = admin_contacts(org_id=org.id)
        audit_action = {
            ACTION_NONE: "ORG_PAYMENT_FAILED",
            ACTION_PAUSED: "ORG_AUTO_PAUSED",
            ACTION_SUSPENDED: "ORG_AUTO_SUSPENDED",
        }[action]
        _audit(
            org,
            action=audit_action,
            actor_user_id=None,
            data={
                "reason": reason,
                "amount_p": amount_p,
                "failure_count": count,
                "failed_at": failed_at,
                "affected_users": contacts,
            },
        )

        logger.warning(
            "Payment failure for org %s: count=%s action=%s status=%s",
            org.id, count, action, org.status,
        )

        recipients = _contact_emails(contacts) or [org.contact_email]
        org_name, org_status = org.name, org.status
        transaction.on_commit(
            lambda: email.send_payment_failed_email(
                to=recipients,
                org_name=org_name,
                failure_count=count,
                org_status=org_status,
                reason=reason,
                amount_p=amount_p,
            )
        )

        return LifecycleResult(
            org_id=org.id,
            action=action,
            status=org.status,
            failure_count=count,
            reason=reason,
            affected_users=contacts,
        )

    @staticmethod
    @transaction.atomic
    def handle_payment_success(
        *,
        org_id: UUID,
        amount_p: int | None = None,
        paid_at: datetime | None = None,
    ) -> LifecycleResult:
        org = Org.objects.select_for_update().get(id=org_id)
        paid_at = paid_at or timezone.now()
        previous_count = org.payment_failure_count
        previous_status = org.status

        org.payment_failure_count = 0
        org.last_payment_at = paid_at

        action = ACTION_NONE
        if org.status in (OrgStatus.PAUSED, OrgStatus.SUSPENDED) and org.status_source == StatusSource.PAYMENT:
            _apply_reactivate(org, at=paid_at)
            action = ACTION_REACTIVATED

        org.save(update_fields=_LIFECYCLE_FIELDS)

        _audit(
            org,
            action="ORG_REACTIVATED" if action == ACTION_REACTIVATED else "ORG_PAYMENT_SUCCEEDED",
            actor_user_id=None,
            data={
                "amount_p": amount_p,
                "paid_at": paid_at,
                "previous_status": previous_status,
                "previous_failure_count": previous_count,
            },
        )
        logger.info("Payment success for org %s: action=%s", org.id, action)

        return LifecycleResult(org_id=org.id, action=action, status=org.status, failure_count=0)

    # ------------------------------------------------------------------
    # Manual (owner)
    # ------------------------------------------------------------------

    @staticmethod
    @transaction.atomic
    def pause(*, org_id: UUID, actor_user_id: int | None, reason: str = "") -> LifecycleResult:
        org = Org.objects.select_for_update().get(id=org_id)

        # idempotent no-op
        if org.status == OrgStatus.PAUSED:
            return LifecycleResult(org_id=org.id, action=ACTION_NONE, status=org.status,
                                   failure_count=org.payment_failure_count)
        if org.status != OrgStatus.ACTIVE:
            raise ConflictError(f"Cannot pause an organisation that is {org.status.lower()}.")

        reason = reason or "Account paused by platform administrator"
        _apply_pause(org, reason=reason, source=StatusSource.MANUAL, at=timezone.now())
        org.save(update_fields=_LIFECYCLE_FIELDS)
        _audit(org, action="ORG_PAUSED", actor_user_id=actor_user_id, data={"reason": reason})

        return LifecycleResult(org_id=org.id, action=ACTION_PAUSED, status=org.status,
                               failure_count=org.payment_failure_count, reason=reason)

    @staticmethod
    @transaction.atomic
    def suspend(*, org_id: UUID, actor_user_id: int | None, reason: str = "") -> LifecycleResult:
        org = Org.objects.select_for_update().get(id=org_id)

        if org.status == OrgStatus.SUSPENDED:
            return LifecycleResult(org_id=org.id, action=ACTION_NONE, status=org.status,
                                   failure_count=org.payment_failure_count)
        if org.status == OrgStatus.DEACTIVATED:
            raise ConflictError("Cannot suspend a deactivated organisation.")

        reason = reason or "Account suspended by platform administrator"
        _apply_suspend(org, reason=reason, source=StatusSource.MANUAL, at=timezone.now())
        org.save(update_fields=_LIFECYCLE_FIELDS)

        contacts = admin_contacts(org_id=org.id)
        _audit(org, action="ORG_SUSPENDED", actor_user_id=actor_user_id,
               data={"reason": reason, "affected_users": contacts})

        return LifecycleResult(org_id=org.id, action=ACTION_SUSPENDED, status=org.status,
                               failure_count=org.payment_failure_count, reason=reason,
                               affected_users=contacts)

    @staticmethod
    @transaction.atomic
    def reactivate(*, org_id: UUID, actor_user_id: int | None, reason: str = "") -> LifecycleResult:
        org = Org.objects.select_for_update().get(id=org_id)

        if org.status == OrgStatus.ACTIVE and org.payment_failure_count == 0:
            return LifecycleResult(org_id=org.id, action=ACTION_NONE, status=org.status, failure_count=0)

        previous_status = org.status
        _apply_reactivate(org, at=timezone.now())
        org.save(update_fields=_LIFECYCLE_FIELDS)
        _audit(org, action="ORG_REACTIVATED", actor_user_id=actor_user_id,
               data={"reason": reason, "previous_status": previous_status})

        return LifecycleResult(org_id=org.id, action=ACTION_REACTIVATED, status=org.status,
                               failure_count=0, reason=reason)

    @staticmethod
    @transaction.atomic
    def deactivate(*, org_id: UUID, actor_user_id: int | None, reason: str = "") -> LifecycleResult:
        org = Org.objects.select_for_update().get(id=org_id)

        if org.status == OrgStatus.DEACTIVATED:
            return LifecycleResult(org_id=org.id, action=ACTION_NONE, status=org.status,
                                   failure_count=org.payment_failure_count)

        reason = reason or "Account deactivated by platform administrator"
        org.status = OrgStatus.DEACTIVATED
        org.status_source = StatusSource.MANUAL
        org.deactivated_at = timezone.now()
        org.deactivated_reason = reason
        update_fields = list(_LIFECYCLE_FIELDS)
        if org.stripe_subscription_id:
            org.subscription_status = SubscriptionStatus.CANCELED
            update_fields.append("subscription_status")
        org.save(update_fields=update_fields)

        contacts = admin_contacts(org_id=org.id)
        _audit(org, action="ORG_DEACTIVATED", actor_user_id=actor_user_id,
               data={"reason": reason, "affected_users": len(contacts)})

        recipients = _contact_emails(contacts)
        org_name = org.name
        transaction.on_commit(
            lambda: email.send_org_deactivated_email(to=recipients, org_name=org_name, reason=reason)
        )

        return LifecycleResult(org_id=org.id, action=ACTION_DEACTIVATED, status=org.status,
                               failure_count=org.payment_failure_count, reason=reason,
                               affected_users=contacts)

    # ------------------------------------------------------------------
    # Scheduled
    # ------------------------------------------------------------------

    @staticmethod
    def suspend_overdue(*, today: date | None = None) -> BatchResult:
        """
        Suspend ACTIVE orgs (auto-suspend on) whose platform subscription is
        unpaid for longer than PLATFORM_BILLING_GRACE_PERIOD_DAYS.
        """
        today = today or timezone.localdate()
        grace_days = int(getattr(settings, "PLATFORM_BILLING_GRACE_PERIOD_DAYS", 14))

        candidates = (
            Org.objects.filter(status=OrgStatus.ACTIVE, auto_suspend_enabled=True)
            .filter(
                subscription_status__in=[
                    SubscriptionStatus.PAST_DUE,
                    SubscriptionStatus.ACTIVE,
                    SubscriptionStatus.TRIALING,
                ]
            )
            .order_by("created_at")
        )

        def _check(org: Org) -> dict | None:
            overdue = days_overdue(org, today)
            if overdue is None or overdue <= grace_days:
                return None

            locked = Org.objects.select_for_update().get(id=org.id)
            last_billed = locked.last_billed_at.date().isoformat() if locked.last_billed_at else "never"
            reason = (
                f"Account automatically suspended due to overdue payment. Payment was {overdue} days overdue "
                f"(grace period: {grace_days} days). Last billed: {last_billed}."
            )
            previous_subscription_status = locked.subscription_status
            _apply_suspend(locked, reason=reason, source=StatusSource.PAYMENT, at=timezone.now())
            locked.subscription_status = SubscriptionStatus.PAST_DUE
            locked.save(update_fields=_LIFECYCLE_FIELDS + ["subscription_status"])
            _audit(
                locked,
                action="ORG_AUTO_SUSPENDED_OVERDUE",
                actor_user_id=None,
                data={
                    "days_overdue": overdue,
                    "grace_period_days": grace_days,
                    "last_billed_at": locked.last_billed_at,
                    "subscription_status": previous_subscription_status,
                },
            )
            return {"status": "suspended", "days_overdue": overdue}

        result = run_per_org(candidates, _check, job="suspend_overdue")
        return result
