# mos_core/notifications/email.py
"""
Transactional email. Sending goes through Django's mail framework so the
provider is just EMAIL_BACKEND configuration.

Every sender returns True/False and never raises: a failed notification must
not roll back or fail the business operation that triggered it.
"""
from __future__ import annotations

import logging
from typing import Iterable

from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


def format_pence(amount_p: int | None) -> str:
    return f"£{(amount_p or 0) / 100:.2f}"


def send_email(*, to: Iterable[str], subject: str, body: str) -> bool:
    recipients = [addr for addr in to if addr]
    if not recipients:
        logger.info("Email skipped, no recipients: %s", subject)
        return False
    try:
        send_mail(
            subject=subject,
            message=body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=recipients,
            fail_silently=False,
        )
    except Exception:
        logger.exception("Email send failed: %s", subject)
        return False
    return True


def send_payment_failed_email(
    *,
    to: Iterable[str],
    org_name: str,
    failure_count: int,
    org_status: str,
    reason: str,
    amount_p: int | None = None,
) -> bool:
    lines = [
        f"We could not collect the platform subscription payment for {org_name}.",
        "",
        f"Reason: {reason or 'Payment declined'}",
    ]
    if amount_p:
        lines.append(f"Amount: {format_pence(amount_p)}")
    lines.append(f"Consecutive failed payments: {failure_count}")
    if org_status != "ACTIVE":
        lines += ["", f"Your account is now {org_status.lower()}. Update your payment method to restore access."]
    else:
        lines += ["", "Please update your payment method to avoid interruption."]
    lines += ["", f"{settings.APP_BASE_URL}/settings/billing"]
    return send_email(to=to, subject=f"Payment failed for {org_name}", body="\n".join(lines))


def send_org_deactivated_email(*, to: Iterable[str], org_name: str, reason: str) -> bool:
    body = (
        f"The Madrasah OS account for {org_name} has been deactivated.\n\n"
        f"Reason: {reason}\n\n"
        "If you believe this is a mistake, reply to this email."
    )
    return send_email(to=to, subject=f"{org_name} has been deactivated", body=body)


def send_claim_verification_email(*, to: str, org_name: str, student_name: str, token: str) -> bool:
    verify_url = f"{settings.APP_BASE_URL}/claim/verify?token={token}"
    body = (
        f"You asked to link {student_name} at {org_name} to your account.\n\n"
        f"Confirm your email address to finish: {verify_url}\n\n"
        f"This link expires in {settings.CLAIM_VERIFICATION_TTL_DAYS} days."
    )
    return send_email(to=[to], subject=f"Confirm your email for {org_name}", body=body)


def send_payment_confirmation_email(
    *,
    to: str,
    org_name: str,
    student_name: str,
    month: str,
    amount_p: int,
    method: str,
) -> bool:
    body = (
        f"{org_name} has recorded your payment.\n\n"
        f"Student: {student_name}\n"
        f"Month: {month}\n"
        f"Amount: {format_pence(amount_p)}\n"
        f"Method: {method.replace('_', ' ').title()}\n"
    )
    return send_email(to=[to], subject=f"Payment received: {student_name} ({month})", body=body)



def send_announcement_email(*, to: str, org_name: str, title: str, body: str) -> bool:
    text = f"{body}\n\nBest regards,\n{org_name}"
    return send_email(to=[to], subject=title, body=text)
