# mos_core/billing/webhooks.py
"""
Stripe webhook handling.

Only the wire format is spoken here (signature header and event JSON); there
is no Stripe SDK. Two flows share the endpoint:

- platform billing (org -> platform): `invoice.*` and
  `customer.subscription.*` events, matched to an Org by customer id, drive
  the lifecycle manager;
- parent fees: `payment_intent.*` events carrying `orgId`/`invoiceId`
  metadata update Payment and Invoice rows.

Unknown event types are acknowledged and logged.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import time
from datetime import datetime, timezone as dt_timezone
from typing import Callable
from uuid import UUID

from django.db import IntegrityError, transaction

from mos_core.audit.services import AuditService
from mos_core.billing.models import Invoice, WebhookEvent
from mos_core.billing.services import InvoiceService
from mos_core.orgs.lifecycle import OrgStatusManager
from mos_core.orgs.models import Org, SubscriptionStatus
from mos_core.orgs.selectors import org_by_stripe_customer

logger = logging.getLogger(__name__)

PROVIDER_STRIPE = "stripe"

OUTCOME_HANDLED = "handled"
OUTCOME_IGNORED = "ignored"
OUTCOME_DUPLICATE = "duplicate"


class SignatureError(Exception):
    pass


def compute_signature(payload: bytes, secret: str, timestamp: int | str) -> str:
    signed = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def parse_signature_header(header: str) -> tuple[int, list[str]]:
    """
    "t=1700000000,v1=abc,v1=def" -> (1700000000, ["abc", "def"])
    """
    timestamp = None
    signatures: list[str] = []
    for part in (header or "").split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise SignatureError("Invalid timestamp in signature header")
        elif key == "v1" and value:
            signatures.append(value)

    if timestamp is None or not signatures:
        raise SignatureError("Malformed signature header")
    return timestamp, signatures


def verify_stripe_signature(
    payload: bytes,
    header: str,
    secret: str,
    *,
    tolerance: int = 300,
    now: float | None = None,
) -> None:
    if not secret:
        raise SignatureError("Webhook secret is not configured")

    timestamp, signatures = parse_signature_header(header)
    expected = compute_signature(payload, secret, timestamp)

    if not any(hmac.compare_digest(expected.encode(), sig.encode()) for sig in signatures):
        raise SignatureError("No signature matches the payload")

    now = time.time() if now is None else now
    if tolerance and abs(now - timestamp) > tolerance:
        raise SignatureError("Timestamp outside the tolerance zone")


def _from_epoch(value) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)


def _metadata_uuid(metadata: dict, *keys: str) -> UUID | None:
    for key in keys:
        raw = metadata.get(key)
        if raw:
            try:
                return UUID(str(raw))
            except ValueError:
                return None
    return None


def _platform_org(obj: dict, event_type: str) -> Org | None:
    org = org_by_stripe_customer(obj.get("customer") or "")
    if org is None:
        logger.warning("Stripe %s for unknown customer %s", event_type, obj.get("customer"))
    return org


# -------------------------------------------------------------------
# Platform billing
# -------------------------------------------------------------------

def _on_invoice_payment_failed(obj: dict, event_type: str) -> str:
    org = _platform_org(obj, event_type)
    if org is None:
        return OUTCOME_IGNORED

    Org.objects.filter(id=org.id).update(subscription_status=SubscriptionStatus.PAST_DUE)

    error = obj.get("last_payment_error") or {}
    reason = error.get("message") or f"Invoice {obj.get('id', '')} payment failed".strip()
    OrgStatusManager.handle_payment_failure(
        org_id=org.id,
        reason=reason,
        amount_p=obj.get("amount_due"),
        failed_at=_from_epoch(obj.get("created")),
    )
    return OUTCOME_HANDLED


def _on_invoice_payment_succeeded(obj: dict, event_type: str) -> str:
    org = _platform_org(obj, event_type)
    if org is None:
        return OUTCOME_IGNORED

    paid_at = _from_epoch((obj.get("status_transitions") or {}).get("paid_at")) or _from_epoch(obj.get("created"))
    Org.objects.filter(id=org.id).update(
        subscription_status=SubscriptionStatus.ACTIVE,
        last_billed_at=paid_at or datetime.now(tz=dt_timezone.utc),
    )
    OrgStatusManager.handle_payment_success(org_id=org.id, amount_p=obj.get("amount_paid"), paid_at=paid_at)
    return OUTCOME_HANDLED


def _on_subscription_changed(obj: dict, event_type: str) -> str:
    org = _platform_org(obj, event_type)
    if org is None:
        return OUTCOME_IGNORED

    deleted = event_type == "customer.subscription.deleted"
    status = SubscriptionStatus.CANCELED if deleted else (obj.get("status") or "")
    if status not in SubscriptionStatus.values:
        logger.warning("Unknown subscription status %r for org %s", status, org.id)
        return OUTCOME_IGNORED

    previous = org.subscription_status
    Org.objects.filter(id=org.id).update(
        subscription_status=status,
        stripe_subscription_id=obj.get("id") or org.stripe_subscription_id,
    )
    AuditService.log(
        action="PLATFORM_SUBSCRIPTION_CANCELED" if deleted else "PLATFORM_SUBSCRIPTION_UPDATED",
        target_type="Org",
        target_id=org.id,
        org_id=org.id,
        actor_user_id=None,
        data={"subscription_id": obj.get("id"), "previous_status": previous, "status": status},
    )
    return OUTCOME_HANDLED


# -------------------------------------------------------------------
# Parent fees
# -------------------------------------------------------------------

def _on_payment_intent(obj: dict, event_type: str) -> str:
    metadata = obj.get("metadata") or {}
    org_id = _metadata_uuid(metadata, "orgId", "org_id")
    invoice_id = _metadata_uuid(metadata, "invoiceId", "invoice_id")
    if org_id is None or invoice_id is None:
        logger.info("Stripe %s %s without invoice metadata", event_type, obj.get("id"))
        return OUTCOME_IGNORED

    succeeded = event_type == "payment_intent.succeeded"
    error = obj.get("last_payment_error") or {}
    try:
        InvoiceService.apply_provider_outcome(
            org_id=org_id,
            invoice_id=invoice_id,
            provider_id=obj.get("id") or "",
            succeeded=succeeded,
            amount_p=int(obj.get("amount_received") or obj.get("amount") or 0),
            failure_reason="" if succeeded else (error.get("message") or "Payment failed"),
        )
    except Invoice.DoesNotExist:
        logger.warning("Stripe %s for unknown invoice %s in org %s", event_type, invoice_id, org_id)
        return OUTCOME_IGNORED
    return OUTCOME_HANDLED


HANDLERS: dict[str, Callable[[dict, str], str]] = {
    "invoice.payment_failed": _on_invoice_payment_failed,
    "invoice.payment_succeeded": _on_invoice_payment_succeeded,
    "customer.subscription.created": _on_subscription_changed,
    "customer.subscription.updated": _on_subscription_changed,
    "customer.subscription.deleted": _on_subscription_changed,
    "payment_intent.succeeded": _on_payment_intent,
    "payment_intent.payment_failed": _on_payment_intent,
}


@transaction.atomic
def handle_stripe_event(event: dict) -> str:
    """
    Dispatches one verified event. A redelivered event id is skipped; the id
    is stored in the same transaction as the handling, so a failed attempt
    can be retried.
    """
    event_type = event.get("type") or ""
    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.info("Unhandled Stripe event type %s", event_type)
        return OUTCOME_IGNORED

    event_id = event.get("id") or ""
    if event_id:
        try:
            with transaction.atomic():
                WebhookEvent.objects.create(provider=PROVIDER_STRIPE, event_id=event_id, event_type=event_type)
        except IntegrityError:
            logger.info("Duplicate Stripe event %s ignored", event_id)
            return OUTCOME_DUPLICATE

    obj = (event.get("data") or {}).get("object") or {}
    outcome = handler(obj, event_type)
    logger.info("Stripe event %s (%s): %s", event_id, event_type, outcome)
    return outcome
