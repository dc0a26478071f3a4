# mos_core/integrations/whatsapp.py
"""
WhatsApp Cloud API webhook: subscription handshake, payload signature and
message status events. Outbound messaging is not handled here.
"""
from __future__ import annotations

import hashlib
import hmac
import logging

from django.db import transaction

from mos_core.audit.services import AuditService
from mos_core.orgs.selectors import org_by_whatsapp_number

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def challenge_response(params, verify_token: str) -> str | None:
    """
    The hub.challenge to echo back, or None when the handshake is refused.
    """
    if not verify_token:
        return None
    if params.get("hub.mode") != "subscribe":
        return None
    token = params.get("hub.verify_token") or ""
    if not hmac.compare_digest(token.encode(), verify_token.encode()):
        return None
    return params.get("hub.challenge") or ""


def sign_payload(payload: bytes, app_secret: str) -> str:
    return SIGNATURE_PREFIX + hmac.new(app_secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, header: str, app_secret: str) -> bool:
    if not app_secret or not header or not header.startswith(SIGNATURE_PREFIX):
        return False
    return hmac.compare_digest(sign_payload(payload, app_secret).encode(), header.encode())


@transaction.atomic
def record_status_events(payload: dict) -> int:
    """
    Writes one audit entry per message status (sent, delivered, read,
    failed) into the org that owns the receiving phone number id.
    Returns the number of entries written.
    """
    written = 0
    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            value = change.get("value") or {}
            phone_number_id = (value.get("metadata") or {}).get("phone_number_id") or ""
            statuses = value.get("statuses") or []
            if not statuses:
                continue

            org = org_by_whatsapp_number(phone_number_id)
            if org is None:
                logger.warning("WhatsApp statuses for unknown phone number id %s", phone_number_id)
                continue

            for item in statuses:
                errors = item.get("errors") or []
                AuditService.log(
                    action="WHATSAPP_MESSAGE_STATUS",
                    target_type="WhatsAppMessage",
                    target_id=item.get("id") or "",
                    org_id=org.id,
                    actor_user_id=None,
                    data={
                        "status": item.get("status"),
                        "timestamp": item.get("timestamp"),
                        "error": (errors[0].get("title") if errors else None),
                    },
                )
                written += 1
    return written
