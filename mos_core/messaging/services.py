# mos_core/messaging/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence
from uuid import UUID

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from mos_core.audit.services import AuditService
from mos_core.iam.models import MembershipRole, OrgMembership
from mos_core.messaging.models import Audience, Channel, Message, MessageRecipient, MessageStatus
from mos_core.notifications import email
from mos_core.orgs.models import Org
from mos_core.students.models import Class, Student

logger = logging.getLogger(__name__)

User = get_user_model()


@dataclass(frozen=True)
class SendResult:
    message: Message
    recipients: int
    success_count: int
    failure_count: int


def _parent_ids(org_id: UUID) -> set[int]:
    return set(
        OrgMembership.objects.filter(org_id=org_id, role=MembershipRole.PARENT, is_active=True)
        .values_list("user_id", flat=True)
    )


def resolve_recipients(
    *,
    org_id: UUID,
    audience: str,
    class_ids: Sequence[UUID] = (),
    parent_id: Optional[int] = None,
) -> list[int]:
    """
    User ids of the parents a message goes to. Only active PARENT members of
    the org are ever addressed.
    """
    parents = _parent_ids(org_id)

    if audience == Audience.ALL:
        return sorted(parents)

    if audience == Audience.BY_CLASS:
        if not class_ids:
            raise ValidationError({"class_ids": "Select at least one class."})
        found = Class.objects.for_org(org_id).filter(id__in=class_ids).count()
        if found != len(set(class_ids)):
            raise ValidationError({"class_ids": "One or more classes do not belong to this organisation."})
        ids = (
            Student.objects.for_org(org_id)
            .filter(is_archived=False, enrollments__klass_id__in=class_ids, primary_parent__isnull=False)
            .values_list("primary_parent_id", flat=True)
            .distinct()
        )
        return sorted(set(ids) & parents)

    if audience == Audience.INDIVIDUAL:
        if parent_id is None:
            raise ValidationError({"parent_id": "This field is required for an individual message."})
        if parent_id not in parents:
            raise ValidationError({"parent_id": "Recipient must be a parent in this organisation."})
        return [parent_id]

    raise ValidationError({"audience": f"Unknown audience {audience}"})


def send_message(
    *,
    org_id: UUID,
    title: str,
    body: str,
    audience: str,
    channel: str = Channel.EMAIL,
    class_ids: Sequence[UUID] = (),
    parent_id: Optional[int] = None,
    save_only: bool = False,
    actor_user_id: Optional[int] = None,
) -> SendResult:
    """
    Saves the message for the parent portal and emails each recipient.
    WhatsApp and save-only messages are stored without delivery; the
    message is SENT either way so parents can read it in the portal.
    """
    recipient_ids = resolve_recipients(org_id=org_id, audience=audience, class_ids=class_ids, parent_id=parent_id)

    with transaction.atomic():
        message = Message.objects.create(
            org_id=org_id,
            title=title,
            body=body,
            audience=audience,
            channel=channel,
            class_ids=[str(c) for c in class_ids] if audience == Audience.BY_CLASS else [],
            parent_id=parent_id if audience == Audience.INDIVIDUAL else None,
            created_by_id=actor_user_id,
            recipient_count=len(recipient_ids),
        )
        MessageRecipient.objects.bulk_create(
            [MessageRecipient(org_id=org_id, message=message, user_id=uid) for uid in recipient_ids]
        )

    success = failure = 0
    if save_only or channel != Channel.EMAIL:
        success = len(recipient_ids)
    else:
        org_name = Org.objects.values_list("name", flat=True).get(id=org_id)
        addresses = dict(User.objects.filter(id__in=recipient_ids).values_list("id", "email"))
        delivered, undelivered = [], []
        for uid in recipient_ids:
            ok = email.send_announcement_email(to=addresses.get(uid) or "", org_name=org_name, title=title, body=body)
            (delivered if ok else undelivered).append(uid)
        success, failure = len(delivered), len(undelivered)
        MessageRecipient.objects.filter(message=message, user_id__in=delivered).update(delivered=True)
        MessageRecipient.objects.filter(message=message, user_id__in=undelivered).update(delivered=False)

    with transaction.atomic():
        message.status = MessageStatus.SENT
        message.sent_at = timezone.now()
        message.success_count = success
        message.failure_count = failure
        message.save(update_fields=["status", "sent_at", "success_count", "failure_count", "updated_at"])

        AuditService.log(
            action="SEND_MESSAGE",
            target_type="Message",
            target_id=message.id,
            org_id=org_id,
            actor_user_id=actor_user_id,
            data={
                "title": title,
                "channel": channel,
                "audience": audience,
                "recipients": len(recipient_ids),
                "success_count": success,
                "failure_count": failure,
            },
        )

    if failure:
        logger.warning("Message delivered with failures", extra={"message_id": str(message.id), "failed": failure})
    return SendResult(message=message, recipients=len(recipient_ids), success_count=success, failure_count=failure)
