# mos_core/messaging/models.py
from __future__ import annotations

from django.conf import settings
from django.db import models

from mos_core.common.models import OrgScopedModel


class Audience(models.TextChoices):
    ALL = "ALL", "All parents"
    BY_CLASS = "BY_CLASS", "Parents of selected classes"
    INDIVIDUAL = "INDIVIDUAL", "One parent"


class Channel(models.TextChoices):
    EMAIL = "EMAIL", "Email"
    WHATSAPP = "WHATSAPP", "WhatsApp"


class MessageStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    SENT = "SENT", "Sent"


class Message(OrgScopedModel):
    """
    An announcement to parents. The recipient set is resolved once, when the
    message is sent, and frozen in MessageRecipient rows.
    """
    title = models.CharField(max_length=255)
    body = models.TextField()
    audience = models.CharField(max_length=16, choices=Audience.choices)
    channel = models.CharField(max_length=16, choices=Channel.choices, default=Channel.EMAIL)
    status = models.CharField(max_length=8, choices=MessageStatus.choices, default=MessageStatus.DRAFT, db_index=True)
    class_ids = models.JSONField(default=list, blank=True)
    parent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="direct_messages",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sent_messages",
    )
    recipient_count = models.PositiveIntegerField(default=0)
    success_count = models.PositiveIntegerField(default=0)
    failure_count = models.PositiveIntegerField(default=0)
    sent_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "messaging_message"
        indexes = [
            models.Index(fields=["org", "status"]),
        ]
        ordering = ["-created_at"]


class MessageRecipient(OrgScopedModel):
    message = models.ForeignKey(Message, on_delete=models.CASCADE, related_name="recipients")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="received_messages")
    # None until a delivery was attempted (save-only and WhatsApp stay None)
    delivered = models.BooleanField(null=True)

    class Meta:
        db_table = "messaging_message_recipient"
        constraints = [
            models.UniqueConstraint(fields=["message", "user"], name="uq_message_recipient"),
        ]
