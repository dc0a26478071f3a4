# mos_core/messaging/admin.py
from __future__ import annotations

from django.contrib import admin

from mos_core.messaging.models import Message


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ("id", "org", "title", "audience", "channel", "status", "recipient_count", "sent_at")
    list_filter = ("status", "audience", "channel")
    search_fields = ("title", "org__name")
    ordering = ("-created_at",)
