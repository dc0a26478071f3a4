# mos_core/orgs/admin.py
from __future__ import annotations

from django.contrib import admin

from mos_core.orgs.models import Org, UsageReport


@admin.register(Org)
class OrgAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "name",
        "slug",
        "status",
        "status_source",
        "payment_failure_count",
        "subscription_status",
        "created_at",
    )
    list_filter = ("status", "status_source", "subscription_status", "auto_suspend_enabled")
    search_fields = ("id", "name", "slug", "contact_email", "stripe_customer_id")
    readonly_fields = (
        "status",
        "status_source",
        "paused_at",
        "suspended_at",
        "deactivated_at",
        "payment_failure_count",
        "last_payment_at",
    )
    ordering = ("name",)


@admin.register(UsageReport)
class UsageReportAdmin(admin.ModelAdmin):
    list_display = ("org", "period", "student_count", "created_at")
    list_filter = ("period",)
    search_fields = ("org__name", "org__slug")
    autocomplete_fields = ("org",)
    ordering = ("-period",)
