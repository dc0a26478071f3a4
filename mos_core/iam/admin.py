# mos_core/iam/admin.py
from __future__ import annotations

from django.contrib import admin

from mos_core.iam.models import OrgMembership


@admin.register(OrgMembership)
class OrgMembershipAdmin(admin.ModelAdmin):
    list_display = ("user", "org", "role", "staff_subrole", "is_active", "created_at")
    list_filter = ("role", "staff_subrole", "is_active")
    search_fields = ("user__username", "user__email", "org__name", "org__slug")
    autocomplete_fields = ("user", "org")
    ordering = ("-created_at",)
