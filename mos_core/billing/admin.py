# mos_core/billing/admin.py
from __future__ import annotations

from django.contrib import admin

from mos_core.billing.models import GiftAidDeclaration, Invoice, MonthlyPaymentRecord, Payment, WebhookEvent


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ("id", "org", "student", "month", "amount_p", "due_date", "status", "paid_at", "created_at")
    list_filter = ("status", "paid_method", "month")
    search_fields = ("id", "student__first_name", "student__last_name", "org__name")
    autocomplete_fields = ("org",)
    ordering = ("-created_at",)


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "org", "invoice", "method", "amount_p", "status", "provider_id", "created_at")
    list_filter = ("method", "status")
    search_fields = ("id", "provider_id", "invoice__id")
    ordering = ("-created_at",)

    # Payments are append-only
    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(MonthlyPaymentRecord)
class MonthlyPaymentRecordAdmin(admin.ModelAdmin):
    list_display = ("id", "org", "student", "klass", "month", "amount_p", "status", "method", "paid_at")
    list_filter = ("status", "method", "month")
    search_fields = ("student__first_name", "student__last_name", "klass__name", "reference")
    ordering = ("-month",)


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = ("event_id", "provider", "event_type", "created_at")
    list_filter = ("provider", "event_type")
    search_fields = ("event_id",)
    ordering = ("-created_at",)


@admin.register(GiftAidDeclaration)
class GiftAidDeclarationAdmin(admin.ModelAdmin):
    list_display = ("id", "org", "parent", "status", "postcode", "declared_at")
    list_filter = ("status",)
    search_fields = ("parent__email", "parent__last_name", "postcode")
    ordering = ("-declared_at",)
