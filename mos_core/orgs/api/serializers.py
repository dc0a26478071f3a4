# mos_core/orgs/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from mos_core.orgs.models import Org, OrgStatus

WEEKDAYS = ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY")


class StrictKeysMixin:
    """
    Rejects payload keys that are not declared fields.
    """

    def to_internal_value(self, data):
        if isinstance(data, dict):
            unknown = sorted(set(data) - set(self.fields))
            if unknown:
                raise serializers.ValidationError({key: "Unknown field." for key in unknown})
        return super().to_internal_value(data)


class OrgSettingsSerializer(StrictKeysMixin, serializers.Serializer):
    attendance_days = serializers.ListField(
        child=serializers.ChoiceField(choices=WEEKDAYS),
        allow_empty=True,
        max_length=7,
    )
    reminder_days_before = serializers.IntegerField(min_value=0, max_value=28)
    gift_aid_enabled = serializers.BooleanField()

    def validate_attendance_days(self, value):
        # keep weekday order, drop duplicates
        return [day for day in WEEKDAYS if day in set(value)]


class OrgSerializer(serializers.ModelSerializer):
    class Meta:
        model = Org
        fields = [
            "id",
            "name",
            "slug",
            "timezone",
            "contact_email",
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
            "auto_suspend_enabled",
            "fee_due_day",
            "card_payments_enabled",
            "cash_payments_enabled",
            "bank_transfer_enabled",
            "payment_instructions",
            "subscription_status",
            "billing_anniversary_day",
            "last_billed_at",
            "settings",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class OwnerOrgSerializer(OrgSerializer):
    member_count = serializers.IntegerField(read_only=True, required=False)

    class Meta(OrgSerializer.Meta):
        fields = OrgSerializer.Meta.fields + [
            "stripe_customer_id",
            "stripe_subscription_id",
            "whatsapp_phone_number_id",
            "member_count",
        ]
        read_only_fields = fields


class OrgCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    slug = serializers.SlugField(max_length=64)
    timezone = serializers.CharField(max_length=64, required=False, default="Europe/London")
    contact_email = serializers.EmailField(required=False, allow_blank=True, default="")
    admin_user_id = serializers.IntegerField(required=False, allow_null=True, default=None)


class OrgUpdateSerializer(StrictKeysMixin, serializers.Serializer):
    """
    PATCH body for the active org (ADMIN).
    """
    name = serializers.CharField(max_length=255, required=False)
    timezone = serializers.CharField(max_length=64, required=False)
    contact_email = serializers.EmailField(required=False, allow_blank=True)
    fee_due_day = serializers.IntegerField(required=False, allow_null=True, min_value=1, max_value=28)
    card_payments_enabled = serializers.BooleanField(required=False)
    cash_payments_enabled = serializers.BooleanField(required=False)
    bank_transfer_enabled = serializers.BooleanField(required=False)
    payment_instructions = serializers.CharField(required=False, allow_blank=True)
    settings = OrgSettingsSerializer(required=False)


class OrgStatusActionSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class LifecycleResultSerializer(serializers.Serializer):
    org_id = serializers.UUIDField()
    action = serializers.CharField()
    status = serializers.ChoiceField(choices=OrgStatus.choices)
    failure_count = serializers.IntegerField()
    reason = serializers.CharField(allow_blank=True)
    affected_users = serializers.ListField(child=serializers.DictField())
