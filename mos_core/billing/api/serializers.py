# mos_core/billing/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from mos_core.billing.models import (
    GiftAidDeclaration,
    GiftAidStatus,
    Invoice,
    MonthlyPaymentRecord,
    Payment,
    PaymentMethod,
    RecordStatus,
)
from mos_core.billing.payment_status import parse_month


def _validate_month(value: str) -> str:
    try:
        parse_month(value)
    except ValueError:
        raise serializers.ValidationError("Invalid month format. Expected YYYY-MM")
    return value


class InvoiceSerializer(serializers.ModelSerializer):
    student_name = serializers.CharField(source="student.full_name", read_only=True)

    class Meta:
        model = Invoice
        fields = [
            "id",
            "org_id",
            "student_id",
            "student_name",
            "month",
            "amount_p",
            "due_date",
            "status",
            "paid_at",
            "paid_method",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class InvoiceCreateSerializer(serializers.Serializer):
    student_id = serializers.UUIDField()
    amount_p = serializers.IntegerField(min_value=1)
    due_date = serializers.DateField()
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class GenerateMonthlySerializer(serializers.Serializer):
    month = serializers.CharField(required=False, allow_null=True, default=None)

    def validate_month(self, value):
        return _validate_month(value) if value else None


class GenerateInvoicesResultSerializer(serializers.Serializer):
    month = serializers.CharField()
    created = serializers.IntegerField()
    skipped = serializers.IntegerField()
    invoices = serializers.ListField(child=serializers.DictField())


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = ["id", "invoice_id", "method", "amount_p", "status", "provider_id", "created_at"]
        read_only_fields = fields


class RecordCashSerializer(serializers.Serializer):
    amount_p = serializers.IntegerField(min_value=1)
    method = serializers.ChoiceField(choices=[PaymentMethod.CASH, PaymentMethod.DIRECT_DEBIT])
    notes = serializers.CharField(required=False, allow_blank=True, max_length=2000, default="")


class RecordCashResultSerializer(serializers.Serializer):
    payment = PaymentSerializer()
    invoice = InvoiceSerializer()


class PaymentRecordSerializer(serializers.ModelSerializer):
    student_name = serializers.CharField(source="student.full_name", read_only=True)
    class_name = serializers.CharField(source="klass.name", read_only=True)
    class_id = serializers.UUIDField(source="klass_id", read_only=True)

    class Meta:
        model = MonthlyPaymentRecord
        fields = [
            "id",
            "student_id",
            "student_name",
            "class_id",
            "class_name",
            "month",
            "amount_p",
            "status",
            "method",
            "paid_at",
            "reference",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PaymentRecordUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=RecordStatus.choices, required=False)
    method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False, allow_blank=True)
    paid_at = serializers.DateTimeField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=2000)
    reference = serializers.CharField(required=False, allow_blank=True, max_length=255)


class GenerateRecordsSerializer(serializers.Serializer):
    month = serializers.CharField()

    def validate_month(self, value):
        return _validate_month(value)


class GenerateRecordsResultSerializer(serializers.Serializer):
    month = serializers.CharField()
    created = serializers.IntegerField()
    existing = serializers.IntegerField()


class RecalculateResultSerializer(serializers.Serializer):
    checked = serializers.IntegerField()
    updated = serializers.IntegerField()


class GiftAidDeclarationSerializer(serializers.ModelSerializer):
    parent_name = serializers.SerializerMethodField()
    parent_email = serializers.EmailField(source="parent.email", read_only=True)

    class Meta:
        model = GiftAidDeclaration
        fields = [
            "id",
            "parent_id",
            "parent_name",
            "parent_email",
            "status",
            "title",
            "house",
            "postcode",
            "declared_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_parent_name(self, obj) -> str:
        return obj.parent.get_full_name() or obj.parent.username


class GiftAidDeclareSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=GiftAidStatus.choices)
    title = serializers.CharField(max_length=16, required=False, allow_blank=True, default="")
    house = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    postcode = serializers.CharField(max_length=16, required=False, allow_blank=True, default="")
