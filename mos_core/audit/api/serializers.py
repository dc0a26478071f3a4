# mos_core/audit/api/serializers.py
from rest_framework import serializers

from mos_core.audit.models import AuditLog


class AuditLogSerializer(serializers.ModelSerializer):
    actor_user_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = AuditLog
        fields = [
            "id",
            "org_id",
            "action",
            "target_type",
            "target_id",
            "actor_user_id",
            "data",
            "created_at",
        ]
        read_only_fields = fields
