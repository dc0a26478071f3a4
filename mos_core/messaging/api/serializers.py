# mos_core/messaging/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from mos_core.messaging.models import Audience, Channel, Message


class MessageSerializer(serializers.ModelSerializer):
    created_by_name = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = [
            "id",
            "org_id",
            "title",
            "body",
            "audience",
            "channel",
            "status",
            "class_ids",
            "parent_id",
            "created_by_id",
            "created_by_name",
            "recipient_count",
            "success_count",
            "failure_count",
            "sent_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_created_by_name(self, obj) -> str | None:
        if obj.created_by is None:
            return None
        return obj.created_by.get_full_name() or obj.created_by.username


class SendMessageSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    body = serializers.CharField()
    audience = serializers.ChoiceField(choices=Audience.choices)
    channel = serializers.ChoiceField(choices=Channel.choices, default=Channel.EMAIL)
    class_ids = serializers.ListField(child=serializers.UUIDField(), required=False, default=list)
    parent_id = serializers.IntegerField(required=False, allow_null=True, default=None)
    save_only = serializers.BooleanField(required=False, default=False)


class SendMessageResultSerializer(serializers.Serializer):
    message = MessageSerializer()
    recipients = serializers.IntegerField()
    success_count = serializers.IntegerField()
    failure_count = serializers.IntegerField()
