# mos_core/iam/api/schema_serializers.py
from __future__ import annotations

from rest_framework import serializers


class LoginRequestSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField()


class DetailResponseSerializer(serializers.Serializer):
    detail = serializers.CharField()


class MeUserSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    username = serializers.CharField(allow_null=True, required=False)
    email = serializers.EmailField(allow_null=True, required=False)
    name = serializers.CharField(allow_blank=True, required=False)
    is_superuser = serializers.BooleanField()


class MembershipSerializer(serializers.Serializer):
    org_id = serializers.UUIDField()
    org_name = serializers.CharField()
    org_slug = serializers.CharField()
    org_status = serializers.CharField()
    role = serializers.CharField()
    staff_subrole = serializers.CharField(allow_null=True, required=False)


class ActiveOrgSerializer(serializers.Serializer):
    org_id = serializers.UUIDField()
    role = serializers.CharField()
    staff_subrole = serializers.CharField(allow_null=True, required=False)
    org_status = serializers.CharField()


class MeResponseSerializer(serializers.Serializer):
    user = MeUserSerializer()
    memberships = MembershipSerializer(many=True)
    active_org = ActiveOrgSerializer(allow_null=True, required=False)


class OrgSwitchRequestSerializer(serializers.Serializer):
    org_id = serializers.UUIDField()


class OrgSwitchResponseSerializer(serializers.Serializer):
    message = serializers.CharField()
    active_org = ActiveOrgSerializer()


class OrgMiniSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    name = serializers.CharField()
    slug = serializers.CharField()
    status = serializers.CharField()


class SessionBootstrapResponseSerializer(serializers.Serializer):
    user = MeUserSerializer()
    memberships = MembershipSerializer(many=True)
    active_org = OrgMiniSerializer(allow_null=True, required=False)
    role = serializers.CharField(allow_null=True, required=False)
    staff_subrole = serializers.CharField(allow_null=True, required=False)

    # Capability list for UI gating (menus/buttons)
    permissions = serializers.ListField(child=serializers.CharField(), required=False)
    sections = serializers.ListField(child=serializers.CharField(), required=False)
    actions = serializers.ListField(child=serializers.CharField(), required=False)

    server_time = serializers.DateTimeField(required=False)
    api_version = serializers.CharField(required=False)
