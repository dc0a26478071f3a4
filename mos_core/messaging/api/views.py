# mos_core/messaging/api/views.py
from __future__ import annotations

from uuid import UUID

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.response import Response

from mos_core.common.api.pagination import paginate
from mos_core.common.api.routing import UUID_PATTERN
from mos_core.common.permissions import OrgRolePermission
from mos_core.iam.roles import ALL_ROLES, ROLE_PARENT, STAFF_ROLES
from mos_core.messaging.api.serializers import (
    MessageSerializer,
    SendMessageResultSerializer,
    SendMessageSerializer,
)
from mos_core.messaging.models import Message, MessageStatus
from mos_core.messaging.services import send_message


class MessagePermission(OrgRolePermission):
    allowed_roles_per_action = {
        "list": ALL_ROLES,
        "retrieve": ALL_ROLES,
        "create": STAFF_ROLES,
    }
    permission_per_action = {
        "list": "send_messages",
        "retrieve": "send_messages",
        "create": "send_messages",
    }


class MessageViewSet(viewsets.GenericViewSet):
    """
    Parent announcements of the active org.
    - list/retrieve (parents: messages addressed to them)
    - create: resolve recipients, store and deliver
    """
    permission_classes = [MessagePermission]
    lookup_value_regex = UUID_PATTERN
    serializer_class = MessageSerializer
    queryset = Message.objects.none()

    def _visible(self, request):
        ctx = request.org_context
        qs = Message.objects.for_org(ctx.org_id).select_related("created_by")
        if ctx.role == ROLE_PARENT:
            qs = qs.filter(status=MessageStatus.SENT, recipients__user_id=request.user.id)
        return qs

    @extend_schema(tags=["Messages"], responses={200: MessageSerializer(many=True)})
    def list(self, request):
        return paginate(request, self._visible(request).order_by("-created_at"), MessageSerializer)

    @extend_schema(tags=["Messages"], responses={200: MessageSerializer})
    def retrieve(self, request, pk=None):
        obj = self._visible(request).get(id=UUID(str(pk)))
        return Response(MessageSerializer(obj).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Messages"], request=SendMessageSerializer, responses={201: SendMessageResultSerializer})
    def create(self, request):
        ctx = request.org_context

        ser = SendMessageSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = send_message(org_id=ctx.org_id, actor_user_id=request.user.id, **ser.validated_data)
        return Response(
            SendMessageResultSerializer(
                {
                    "message": result.message,
                    "recipients": result.recipients,
                    "success_count": result.success_count,
                    "failure_count": result.failure_count,
                }
            ).data,
            status=status.HTTP_201_CREATED,
        )
