# mos_core/integrations/api/views.py
from __future__ import annotations

import json
import logging

from django.conf import settings
from django.http import HttpResponse
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from mos_core.integrations import whatsapp

logger = logging.getLogger(__name__)


class WhatsAppWebhookView(APIView):
    """
    GET: Meta subscription handshake.
    POST: signed event delivery (X-Hub-Signature-256).
    """
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = []

    @extend_schema(
        tags=["Webhooks"],
        responses={200: OpenApiTypes.STR},
        parameters=[
            OpenApiParameter(name="hub.mode", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=True),
            OpenApiParameter(name="hub.verify_token", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=True),
            OpenApiParameter(name="hub.challenge", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=True),
        ],
    )
    def get(self, request):
        challenge = whatsapp.challenge_response(request.query_params, settings.WHATSAPP_VERIFY_TOKEN)
        if challenge is None:
            raise PermissionDenied("Verification failed")
        # Meta expects the bare challenge string, not JSON
        return HttpResponse(challenge, content_type="text/plain")

    @extend_schema(tags=["Webhooks"], request=OpenApiTypes.OBJECT, responses={200: OpenApiTypes.OBJECT})
    def post(self, request):
        payload = request.body
        header = request.META.get("HTTP_X_HUB_SIGNATURE_256", "")

        if not whatsapp.verify_signature(payload, header, settings.WHATSAPP_APP_SECRET):
            logger.warning("Rejected WhatsApp webhook with a bad signature")
            raise PermissionDenied("Invalid signature")

        try:
            data = json.loads(payload)
        except ValueError:
            raise ValidationError({"detail": "Invalid JSON payload"})
        if not isinstance(data, dict):
            raise ValidationError({"detail": "Webhook payload must be a JSON object"})

        recorded = whatsapp.record_status_events(data)
        return Response({"received": True, "recorded": recorded}, status=status.HTTP_200_OK)
