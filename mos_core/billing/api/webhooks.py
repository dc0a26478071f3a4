# mos_core/billing/api/webhooks.py
from __future__ import annotations

import json
import logging

from django.conf import settings
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from mos_core.billing.webhooks import SignatureError, handle_stripe_event, verify_stripe_signature

logger = logging.getLogger(__name__)


class StripeWebhookView(APIView):
    """
    Stripe event receiver. Authenticated by the Stripe-Signature header only.
    """
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = []

    @extend_schema(tags=["Webhooks"], request=OpenApiTypes.OBJECT, responses={200: OpenApiTypes.OBJECT})
    def post(self, request):
        # The signature covers the raw body, so read it before DRF parses anything.
        payload = request.body
        header = request.META.get("HTTP_STRIPE_SIGNATURE", "")

        try:
            verify_stripe_signature(
                payload,
                header,
                settings.STRIPE_WEBHOOK_SECRET,
                tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
            )
        except SignatureError as exc:
            logger.warning("Rejected Stripe webhook: %s", exc)
            raise ValidationError({"signature": "Invalid signature"})

        try:
            event = json.loads(payload)
        except ValueError:
            raise ValidationError({"detail": "Invalid JSON payload"})
        if not isinstance(event, dict):
            raise ValidationError({"detail": "Event payload must be a JSON object"})

        outcome = handle_stripe_event(event)
        return Response({"received": True, "outcome": outcome}, status=status.HTTP_200_OK)
