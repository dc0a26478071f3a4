# mos_core/iam/api/auth.py

from __future__ import annotations

import logging
from datetime import timedelta

from django.conf import settings
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer

from mos_core.common.throttling import StrictRateThrottle
from mos_core.iam.api.schema_serializers import DetailResponseSerializer, LoginRequestSerializer

logger = logging.getLogger(__name__)


class AuthCookies:
    """
    Names and flags of the HttpOnly cookies carrying the JWT pair and the
    selected org, read from SIMPLE_JWT / ACTIVE_ORG_COOKIE.
    """

    def __init__(self):
        cfg = getattr(settings, "SIMPLE_JWT", {}) or {}
        self.access = cfg.get("AUTH_COOKIE", "mos_access")
        self.refresh = cfg.get("AUTH_COOKIE_REFRESH", "mos_refresh")
        self.org = getattr(settings, "ACTIVE_ORG_COOKIE", "mos_org")
        self.secure = bool(cfg.get("AUTH_COOKIE_SECURE", False))
        self.samesite = cfg.get("AUTH_COOKIE_SAMESITE", "Lax")
        self.access_max_age = self._seconds(cfg.get("ACCESS_TOKEN_LIFETIME", timedelta(minutes=15)))
        self.refresh_max_age = self._seconds(cfg.get("REFRESH_TOKEN_LIFETIME", timedelta(days=14)))

    @staticmethod
    def _seconds(value) -> int | None:
        if isinstance(value, timedelta):
            return int(value.total_seconds())
        try:
            return int(value)
        except (TypeError, ValueError):
            return None  # browser-session cookie

    def set_tokens(self, response: Response, *, access: str, refresh: str) -> None:
        for name, value, max_age in (
            (self.access, access, self.access_max_age),
            (self.refresh, refresh, self.refresh_max_age),
        ):
            response.set_cookie(
                name,
                value,
                max_age=max_age,
                httponly=True,
                secure=self.secure,
                samesite=self.samesite,
                path="/",
            )

    def clear(self, response: Response) -> None:
        for name in (self.access, self.refresh, self.org):
            response.delete_cookie(name, path="/", samesite=self.samesite)


class PublicTokenView(APIView):
    """
    Login and refresh run without authenticators, so a stale access cookie
    cannot block them. Failures still answer 401 with a Bearer challenge.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def get_authenticate_header(self, request):
        return 'Bearer realm="api"'


class LoginView(PublicTokenView):
    """
    Username/password -> JWT pair in HttpOnly cookies. Tokens are never
    returned in the body.
    """
    throttle_classes = [StrictRateThrottle]

    @extend_schema(request=LoginRequestSerializer, responses={200: DetailResponseSerializer}, tags=["IAM"])
    def post(self, request):
        serializer = TokenObtainPairSerializer(data=request.data)
        try:
            serializer.is_valid(raise_exception=True)
        except AuthenticationFailed:
            logger.warning("Login failed", extra={"username": request.data.get("username")})
            raise

        res = Response({"detail": "login ok"}, status=status.HTTP_200_OK)
        AuthCookies().set_tokens(
            res,
            access=serializer.validated_data["access"],
            refresh=serializer.validated_data["refresh"],
        )
        logger.info("Login succeeded", extra={"username": request.data.get("username")})
        return res


class RefreshView(PublicTokenView):
    @extend_schema(request=None, responses={200: DetailResponseSerializer}, tags=["IAM"])
    def post(self, request):
        cookies = AuthCookies()
        refresh = request.COOKIES.get(cookies.refresh) or request.data.get("refresh")

        serializer = TokenRefreshSerializer(data={"refresh": refresh})
        try:
            serializer.is_valid(raise_exception=True)
        except TokenError as exc:
            raise InvalidToken(exc.args[0])

        res = Response({"detail": "refreshed"}, status=status.HTTP_200_OK)
        # ROTATE_REFRESH_TOKENS hands back a new refresh token
        cookies.set_tokens(
            res,
            access=serializer.validated_data["access"],
            refresh=serializer.validated_data.get("refresh", refresh),
        )
        return res


class LogoutView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(request=None, responses={200: DetailResponseSerializer}, tags=["IAM"])
    def post(self, request):
        res = Response({"detail": "logged out"}, status=status.HTTP_200_OK)
        AuthCookies().clear(res)
        return res
