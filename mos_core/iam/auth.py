# mos_core/iam/auth.py

from __future__ import annotations

from django.conf import settings
from rest_framework_simplejwt.authentication import JWTAuthentication

from mos_core.iam.scope import apply_org_context


def access_cookie_name() -> str:
    return (getattr(settings, "SIMPLE_JWT", {}) or {}).get("AUTH_COOKIE", "mos_access")


class CookieOrHeaderJWTAuthentication(JWTAuthentication):
    """
    Access token from `Authorization: Bearer ...`, falling back to the
    HttpOnly mos_access cookie set by the login endpoint.

    The active org is resolved as soon as the user is known, so a malformed
    or foreign X-Org-Id fails here (400/403) before any view runs.
    """

    def _raw_token(self, request):
        header = self.get_header(request)
        if header is not None:
            # a non-Bearer Authorization header yields None: anonymous
            return self.get_raw_token(header)
        return request.COOKIES.get(access_cookie_name()) or None

    def authenticate(self, request):
        raw_token = self._raw_token(request)
        if raw_token is None:
            return None

        validated_token = self.get_validated_token(raw_token)
        user = self.get_user(validated_token)

        apply_org_context(request, user=user)
        return user, validated_token
