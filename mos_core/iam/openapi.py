from django.conf import settings
from drf_spectacular.extensions import OpenApiAuthenticationExtension


class CookieOrHeaderJWTAuthenticationScheme(OpenApiAuthenticationExtension):
    """
    Documents both ways of presenting the access token. Either one satisfies
    a secured operation.
    """
    target_class = "mos_core.iam.auth.CookieOrHeaderJWTAuthentication"
    name = ["BearerJWT", "CookieJWT"]

    def get_security_definition(self, auto_schema):
        cookie = (getattr(settings, "SIMPLE_JWT", {}) or {}).get("AUTH_COOKIE", "mos_access")
        return [
            {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
                "description": "Active org is chosen with the X-Org-Id header (or the mos_org cookie).",
            },
            {
                "type": "apiKey",
                "in": "cookie",
                "name": cookie,
                "description": "HttpOnly access token set by POST /api/v1/auth/login/.",
            },
        ]
