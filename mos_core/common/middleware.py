# mos_core/common/middleware.py
from __future__ import annotations

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin
from rest_framework.exceptions import PermissionDenied, ValidationError

from mos_core.common.api.exceptions import build_error_envelope


class ActiveOrgMiddleware(MiddlewareMixin):
    """
    Validates the active-org selection for API requests.

    Behavior:
      - Enforced for /api/v1/* and /api/* (alias).
      - Docs/schema/admin, auth, public claim and webhook endpoints are skipped.
      - Only acts when Django already knows the user (session auth).
        JWT-authenticated requests get the same checks from
        CookieOrHeaderJWTAuthentication once DRF has the user.
      - Malformed X-Org-Id -> 400
      - X-Org-Id for an org the user doesn't belong to -> 403
      - On success caches the OrgContext on the request.
    """

    ENFORCED_PREFIXES = ("/api/v1/", "/api/")

    PUBLIC_PATH_PREFIXES = (
        "/admin/",
        "/api/docs/",
        "/api/schema/",
    )

    PUBLIC_PATH_FRAGMENTS = (
        "/auth/",
        "/claims/validate/",
        "/claims/claim/",
        "/claims/verify/",
        "/webhooks/",
    )

    def _json_error(self, request, *, status_code: int, code: str, message: str) -> JsonResponse:
        return JsonResponse(
            build_error_envelope(request=request, code=code, message=message, details=None),
            status=status_code,
        )

    def process_request(self, request):
        path = getattr(request, "path", "") or ""

        if any(path.startswith(p) for p in self.PUBLIC_PATH_PREFIXES):
            return None
        if not any(path.startswith(p) for p in self.ENFORCED_PREFIXES):
            return None
        if any(f in path for f in self.PUBLIC_PATH_FRAGMENTS):
            return None

        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return None

        from mos_core.iam.scope import apply_org_context

        try:
            apply_org_context(request, user=user)
        except ValidationError as exc:
            return self._json_error(request, status_code=400, code="validation_error", message=_first_message(exc))
        except PermissionDenied as exc:
            return self._json_error(request, status_code=403, code="permission_denied", message=_first_message(exc))
        return None


def _first_message(exc) -> str:
    detail = exc.detail
    if isinstance(detail, list) and detail:
        return str(detail[0])
    return str(detail)
