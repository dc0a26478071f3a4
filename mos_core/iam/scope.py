# mos_core/iam/scope.py
from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from django.conf import settings
from rest_framework.exceptions import NotAuthenticated, PermissionDenied, ValidationError
from rest_framework.permissions import SAFE_METHODS

from mos_core.iam import roles
from mos_core.iam.services.membership import get_default_membership, get_membership
from mos_core.orgs.models import Org, OrgStatus


INVALID_ORG_MSG = "Invalid X-Org-Id header. Provide a valid organisation UUID."
NOT_MEMBER_MSG = "You do not have access to the selected organisation."
NO_ORG_MSG = "No active organisation. Join or select an organisation first."
ROLE_DENIED_MSG = "You do not have permission to perform this action."
ORG_DEACTIVATED_MSG = "This organisation has been deactivated."
ORG_LOCKED_MSG = "This organisation is paused or suspended. Changes are disabled until it is reactivated."

_CACHE_ATTR = "_mos_org_context"


@dataclass(frozen=True)
class OrgContext:
    """
    Resolved caller identity inside the active org.
    Every scoped query in a view filters by `org_id` from here.
    """
    user_id: int
    org_id: UUID
    org_status: str
    role: str
    staff_subrole: str | None = None

    @property
    def is_owner(self) -> bool:
        return self.role == roles.ROLE_OWNER

    def has_role(self, *allowed: str) -> bool:
        return self.role in allowed

    def has_permission(self, key: str) -> bool:
        return roles.has_permission(self.role, self.staff_subrole, key)

    @property
    def permission_keys(self) -> list[str]:
        return sorted(roles.permission_keys_for(self.role, self.staff_subrole))


def _parse_uuid(value: str) -> UUID | None:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def _get_header(request, name: str) -> str | None:
    # request.headers is case-insensitive; fall back to META for RequestFactory
    headers = getattr(request, "headers", None)
    if headers is not None:
        v = headers.get(name)
        if v:
            return v
    meta_key = "HTTP_" + name.upper().replace("-", "_")
    return request.META.get(meta_key)


def requested_org(request) -> tuple[UUID | None, str | None]:
    """
    Returns (org_id, source) where source is "header", "cookie" or None.

    - Malformed header -> 400.
    - Malformed cookie -> ignored (stale client state).
    Body and query params are never consulted.
    """
    header_name = getattr(settings, "ACTIVE_ORG_HEADER", "X-Org-Id")
    cookie_name = getattr(settings, "ACTIVE_ORG_COOKIE", "mos_org")

    raw = _get_header(request, header_name)
    if raw:
        org_id = _parse_uuid(raw)
        if org_id is None:
            raise ValidationError(INVALID_ORG_MSG)
        return org_id, "header"

    raw_cookie = request.COOKIES.get(cookie_name)
    if raw_cookie:
        org_id = _parse_uuid(raw_cookie)
        if org_id is not None:
            return org_id, "cookie"

    return None, None


def _context_from_membership(user, membership) -> OrgContext:
    role = roles.ROLE_OWNER if user.is_superuser else membership.role
    return OrgContext(
        user_id=user.id,
        org_id=membership.org_id,
        org_status=membership.org.status,
        role=role,
        staff_subrole=membership.staff_subrole or None,
    )


def resolve_org_context(request, user) -> OrgContext | None:
    """
    Derive the caller's active org.

    1) X-Org-Id header: must be a member (or superuser), else 403.
    2) mos_org cookie: used when the user is still a member, else ignored.
    3) Otherwise the user's oldest active membership.
    """
    if not user or not getattr(user, "is_authenticated", False):
        return None

    org_id, source = requested_org(request)

    if org_id is not None:
        membership = get_membership(user_id=user.id, org_id=org_id)
        if membership is not None:
            return _context_from_membership(user, membership)

        if user.is_superuser:
            org = Org.objects.filter(id=org_id).only("id", "status").first()
            if org is not None:
                return OrgContext(user_id=user.id, org_id=org.id, org_status=org.status, role=roles.ROLE_OWNER)

        if source == "header":
            raise PermissionDenied(NOT_MEMBER_MSG)

    membership = get_default_membership(user_id=user.id)
    if membership is None:
        return None
    return _context_from_membership(user, membership)


def apply_org_context(request, user=None) -> OrgContext | None:
    """
    Resolve once per request and cache on the request object.
    Used by the authentication class and ActiveOrgMiddleware.
    """
    u = user or getattr(request, "user", None)
    ctx = resolve_org_context(request, u)
    setattr(request, _CACHE_ATTR, (getattr(u, "id", None), ctx))
    return ctx


def get_org_context(request) -> OrgContext | None:
    user = getattr(request, "user", None)
    cached = getattr(request, _CACHE_ATTR, None)
    if cached is not None and cached[0] == getattr(user, "id", None):
        return cached[1]
    return apply_org_context(request, user)


def authorize(request, *, roles_allowed=None, permission: str | None = None) -> OrgContext:
    """
    Single authorization gate for scoped endpoints.

    - 401 if unauthenticated
    - 403 if no active org, wrong role, missing staff permission,
      or a write against a paused/suspended/deactivated org
    OWNER bypasses role and permission checks.
    """
    user = getattr(request, "user", None)
    if not user or not getattr(user, "is_authenticated", False):
        raise NotAuthenticated()

    ctx = get_org_context(request)
    if ctx is None:
        raise PermissionDenied(NO_ORG_MSG)

    if ctx.is_owner:
        return ctx

    if ctx.org_status == OrgStatus.DEACTIVATED:
        raise PermissionDenied(ORG_DEACTIVATED_MSG)
    if ctx.org_status != OrgStatus.ACTIVE and request.method not in SAFE_METHODS:
        raise PermissionDenied(ORG_LOCKED_MSG)

    if roles_allowed is not None and ctx.role not in roles_allowed:
        raise PermissionDenied(ROLE_DENIED_MSG)

    # ADMIN passes every staff permission; PARENT passes none.
    if permission is not None and ctx.role == roles.ROLE_STAFF and not ctx.has_permission(permission):
        raise PermissionDenied(ROLE_DENIED_MSG)

    return ctx
