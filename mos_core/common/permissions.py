# mos_core/common/permissions.py

from __future__ import annotations

from rest_framework.permissions import SAFE_METHODS, BasePermission

from mos_core.iam.roles import ADMIN_ROLES, ALL_ROLES, STAFF_ROLES
from mos_core.iam.scope import authorize


class OrgRolePermission(BasePermission):
    """
    Base permission class for org-scoped role-based access control.

    Key behavior:
    - Resolves the active org through iam.scope.authorize (401/403 there).
    - OWNER bypass.
    - allowed_roles_per_action: action -> set of roles.
    - permission_per_action: action -> staff permission key (STAFF only).
    - If action is unknown and request is SAFE, fall back to list/retrieve.
    - On success attaches request.org_context for the view.
    """
    message = "You do not have permission to perform this action."

    allowed_roles_per_action: dict[str, frozenset[str] | set[str]] = {
        "list": STAFF_ROLES,
        "retrieve": STAFF_ROLES,
        "create": ADMIN_ROLES,
        "update": ADMIN_ROLES,
        "partial_update": ADMIN_ROLES,
        "destroy": ADMIN_ROLES,
    }
    permission_per_action: dict[str, str] = {}

    def _infer_action(self, request, view) -> str | None:
        action = getattr(view, "action", None)
        if action:
            return action

        kwargs = getattr(view, "kwargs", {}) or {}
        is_detail = "pk" in kwargs or "id" in kwargs

        method = request.method.upper()
        if method in ("GET", "HEAD", "OPTIONS"):
            return "retrieve" if is_detail else "list"
        if method == "POST":
            return "create"
        if method == "PUT":
            return "update"
        if method == "PATCH":
            return "partial_update"
        if method == "DELETE":
            return "destroy"
        return None

    def has_permission(self, request, view) -> bool:
        action = self._infer_action(request, view)
        allowed = self.allowed_roles_per_action.get(action)

        if allowed is None and request.method in SAFE_METHODS:
            kwargs = getattr(view, "kwargs", {}) or {}
            read_action = "retrieve" if ("pk" in kwargs or "id" in kwargs) else "list"
            allowed = self.allowed_roles_per_action.get(read_action)
            action = read_action

        # Unknown action => only OWNER gets through
        if allowed is None:
            allowed = frozenset()

        ctx = authorize(
            request,
            roles_allowed=allowed,
            permission=self.permission_per_action.get(action),
        )
        request.org_context = ctx
        return True

    def has_object_permission(self, request, view, obj) -> bool:
        ctx = getattr(request, "org_context", None)
        obj_org_id = getattr(obj, "org_id", None)
        if ctx is None or obj_org_id is None:
            return False
        return ctx.is_owner or obj_org_id == ctx.org_id


class AnyMemberPermission(OrgRolePermission):
    allowed_roles_per_action = {
        "list": ALL_ROLES,
        "retrieve": ALL_ROLES,
    }


class IsPlatformOwner(BasePermission):
    """
    Platform OWNER (Django superuser). Not scoped to an active org.
    """
    message = "Only the platform owner can perform this action."

    def has_permission(self, request, view) -> bool:
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and user.is_superuser)
