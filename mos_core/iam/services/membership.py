# mos_core/iam/services/membership.py
from __future__ import annotations

from typing import Iterable
from uuid import UUID

from django.db import transaction

from mos_core.iam.models import MembershipRole, OrgMembership


def list_user_orgs(user_id: int) -> list[dict]:
    """
    Return org memberships for /me and session bootstrap.
    """
    qs = (
        OrgMembership.objects.select_related("org")
        .filter(user_id=user_id, is_active=True)
        .order_by("created_at")
    )

    items: list[dict] = []
    for m in qs:
        items.append(
            {
                "org_id": str(m.org_id),
                "org_name": m.org.name,
                "org_slug": m.org.slug,
                "org_status": m.org.status,
                "role": m.role,
                "staff_subrole": m.staff_subrole or None,
            }
        )
    return items


def get_membership(*, user_id: int, org_id: UUID) -> OrgMembership | None:
    """
    Single source of truth for user -> org role lookup, keyed on the
    (user, org) unique pair.
    """
    return (
        OrgMembership.objects.select_related("org")
        .filter(user_id=user_id, org_id=org_id, is_active=True)
        .first()
    )


def get_default_membership(*, user_id: int) -> OrgMembership | None:
    return (
        OrgMembership.objects.select_related("org")
        .filter(user_id=user_id, is_active=True)
        .order_by("created_at")
        .first()
    )


def is_user_member_of_org(*, user_id: int, org_id: UUID, roles: Iterable[str] | None = None) -> bool:
    qs = OrgMembership.objects.filter(user_id=user_id, org_id=org_id, is_active=True)
    if roles is not None:
        qs = qs.filter(role__in=list(roles))
    return qs.exists()


@transaction.atomic
def ensure_membership(*, user_id: int, org_id: UUID, role: str, staff_subrole: str = "") -> OrgMembership:
    """
    Create the membership if missing, reactivate it if disabled.
    An existing role is never changed here (an ADMIN who claims a child stays ADMIN).
    """
    if role not in MembershipRole.values:
        raise ValueError(f"Unknown membership role: {role}")

    membership, created = OrgMembership.objects.select_for_update().get_or_create(
        user_id=user_id,
        org_id=org_id,
        defaults={"role": role, "staff_subrole": staff_subrole, "is_active": True},
    )
    if not created and not membership.is_active:
        membership.is_active = True
        membership.save(update_fields=["is_active", "updated_at"])
    return membership


def admin_contacts(*, org_id: UUID) -> list[dict]:
    """
    ADMIN members plus STAFF with the ADMIN subrole; used for org-level notifications.
    """
    qs = (
        OrgMembership.objects.select_related("user")
        .filter(org_id=org_id, is_active=True, role__in=[MembershipRole.ADMIN, MembershipRole.STAFF])
        .order_by("created_at")
    )
    out: list[dict] = []
    for m in qs:
        if m.role == MembershipRole.STAFF and m.staff_subrole != "ADMIN":
            continue
        out.append(
            {
                "user_id": m.user_id,
                "name": m.user.get_full_name() or m.user.get_username(),
                "email": m.user.email,
                "role": m.role,
            }
        )
    return out
