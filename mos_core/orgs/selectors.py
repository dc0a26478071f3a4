# mos_core/orgs/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import Count, Q, QuerySet

from mos_core.orgs.models import Org


def get_org(*, org_id: UUID) -> Org:
    return Org.objects.get(id=org_id)


def orgs_filtered(*, status: str | None = None, search: str | None = None) -> QuerySet[Org]:
    qs = Org.objects.annotate(
        member_count=Count("memberships", filter=Q(memberships__is_active=True), distinct=True),
    ).order_by("name")

    if status:
        qs = qs.filter(status=status)

    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(slug__icontains=search))

    return qs


def org_by_stripe_customer(customer_id: str) -> Org | None:
    if not customer_id:
        return None
    return Org.objects.filter(stripe_customer_id=customer_id).first()


def org_by_whatsapp_number(phone_number_id: str) -> Org | None:
    if not phone_number_id:
        return None
    return Org.objects.filter(whatsapp_phone_number_id=phone_number_id).first()
