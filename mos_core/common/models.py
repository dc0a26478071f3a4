# mos_core/common/models.py
from __future__ import annotations

import uuid
from uuid import UUID

from django.db import models


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class OrgScopedQuerySet(models.QuerySet):
    def for_org(self, org_id: UUID | str):
        return self.filter(org_id=org_id)


class OrgScopedModel(TimeStampedModel):
    """
    Row owned by exactly one madrasah. Every read path goes through
    `Model.objects.for_org(org_id)` with the org taken from the resolved
    OrgContext, never from the request body.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    org = models.ForeignKey(
        "orgs.Org",
        on_delete=models.CASCADE,
        related_name="%(app_label)s_%(class)s_set",
    )

    objects = OrgScopedQuerySet.as_manager()

    class Meta:
        abstract = True
