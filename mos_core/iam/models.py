# mos_core/iam/models.py
import uuid
from django.conf import settings
from django.db import models

from mos_core.common.models import TimeStampedModel
from mos_core.orgs.models import Org


class MembershipRole(models.TextChoices):
    ADMIN = "ADMIN", "Admin"
    STAFF = "STAFF", "Staff"
    PARENT = "PARENT", "Parent"


class StaffSubrole(models.TextChoices):
    ADMIN = "ADMIN", "Admin"
    TEACHER = "TEACHER", "Teacher"
    FINANCE_OFFICER = "FINANCE_OFFICER", "Finance Officer"


class OrgMembership(TimeStampedModel):
    """
    Binds a user to an org with a role.
    This is the RBAC enforcement point for org-level access.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="org_memberships")
    org = models.ForeignKey(Org, on_delete=models.CASCADE, related_name="memberships")

    role = models.CharField(max_length=16, choices=MembershipRole.choices, db_index=True)
    staff_subrole = models.CharField(max_length=32, choices=StaffSubrole.choices, blank=True)

    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "iam_org_membership"
        constraints = [
            models.UniqueConstraint(fields=["user", "org"], name="uq_org_membership_user_org"),
        ]
        indexes = [
            models.Index(fields=["org", "role"]),
            models.Index(fields=["user", "is_active"]),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} @ {self.org_id} ({self.role})"
