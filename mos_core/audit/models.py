# mos_core/audit/models.py
import uuid
from django.conf import settings
from django.db import models


class AuditLogImmutableError(Exception):
    pass


class AuditLogQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise AuditLogImmutableError("Audit log entries cannot be updated.")

    def delete(self):
        raise AuditLogImmutableError("Audit log entries cannot be deleted.")


class AuditLog(models.Model):
    """
    Append-only record of administrative and system actions.
    `org` is null for platform-level jobs; `actor_user` is null for system actions
    (webhooks, scheduled commands).
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    org = models.ForeignKey(
        "orgs.Org",
        on_delete=models.CASCADE,
        related_name="audit_logs",
        null=True,
        blank=True,
    )
    actor_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="audit_logs",
        null=True,
        blank=True,
    )

    action = models.CharField(max_length=64, db_index=True)  # e.g. "ORG_AUTO_SUSPENDED"
    target_type = models.CharField(max_length=64, db_index=True)  # e.g. "Org"
    target_id = models.CharField(max_length=64, blank=True, db_index=True)

    data = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    objects = AuditLogQuerySet.as_manager()

    class Meta:
        db_table = "audit_audit_log"
        indexes = [
            models.Index(fields=["org", "created_at"]),
            models.Index(fields=["target_type", "target_id"]),
            models.Index(fields=["org", "action"]),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AuditLogImmutableError("Audit log entries cannot be updated.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AuditLogImmutableError("Audit log entries cannot be deleted.")
