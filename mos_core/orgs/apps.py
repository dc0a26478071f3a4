# mos_core/orgs/apps.py
from __future__ import annotations

from django.apps import AppConfig


class OrgsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "mos_core.orgs"
    verbose_name = "Organisations"
