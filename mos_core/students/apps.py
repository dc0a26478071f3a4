# mos_core/students/apps.py
from __future__ import annotations

from django.apps import AppConfig


class StudentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "mos_core.students"
