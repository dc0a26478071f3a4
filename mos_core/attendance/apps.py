# mos_core/attendance/apps.py
from __future__ import annotations

from django.apps import AppConfig


class AttendanceConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "mos_core.attendance"
