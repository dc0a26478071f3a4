# mos_core/attendance/admin.py
from __future__ import annotations

from django.contrib import admin

from mos_core.attendance.models import Attendance


@admin.register(Attendance)
class AttendanceAdmin(admin.ModelAdmin):
    list_display = ("id", "org", "klass", "student", "date", "status", "created_at")
    list_filter = ("status", "date")
    search_fields = ("student__first_name", "student__last_name", "klass__name")
    ordering = ("-date",)
