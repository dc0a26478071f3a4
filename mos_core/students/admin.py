# mos_core/students/admin.py
from __future__ import annotations

from django.contrib import admin

from mos_core.students.models import Class, ParentStudentLink, Student, StudentClass


@admin.register(Class)
class ClassAdmin(admin.ModelAdmin):
    list_display = ("id", "org", "name", "monthly_fee_p", "fee_due_day", "is_archived", "created_at")
    list_filter = ("is_archived",)
    search_fields = ("id", "name", "org__name")
    autocomplete_fields = ("org",)
    ordering = ("org", "name")


class StudentClassInline(admin.TabularInline):
    model = StudentClass
    extra = 0
    autocomplete_fields = ("klass",)


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ("id", "org", "first_name", "last_name", "claim_status", "is_archived", "created_at")
    list_filter = ("claim_status", "is_archived")
    search_fields = ("id", "first_name", "last_name", "claim_code", "org__name")
    autocomplete_fields = ("org",)
    readonly_fields = ("claim_code", "claim_code_expires_at", "claimed_by_parent")
    inlines = [StudentClassInline]
    ordering = ("-created_at",)


@admin.register(ParentStudentLink)
class ParentStudentLinkAdmin(admin.ModelAdmin):
    list_display = ("id", "org", "parent", "student", "claimed_at", "created_at")
    search_fields = ("parent__email", "student__first_name", "student__last_name")
    ordering = ("-created_at",)
