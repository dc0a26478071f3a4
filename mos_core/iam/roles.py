# mos_core/iam/roles.py
"""
Role and staff-permission tables.

Roles are per-org (from OrgMembership) plus the platform-wide OWNER, which is
any Django superuser. STAFF members are further narrowed by their subrole,
which maps to a fixed set of ``access_*`` permission keys. The older action
vocabulary (``create_invoice``, ``mark_payment``...) is resolved through
ACTION_PERMISSIONS -> LEGACY_PERMISSION_MAP -> permission keys.
"""
from __future__ import annotations

ROLE_OWNER = "OWNER"
ROLE_ADMIN = "ADMIN"
ROLE_STAFF = "STAFF"
ROLE_PARENT = "PARENT"

ALL_ROLES = frozenset({ROLE_OWNER, ROLE_ADMIN, ROLE_STAFF, ROLE_PARENT})
ADMIN_ROLES = frozenset({ROLE_OWNER, ROLE_ADMIN})
STAFF_ROLES = frozenset({ROLE_OWNER, ROLE_ADMIN, ROLE_STAFF})

SUBROLE_ADMIN = "ADMIN"
SUBROLE_TEACHER = "TEACHER"
SUBROLE_FINANCE_OFFICER = "FINANCE_OFFICER"
DEFAULT_SUBROLE = SUBROLE_TEACHER

ACCESS_DASHBOARD = "access_dashboard"
ACCESS_CLASSES = "access_classes"
ACCESS_STUDENTS = "access_students"
ACCESS_APPLICATIONS = "access_applications"
ACCESS_STAFF = "access_staff"
ACCESS_ATTENDANCE = "access_attendance"
ACCESS_FINANCES = "access_finances"
ACCESS_FEES = "access_fees"
ACCESS_PAYMENTS = "access_payments"
ACCESS_MESSAGES = "access_messages"
ACCESS_CALENDAR = "access_calendar"
ACCESS_SUPPORT = "access_support"
ACCESS_SETTINGS = "access_settings"

ALL_PERMISSION_KEYS = (
    ACCESS_DASHBOARD,
    ACCESS_CLASSES,
    ACCESS_STUDENTS,
    ACCESS_APPLICATIONS,
    ACCESS_STAFF,
    ACCESS_ATTENDANCE,
    ACCESS_FINANCES,
    ACCESS_FEES,
    ACCESS_PAYMENTS,
    ACCESS_MESSAGES,
    ACCESS_CALENDAR,
    ACCESS_SUPPORT,
    ACCESS_SETTINGS,
)

STAFF_ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    SUBROLE_ADMIN: frozenset(ALL_PERMISSION_KEYS),
    SUBROLE_TEACHER: frozenset({
        ACCESS_DASHBOARD,
        ACCESS_CLASSES,
        ACCESS_STUDENTS,
        ACCESS_ATTENDANCE,
        ACCESS_MESSAGES,
        ACCESS_CALENDAR,
        ACCESS_SUPPORT,
    }),
    SUBROLE_FINANCE_OFFICER: frozenset({
        ACCESS_DASHBOARD,
        ACCESS_FINANCES,
        ACCESS_FEES,
        ACCESS_PAYMENTS,
        ACCESS_SUPPORT,
        ACCESS_SETTINGS,
    }),
}

LEGACY_PERMISSION_MAP: dict[str, tuple[str, ...]] = {
    "view_all_data": (ACCESS_DASHBOARD, ACCESS_STUDENTS, ACCESS_SUPPORT),
    "view_all_classes": (ACCESS_CLASSES,),
    "manage_classes": (ACCESS_CLASSES,),
    "manage_students": (ACCESS_STUDENTS,),
    "mark_attendance": (ACCESS_ATTENDANCE,),
    "view_applications": (ACCESS_APPLICATIONS,),
    "manage_staff": (ACCESS_STAFF,),
    "view_invoices": (ACCESS_FINANCES, ACCESS_PAYMENTS),
    "manage_invoices": (ACCESS_FEES,),
    "reconcile_payments": (ACCESS_PAYMENTS,),
    "view_reports": (ACCESS_FINANCES,),
    "send_messages": (ACCESS_MESSAGES,),
    "view_calendar": (ACCESS_CALENDAR,),
    "create_events": (ACCESS_CALENDAR,),
    "access_settings": (ACCESS_SETTINGS,),
}

ACTION_PERMISSIONS: dict[str, str] = {
    "add_staff": "manage_staff",
    "edit_staff": "manage_staff",
    "delete_staff": "manage_staff",
    "add_class": "manage_classes",
    "edit_class": "manage_classes",
    "delete_class": "manage_classes",
    "add_student": "manage_students",
    "edit_student": "manage_students",
    "delete_student": "manage_students",
    "mark_attendance": "mark_attendance",
    "view_attendance": "view_all_data",
    "create_invoice": "manage_invoices",
    "edit_invoice": "manage_invoices",
    "view_invoice": "view_invoices",
    "mark_payment": "reconcile_payments",
    "view_reports": "view_reports",
    "send_message": "send_messages",
    "create_event": "create_events",
    "access_settings": "access_settings",
}

SECTION_PERMISSIONS: dict[str, str] = {
    "staff_management": "manage_staff",
    "class_management": "manage_classes",
    "student_management": "manage_students",
    "attendance": "mark_attendance",
    "fees": "manage_invoices",
    "invoices": "view_invoices",
    "payments": "reconcile_payments",
    "reports": "view_reports",
    "messages": "send_messages",
    "calendar": "create_events",
    "settings": "access_settings",
}


def permission_keys_for(role: str, staff_subrole: str | None = None) -> frozenset[str]:
    if role in ADMIN_ROLES:
        return frozenset(ALL_PERMISSION_KEYS)
    if role == ROLE_STAFF:
        return STAFF_ROLE_PERMISSIONS.get(staff_subrole or DEFAULT_SUBROLE, frozenset())
    return frozenset()


def has_permission(role: str, staff_subrole: str | None, key: str) -> bool:
    """
    `key` is either an access_* key or a legacy permission name.
    """
    granted = permission_keys_for(role, staff_subrole)
    if key in ALL_PERMISSION_KEYS:
        return key in granted
    mapped = LEGACY_PERMISSION_MAP.get(key, ())
    return any(k in granted for k in mapped)


def can_perform_action(role: str, staff_subrole: str | None, action: str) -> bool:
    permission = ACTION_PERMISSIONS.get(action)
    if permission is None:
        return role in ADMIN_ROLES
    return has_permission(role, staff_subrole, permission)


def can_view_section(role: str, staff_subrole: str | None, section: str) -> bool:
    permission = SECTION_PERMISSIONS.get(section)
    if permission is None:
        return True
    return has_permission(role, staff_subrole, permission)


def allowed_actions(role: str, staff_subrole: str | None) -> list[str]:
    return sorted(a for a in ACTION_PERMISSIONS if can_perform_action(role, staff_subrole, a))


def allowed_sections(role: str, staff_subrole: str | None) -> list[str]:
    return sorted(s for s in SECTION_PERMISSIONS if can_view_section(role, staff_subrole, s))
