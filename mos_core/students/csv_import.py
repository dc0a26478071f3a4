# mos_core/students/csv_import.py
"""
Bulk student upload in two steps.

preview_csv parses and validates the file without writing anything. The
client reviews the rows, picks a class for each and posts them back to
confirm_import, which writes each row in its own transaction so one bad row
does not sink the batch.
"""
from __future__ import annotations

import csv
import io
import re
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Iterable, Optional
from uuid import UUID

from django.db import transaction
from rest_framework.exceptions import ValidationError

from mos_core.audit.services import AuditService
from mos_core.iam.services.users import normalize_email
from mos_core.students.models import Class, Student, StudentClass
from mos_core.students.services import StudentService

MAX_ROWS = 1000

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")

# normalised header -> field
_HEADER_ALIASES = {
    "firstname": "first_name",
    "lastname": "last_name",
    "dob": "dob",
    "dateofbirth": "dob",
    "parentname": "parent_name",
    "parentemail": "parent_email",
    "parentphone": "parent_phone",
    "startmonth": "start_month",
}


@dataclass
class PreviewRow:
    row_number: int
    first_name: str = ""
    last_name: str = ""
    dob: str = ""
    parent_name: str = ""
    parent_email: str = ""
    parent_phone: str = ""
    start_month: str = ""
    is_valid: bool = False
    errors: list[str] = field(default_factory=list)
    is_duplicate: bool = False
    existing_student_id: Optional[str] = None


@dataclass
class ImportResult:
    created: list[dict[str, Any]] = field(default_factory=list)
    updated: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _normalise_header(name: str) -> str:
    key = re.sub(r"[^a-z]", "", (name or "").lower())
    return _HEADER_ALIASES.get(key, key)


def parse_csv(content: bytes | str) -> list[dict[str, str]]:
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise ValidationError({"file": "File must be UTF-8 encoded CSV."})

    reader = csv.DictReader(io.StringIO(content))
    if not reader.fieldnames:
        raise ValidationError({"file": "CSV file is empty."})

    try:
        rows = []
        for raw in reader:
            row = {_normalise_header(k): (v or "").strip() for k, v in raw.items() if k is not None}
            if any(row.values()):
                rows.append(row)
    except csv.Error as exc:
        raise ValidationError({"file": f"Invalid CSV format: {exc}"})

    if not rows:
        raise ValidationError({"file": "CSV file is empty."})
    if len(rows) > MAX_ROWS:
        raise ValidationError({"file": f"Too many rows (max {MAX_ROWS})."})
    return rows


def _validate_row(row: dict[str, str], row_number: int) -> PreviewRow:
    out = PreviewRow(row_number=row_number, **{k: row.get(k, "") for k in (
        "first_name", "last_name", "dob", "parent_name", "parent_email", "parent_phone", "start_month",
    )})
    out.parent_email = normalize_email(out.parent_email)

    if not out.first_name:
        out.errors.append("First name is required")
    if not out.last_name:
        out.errors.append("Last name is required")
    if not out.parent_name:
        out.errors.append("Parent name is required")
    if not out.parent_email:
        out.errors.append("Parent email is required")
    elif not _EMAIL_RE.match(out.parent_email):
        out.errors.append("Invalid parent email format")

    if out.dob:
        try:
            date.fromisoformat(out.dob)
        except ValueError:
            out.errors.append("Date of birth must be in YYYY-MM-DD format")
    if out.start_month and not _MONTH_RE.match(out.start_month):
        out.errors.append("Start month must be in YYYY-MM format")

    out.is_valid = not out.errors
    return out


def preview_csv(*, org_id: UUID, content: bytes | str) -> list[PreviewRow]:
    """
    Read-only. Row numbers count the header as row 1.
    Duplicates (same name and primary parent email) are flagged, not rejected.
    """
    rows = parse_csv(content)

    existing: dict[tuple[str, str, str], UUID] = {}
    for s in Student.objects.for_org(org_id).select_related("primary_parent"):
        parent_email = normalize_email(s.primary_parent.email) if s.primary_parent else ""
        existing[(s.first_name.lower().strip(), s.last_name.lower().strip(), parent_email)] = s.id

    out = []
    for index, row in enumerate(rows):
        preview = _validate_row(row, index + 2)
        key = (preview.first_name.lower(), preview.last_name.lower(), preview.parent_email)
        if key in existing:
            preview.is_duplicate = True
            preview.existing_student_id = str(existing[key])
        out.append(preview)
    return out


def confirm_import(*, org_id: UUID, rows: Iterable[dict[str, Any]], actor_user_id: Optional[int]) -> ImportResult:
    """
    rows: validated StudentImportRowSerializer data
    (row_number, first_name, last_name, parent_email, class_id, dob, existing_student_id).
    """
    rows = list(rows)
    missing = [r["row_number"] for r in rows if not r.get("class_id")]
    if missing:
        raise ValidationError(
            f"Students in rows {', '.join(str(n) for n in missing)} do not have a class selected"
        )

    classes = {c.id: c for c in Class.objects.filter(org_id=org_id, is_archived=False)}
    result = ImportResult()

    for row in rows:
        row_number = row["row_number"]
        klass = classes.get(row["class_id"])
        if klass is None:
            result.errors.append({"row_number": row_number, "error": "Class not found"})
            continue
        if not klass.monthly_fee_p:
            result.errors.append({"row_number": row_number, "error": "Class does not have a monthly fee set"})
            continue

        try:
            with transaction.atomic():
                item = _import_row(org_id=org_id, row=row, klass=klass, actor_user_id=actor_user_id)
        except (ValidationError, Student.DoesNotExist) as exc:
            detail = getattr(exc, "detail", None) or str(exc)
            result.errors.append({"row_number": row_number, "error": str(detail)})
            continue

        (result.updated if item.pop("is_update") else result.created).append(item)

    AuditService.log(
        action="BULK_UPLOAD_STUDENTS",
        target_type="Student",
        target_id=None,
        org_id=org_id,
        actor_user_id=actor_user_id,
        data={"created": len(result.created), "updated": len(result.updated), "errors": len(result.errors)},
    )
    return result


def _import_row(*, org_id: UUID, row: dict[str, Any], klass: Class, actor_user_id: Optional[int]) -> dict[str, Any]:
    existing_id = row.get("existing_student_id")

    if existing_id:
        student = Student.objects.select_for_update().get(org_id=org_id, id=existing_id)
        student.first_name = row["first_name"].strip()
        student.last_name = row["last_name"].strip()
        student.primary_parent = StudentService.attach_parent(org_id=org_id, parent_email=row["parent_email"])
        student.save(update_fields=["first_name", "last_name", "primary_parent", "updated_at"])
        StudentClass.objects.get_or_create(org_id=org_id, student=student, klass=klass)
        return {"row_number": row["row_number"], "student_id": str(student.id), "is_update": True}

    student = StudentService.create(
        org_id=org_id,
        first_name=row["first_name"],
        last_name=row["last_name"],
        dob=row.get("dob"),
        class_ids=[klass.id],
        parent_email=row["parent_email"],
        actor_user_id=actor_user_id,
    )
    return {
        "row_number": row["row_number"],
        "student_id": str(student.id),
        "claim_code": student.claim_code,
        "is_update": False,
    }
