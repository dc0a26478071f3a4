# mos_core/billing/payment_status.py
"""
Payment status engine for monthly fee records.

    PAID     paid_at set, or already PAID (terminal)
    OVERDUE  more than 96 hours past the due instant
    LATE     more than 48 hours past the due instant
    PENDING  otherwise

The due instant is the last millisecond of `fee_due_day` in the record's
month, in local time. Without a valid due day (1..28) the status is left
as it is.
"""
from __future__ import annotations

import re
from datetime import datetime, timedelta, tzinfo

from django.utils import timezone

from mos_core.billing.models import RecordStatus

LATE_AFTER = timedelta(hours=48)
OVERDUE_AFTER = timedelta(hours=96)

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def parse_month(month: str) -> tuple[int, int]:
    """
    Strict "YYYY-MM". Raises ValueError otherwise.
    """
    m = _MONTH_RE.match(month or "")
    if not m:
        raise ValueError(f"Invalid month {month!r}, expected YYYY-MM")
    year, month_num = int(m.group(1)), int(m.group(2))
    if not 1 <= month_num <= 12:
        raise ValueError(f"Invalid month {month!r}, expected YYYY-MM")
    return year, month_num


def _valid_day(fee_due_day: int | None) -> bool:
    return fee_due_day is not None and 1 <= fee_due_day <= 28


def get_payment_due_date(month: str, fee_due_day: int | None, *, tz: tzinfo | None = None) -> datetime | None:
    if not _valid_day(fee_due_day):
        return None
    year, month_num = parse_month(month)
    tz = tz or timezone.get_current_timezone()
    return datetime(year, month_num, fee_due_day, 23, 59, 59, 999000, tzinfo=tz)


def calculate_payment_status(
    current_status: str,
    month: str,
    fee_due_day: int | None,
    paid_at: datetime | None,
    *,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> str:
    if current_status == RecordStatus.PAID or paid_at is not None:
        return RecordStatus.PAID

    due = get_payment_due_date(month, fee_due_day, tz=tz)
    if due is None:
        return current_status

    past_due = (now or timezone.now()) - due
    if past_due > OVERDUE_AFTER:
        return RecordStatus.OVERDUE
    if past_due > LATE_AFTER:
        return RecordStatus.LATE
    return RecordStatus.PENDING
