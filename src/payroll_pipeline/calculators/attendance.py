"""Monthly attendance summary from daily attendance rows."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable

from payroll_pipeline.calculators.types import AttendanceSummary


class AttendanceStatus(str, Enum):
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    HALF_DAY = "HALF_DAY"
    ON_LEAVE = "ON_LEAVE"
    HOLIDAY = "HOLIDAY"
    WEEKEND = "WEEKEND"


class AttendanceDataError(Exception):
    """Raised when attendance input is malformed or missing."""

    def __init__(self, employee_id: str | None, reason: str):
        self.employee_id = employee_id
        self.reason = reason
        msg = f"Invalid attendance for employee {employee_id}: {reason}" if employee_id else reason
        super().__init__(msg)


@dataclass(frozen=True)
class AttendanceDay:
    day: date
    status: AttendanceStatus | str


def working_days_in_month(month: int, year: int) -> int:
    """Monday to Friday days in the month."""
    days = calendar.monthrange(year, month)[1]
    return sum(1 for d in range(1, days + 1) if date(year, month, d).weekday() < 5)


def summarize_attendance(
    rows: Iterable[AttendanceDay],
    month: int,
    year: int,
    employee_id: str | None = None,
) -> AttendanceSummary:
    """Reduce daily rows to working, paid and loss-of-pay day counts.

    Only ABSENT days are loss of pay. Leave is paid and a half day counts half
    towards days present. Days without a row are treated as paid.
    """
    working_days = working_days_in_month(month, year)
    present = Decimal("0")
    lop_days = 0
    seen: set[date] = set()

    for row in rows:
        if row.day.month != month or row.day.year != year:
            raise AttendanceDataError(
                employee_id, f"row dated {row.day.isoformat()} is outside {year:04d}-{month:02d}"
            )
        if row.day in seen:
            raise AttendanceDataError(employee_id, f"duplicate rows for {row.day.isoformat()}")
        seen.add(row.day)

        try:
            status = AttendanceStatus(row.status)
        except ValueError:
            raise AttendanceDataError(
                employee_id, f"unknown status {row.status!r} on {row.day.isoformat()}"
            ) from None

        if status in (AttendanceStatus.PRESENT, AttendanceStatus.ON_LEAVE):
            present += 1
        elif status == AttendanceStatus.HALF_DAY:
            present += Decimal("0.5")
        elif status == AttendanceStatus.ABSENT:
            lop_days += 1

    return AttendanceSummary(
        working_days=working_days,
        paid_days=max(0, working_days - lop_days),
        lop_days=lop_days,
        present_days=present,
    )


def validate_summary(summary: AttendanceSummary | None, employee_id: str | None = None) -> AttendanceSummary:
    """Reject summaries the payroll calculator cannot use."""
    if summary is None:
        raise AttendanceDataError(employee_id, "attendance summary is missing")
    if summary.working_days <= 0:
        raise AttendanceDataError(employee_id, "working days must be positive")
    if summary.lop_days < 0 or summary.paid_days < 0:
        raise AttendanceDataError(employee_id, "day counts cannot be negative")
    if summary.lop_days > summary.working_days:
        raise AttendanceDataError(
            employee_id,
            f"loss-of-pay days ({summary.lop_days}) exceed working days ({summary.working_days})",
        )
    return summary
