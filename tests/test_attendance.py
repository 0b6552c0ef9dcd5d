"""Unit tests for the attendance summarizer."""

from datetime import date
from decimal import Decimal

import pytest

from payroll_pipeline.calculators.attendance import (
    AttendanceDataError,
    AttendanceDay,
    AttendanceStatus,
    summarize_attendance,
    validate_summary,
    working_days_in_month,
)
from payroll_pipeline.calculators.types import AttendanceSummary


class TestWorkingDays:
    @pytest.mark.parametrize("month,year,expected", [(2, 2025, 20), (4, 2025, 22), (6, 2025, 21)])
    def test_weekdays_only(self, month, year, expected):
        assert working_days_in_month(month, year) == expected


class TestSummarize:
    def test_status_weights(self):
        rows = [
            AttendanceDay(date(2025, 6, 2), AttendanceStatus.PRESENT),
            AttendanceDay(date(2025, 6, 3), AttendanceStatus.HALF_DAY),
            AttendanceDay(date(2025, 6, 4), AttendanceStatus.ABSENT),
            AttendanceDay(date(2025, 6, 5), AttendanceStatus.ON_LEAVE),
            AttendanceDay(date(2025, 6, 6), AttendanceStatus.HOLIDAY),
            AttendanceDay(date(2025, 6, 7), "WEEKEND"),
        ]

        summary = summarize_attendance(rows, 6, 2025)

        assert summary.working_days == 21
        assert summary.lop_days == 1
        assert summary.paid_days == 20
        assert summary.present_days == Decimal("2.5")

    def test_no_rows_means_fully_paid(self):
        summary = summarize_attendance([], 4, 2025)
        assert summary.paid_days == 22
        assert summary.lop_days == 0

    def test_row_outside_month(self):
        with pytest.raises(AttendanceDataError) as exc_info:
            summarize_attendance([AttendanceDay(date(2025, 7, 1), "PRESENT")], 6, 2025, "E1")
        assert exc_info.value.employee_id == "E1"
        assert "outside 2025-06" in str(exc_info.value)

    def test_duplicate_date(self):
        rows = [
            AttendanceDay(date(2025, 6, 2), "PRESENT"),
            AttendanceDay(date(2025, 6, 2), "ABSENT"),
        ]
        with pytest.raises(AttendanceDataError, match="duplicate"):
            summarize_attendance(rows, 6, 2025)

    def test_unknown_status(self):
        with pytest.raises(AttendanceDataError, match="unknown status 'SICK'"):
            summarize_attendance([AttendanceDay(date(2025, 6, 2), "SICK")], 6, 2025)


class TestValidateSummary:
    def test_missing(self):
        with pytest.raises(AttendanceDataError, match="missing"):
            validate_summary(None, "E1")

    @pytest.mark.parametrize(
        "summary",
        [
            AttendanceSummary(working_days=0, paid_days=0, lop_days=0),
            AttendanceSummary(working_days=22, paid_days=22, lop_days=-1),
            AttendanceSummary(working_days=22, paid_days=0, lop_days=23),
        ],
    )
    def test_rejects_unusable_counts(self, summary):
        with pytest.raises(AttendanceDataError):
            validate_summary(summary, "E1")

    def test_accepts_valid(self):
        summary = AttendanceSummary(working_days=22, paid_days=20, lop_days=2)
        assert validate_summary(summary) is summary
