"""Attendance models."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from payroll_pipeline.models.base import Base, TimestampMixin


class AttendanceRecord(Base, TimestampMixin):
    """One employee's attendance on one day."""

    __tablename__ = "attendance_record"

    attendance_record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", name="attendance_record_employee_date_unique"),
    )


class AttendanceLock(Base):
    """Attendance for a month is frozen once locked; payroll requires it."""

    __tablename__ = "attendance_lock"

    attendance_lock_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    locked_by: Mapped[str | None] = mapped_column(String)
    locked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("month", "year", name="attendance_lock_period_unique"),
        CheckConstraint("month BETWEEN 1 AND 12", name="attendance_lock_month_check"),
    )
