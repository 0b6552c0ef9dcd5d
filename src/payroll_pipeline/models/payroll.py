"""Payroll run and payroll record models."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_pipeline.models.base import Base, JSONType, TimestampMixin, UpdatedAtMixin
from payroll_pipeline.models.employee import Employee


class PayrollRun(Base, TimestampMixin, UpdatedAtMixin):
    """One monthly payroll run; re-runs reuse the same row."""

    __tablename__ = "payroll_run"

    payroll_run_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    current_stage: Mapped[str] = mapped_column(String, nullable=False, default="VALIDATION")

    total_employees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_employees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    statutory_totals: Mapped[dict[str, Any] | None] = mapped_column(JSONType)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("month", "year", name="payroll_run_period_unique"),
        CheckConstraint("month BETWEEN 1 AND 12", name="payroll_run_month_check"),
        CheckConstraint(
            "status IN ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED')",
            name="payroll_run_status_check",
        ),
        CheckConstraint(
            "current_stage IN ('VALIDATION', 'CALCULATION', 'STATUTORY', 'FINALIZATION')",
            name="payroll_run_stage_check",
        ),
    )

    # Relationships
    records: Mapped[list[PayrollRecord]] = relationship(back_populates="payroll_run")


class PayrollRecord(Base, TimestampMixin, UpdatedAtMixin):
    """Per-employee payroll result.

    Salary components are a snapshot taken at calculation time. The row is
    keyed by (run, employee) and written with an upsert, so recalculating a
    stage overwrites it with the same numbers.
    """

    __tablename__ = "payroll_record"

    payroll_record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.payroll_run_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="CALCULATED")
    calculation_id: Mapped[UUID] = mapped_column(nullable=False)

    # Salary snapshot
    basic_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    hra_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    special_allowance_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    lta_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    medical_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    conveyance_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    other_allowances_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tax_regime: Mapped[str] = mapped_column(String, nullable=False)

    # Attendance
    working_days: Mapped[int] = mapped_column(Integer, nullable=False)
    paid_days: Mapped[int] = mapped_column(Integer, nullable=False)
    lop_days: Mapped[int] = mapped_column(Integer, nullable=False)

    # Earnings
    gross_before_lop_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    lop_deduction_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    gross_salary_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Provident fund
    pf_base_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    pf_employee_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    pf_employer_epf_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    pf_employer_eps_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    pf_edli_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    pf_admin_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    pf_employer_total_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # ESI, professional tax, TDS
    esi_applicable: Mapped[bool] = mapped_column(Boolean, nullable=False)
    esi_employee_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    esi_employer_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    pt_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    pt_status: Mapped[str] = mapped_column(String, nullable=False)
    tds_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    projected_annual_income_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Totals
    total_deductions_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    net_salary_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    employer_cost_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    loan_deduction_paise: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    reimbursement_paise: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    net_payable_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("payroll_run_id", "employee_id", name="payroll_record_run_employee_unique"),
        CheckConstraint(
            "status IN ('CALCULATED', 'VERIFIED', 'PAID')",
            name="payroll_record_status_check",
        ),
    )

    # Relationships
    payroll_run: Mapped[PayrollRun] = relationship(back_populates="records")
    employee: Mapped[Employee] = relationship()
