"""Employee loan and scheduled deduction models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_pipeline.models.base import Base, TimestampMixin, UpdatedAtMixin


class LoanStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class DeductionStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    DEDUCTED = "DEDUCTED"
    SKIPPED = "SKIPPED"


class EmployeeLoan(Base, TimestampMixin, UpdatedAtMixin):
    """Salary advance or loan repaid through payroll.

    Invariant: principal of DEDUCTED installments + remaining_balance_paise
    == principal_paise.
    """

    __tablename__ = "employee_loan"

    employee_loan_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    loan_type: Mapped[str] = mapped_column(String, nullable=False, default="PERSONAL")
    principal_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    annual_interest_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    tenure_months: Mapped[int] = mapped_column(Integer, nullable=False)
    emi_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_interest_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    remaining_balance_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default=LoanStatus.PENDING.value)
    disbursed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closure_reason: Mapped[str | None] = mapped_column(String)

    __table_args__ = (
        CheckConstraint("principal_paise > 0", name="employee_loan_principal_positive"),
        CheckConstraint("remaining_balance_paise >= 0", name="employee_loan_balance_check"),
        CheckConstraint(
            "status IN ('PENDING', 'ACTIVE', 'CLOSED', 'CANCELLED')",
            name="employee_loan_status_check",
        ),
    )

    # Relationships
    deductions: Mapped[list[LoanDeduction]] = relationship(
        back_populates="loan", order_by="LoanDeduction.installment_number"
    )


class LoanDeduction(Base, TimestampMixin):
    """One scheduled installment, deducted by the payroll run for its month."""

    __tablename__ = "loan_deduction"

    loan_deduction_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_loan_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee_loan.employee_loan_id", ondelete="CASCADE"),
        nullable=False,
    )
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    emi_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    principal_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    interest_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=DeductionStatus.SCHEDULED.value
    )
    payroll_record_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_record.payroll_record_id", ondelete="SET NULL"),
    )
    deducted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint(
            "employee_loan_id", "installment_number", name="loan_deduction_installment_unique"
        ),
        CheckConstraint(
            "status IN ('SCHEDULED', 'DEDUCTED', 'SKIPPED')",
            name="loan_deduction_status_check",
        ),
    )

    # Relationships
    loan: Mapped[EmployeeLoan] = relationship(back_populates="deductions")
