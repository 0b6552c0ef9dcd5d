"""Employee and salary structure models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_pipeline.calculators.types import SalaryComponents
from payroll_pipeline.models.base import Base, TimestampMixin


class Employee(Base, TimestampMixin):
    """Employee master record."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_code: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String)
    work_state: Mapped[str | None] = mapped_column(String(2))
    gender: Mapped[str | None] = mapped_column(String)
    employment_status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")
    date_of_joining: Mapped[date | None] = mapped_column(Date)

    __table_args__ = (
        CheckConstraint(
            "employment_status IN ('ACTIVE', 'ON_NOTICE', 'TERMINATED', 'INACTIVE')",
            name="employee_status_check",
        ),
    )

    # Relationships
    salary_structures: Mapped[list[SalaryStructure]] = relationship(
        back_populates="employee", order_by="SalaryStructure.effective_from"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class SalaryStructure(Base, TimestampMixin):
    """Versioned monthly salary structure in paise.

    Compliance with the 50% basic pay rule is evaluated when the structure is
    created and stored, so later rule changes do not rewrite history.
    """

    __tablename__ = "salary_structure"

    salary_structure_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date)

    basic_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    hra_paise: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    special_allowance_paise: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    lta_paise: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    medical_paise: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    conveyance_paise: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    other_allowances_paise: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    tax_regime: Mapped[str] = mapped_column(String, nullable=False, default="NEW")
    declared_deductions_paise: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    is_compliant: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    basic_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("basic_paise > 0", name="salary_structure_basic_positive"),
        CheckConstraint("tax_regime IN ('OLD', 'NEW')", name="salary_structure_regime_check"),
        CheckConstraint(
            "effective_to IS NULL OR effective_to >= effective_from",
            name="salary_structure_dates_check",
        ),
        Index("ix_salary_structure_employee_from", "employee_id", "effective_from"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="salary_structures")

    def components(self) -> SalaryComponents:
        return SalaryComponents(
            basic=self.basic_paise,
            hra=self.hra_paise,
            special_allowance=self.special_allowance_paise,
            lta=self.lta_paise,
            medical=self.medical_paise,
            conveyance=self.conveyance_paise,
            other_allowances=self.other_allowances_paise,
        )

    def is_active_on(self, as_of: date) -> bool:
        return self.effective_from <= as_of and (
            self.effective_to is None or self.effective_to >= as_of
        )
