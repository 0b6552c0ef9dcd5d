"""Expense claim model."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from payroll_pipeline.models.base import Base, TimestampMixin


class ExpenseClaim(Base, TimestampMixin):
    """Approved claims are reimbursed through the next payroll run."""

    __tablename__ = "expense_claim"

    expense_claim_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    category: Mapped[str] = mapped_column(String, nullable=False, default="GENERAL")
    amount_paise: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="SUBMITTED")
    synced_to_payroll: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payroll_record_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_record.payroll_record_id", ondelete="SET NULL"),
    )
    reimbursed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint("amount_paise > 0", name="expense_claim_amount_positive"),
        CheckConstraint(
            "status IN ('SUBMITTED', 'APPROVED', 'REJECTED', 'REIMBURSED')",
            name="expense_claim_status_check",
        ),
    )
