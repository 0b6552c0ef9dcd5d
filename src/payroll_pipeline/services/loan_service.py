"""Employee loan creation and disbursement."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from uuid import UUID

from payroll_pipeline.calculators.loan_amortization import (
    add_months,
    calculate_emi,
    generate_schedule,
    loan_end_date,
    total_interest,
)
from payroll_pipeline.models import DeductionStatus, EmployeeLoan, LoanDeduction, LoanStatus
from payroll_pipeline.services.state_machine import InvalidTransitionError
from payroll_pipeline.services.unit_of_work import UnitOfWorkFactory

logger = logging.getLogger(__name__)

MAX_ANNUAL_RATE = Decimal("50")
MAX_TENURE_MONTHS = 360


class LoanValidationError(Exception):
    """Raised when loan inputs are out of range."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


def validate_loan_terms(principal: int, annual_rate: Decimal | str, tenure_months: int) -> Decimal:
    if principal <= 0:
        raise LoanValidationError("principal", "must be greater than zero")
    try:
        rate = Decimal(str(annual_rate))
    except InvalidOperation:
        raise LoanValidationError("annual_rate", f"{annual_rate!r} is not a number") from None
    if not 0 <= rate <= MAX_ANNUAL_RATE:
        raise LoanValidationError("annual_rate", f"must be between 0 and {MAX_ANNUAL_RATE}")
    if not 1 <= tenure_months <= MAX_TENURE_MONTHS:
        raise LoanValidationError("tenure_months", f"must be between 1 and {MAX_TENURE_MONTHS}")
    return rate


class LoanService:
    def __init__(self, uow_factory: UnitOfWorkFactory):
        self._uow_factory = uow_factory

    async def create_loan(
        self,
        employee_id: UUID,
        principal: int,
        annual_rate: Decimal | str,
        tenure_months: int,
        start_date: date,
        loan_type: str = "PERSONAL",
    ) -> EmployeeLoan:
        """Create a PENDING loan with one scheduled deduction per installment.

        The first installment falls in the start month.
        """
        rate = validate_loan_terms(principal, annual_rate, tenure_months)
        schedule = generate_schedule(principal, rate, tenure_months)
        first_month = date(start_date.year, start_date.month, 1)

        deductions = []
        for entry in schedule:
            due = add_months(first_month, entry.installment_number - 1)
            deductions.append(
                LoanDeduction(
                    installment_number=entry.installment_number,
                    month=due.month,
                    year=due.year,
                    emi_paise=entry.emi,
                    principal_paise=entry.principal,
                    interest_paise=entry.interest,
                    balance_after_paise=entry.balance_after,
                    status=DeductionStatus.SCHEDULED.value,
                )
            )

        loan = EmployeeLoan(
            employee_id=employee_id,
            loan_type=loan_type,
            principal_paise=principal,
            annual_interest_rate=rate,
            tenure_months=tenure_months,
            emi_paise=calculate_emi(principal, rate, tenure_months),
            total_interest_paise=total_interest(schedule),
            remaining_balance_paise=principal,
            start_date=start_date,
            end_date=loan_end_date(start_date, tenure_months),
            status=LoanStatus.PENDING.value,
        )

        async with self._uow_factory() as uow:
            if await uow.employees.get(employee_id) is None:
                raise LoanValidationError("employee_id", f"employee {employee_id} not found")
            await uow.loans.add(loan, deductions)

        logger.info(
            "Created loan %s for employee %s: EMI %d paise over %d months",
            loan.employee_loan_id,
            employee_id,
            loan.emi_paise,
            tenure_months,
        )
        return loan

    async def disburse_loan(self, loan_id: UUID) -> EmployeeLoan:
        """PENDING → ACTIVE; only active loans are deducted by payroll."""
        async with self._uow_factory() as uow:
            loan = await uow.loans.get(loan_id, for_update=True)
            if loan is None:
                raise LoanValidationError("loan_id", f"loan {loan_id} not found")
            if loan.status != LoanStatus.PENDING:
                raise InvalidTransitionError(loan.status, LoanStatus.ACTIVE.value)
            loan.status = LoanStatus.ACTIVE.value
            loan.disbursed_at = datetime.now(timezone.utc)
        return loan
