"""SQLAlchemy implementations of the pipeline's data collaborators.

Each repository wraps the session of the unit of work that created it, so
writes made through different repositories commit or roll back together.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from payroll_pipeline.calculators.attendance import AttendanceDay, summarize_attendance
from payroll_pipeline.calculators.types import AttendanceSummary, PayrollCalculation
from payroll_pipeline.calculators.withholding_tax import FY_START_MONTH, financial_year_start
from payroll_pipeline.database import dialect_insert
from payroll_pipeline.models import (
    AttendanceLock,
    AttendanceRecord,
    DeductionStatus,
    Employee,
    EmployeeLoan,
    ExpenseClaim,
    LoanDeduction,
    LoanStatus,
    PayrollRecord,
    PayrollRun,
    SalaryStructure,
)
from payroll_pipeline.services.state_machine import PayrollRecordStateMachine, PayrollRecordStatus


def period_end(month: int, year: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _period_index(month: int, year: int) -> int:
    return year * 12 + month


class PayrollRunRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, run_id: UUID, for_update: bool = False) -> PayrollRun | None:
        stmt = select(PayrollRun).where(PayrollRun.payroll_run_id == run_id)
        if for_update:
            stmt = stmt.with_for_update()
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get_by_period(self, month: int, year: int) -> PayrollRun | None:
        result = await self.session.execute(
            select(PayrollRun)
            .where(PayrollRun.month == month, PayrollRun.year == year)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def add(self, run: PayrollRun) -> PayrollRun:
        self.session.add(run)
        await self.session.flush()
        await self.session.refresh(run)
        return run

    async def reset_counters(self, run_id: UUID, total: int) -> None:
        await self.session.execute(
            update(PayrollRun)
            .where(PayrollRun.payroll_run_id == run_id)
            .values(total_employees=total, processed_employees=0, success_count=0, error_count=0)
            .execution_options(synchronize_session=False)
        )

    async def set_counters(self, run_id: UUID, total: int, success: int, error: int) -> None:
        """Record a stage that checks every employee in one pass."""
        await self.session.execute(
            update(PayrollRun)
            .where(PayrollRun.payroll_run_id == run_id)
            .values(
                total_employees=total,
                processed_employees=success + error,
                success_count=success,
                error_count=error,
            )
            .execution_options(synchronize_session=False)
        )

    async def increment_counters(self, run_id: UUID, succeeded: bool) -> None:
        """Atomic in-database increment; safe under concurrent completions."""
        values: dict[str, Any] = {"processed_employees": PayrollRun.processed_employees + 1}
        if succeeded:
            values["success_count"] = PayrollRun.success_count + 1
        else:
            values["error_count"] = PayrollRun.error_count + 1
        await self.session.execute(
            update(PayrollRun)
            .where(PayrollRun.payroll_run_id == run_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )


class EmployeeRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_active(self) -> list[Employee]:
        """Active employees with all of their salary structures loaded."""
        result = await self.session.execute(
            select(Employee)
            .where(Employee.employment_status == "ACTIVE")
            .options(selectinload(Employee.salary_structures))
            .order_by(Employee.employee_code)
        )
        return list(result.scalars().all())

    async def get(self, employee_id: UUID) -> Employee | None:
        result = await self.session.execute(
            select(Employee).where(Employee.employee_id == employee_id)
        )
        return result.scalar_one_or_none()

    async def open_structures(self, employee_id: UUID) -> list[SalaryStructure]:
        result = await self.session.execute(
            select(SalaryStructure).where(
                SalaryStructure.employee_id == employee_id,
                SalaryStructure.effective_to.is_(None),
            )
        )
        return list(result.scalars().all())

    async def add_structure(self, structure: SalaryStructure) -> SalaryStructure:
        self.session.add(structure)
        await self.session.flush()
        return structure


class AttendanceRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def is_locked(self, month: int, year: int) -> bool:
        result = await self.session.execute(
            select(AttendanceLock.attendance_lock_id).where(
                AttendanceLock.month == month, AttendanceLock.year == year
            )
        )
        return result.first() is not None

    async def lock(self, month: int, year: int, locked_by: str | None = None) -> None:
        stmt = (
            dialect_insert(self.session, AttendanceLock)
            .values(month=month, year=year, locked_by=locked_by)
            .on_conflict_do_nothing(index_elements=["month", "year"])
        )
        await self.session.execute(stmt)

    async def get_summary(self, employee_id: UUID, month: int, year: int) -> AttendanceSummary:
        result = await self.session.execute(
            select(AttendanceRecord.work_date, AttendanceRecord.status)
            .where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.work_date >= date(year, month, 1),
                AttendanceRecord.work_date <= period_end(month, year),
            )
            .order_by(AttendanceRecord.work_date)
        )
        rows = [AttendanceDay(day=row.work_date, status=row.status) for row in result]
        return summarize_attendance(rows, month, year, employee_id=str(employee_id))


@dataclass(frozen=True)
class YearToDate:
    months: int
    gross: int
    tax_withheld: int


class PayrollRecordRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(
        self,
        run_id: UUID,
        employee_id: UUID,
        calc: PayrollCalculation,
        calculation_id: UUID,
    ) -> UUID:
        """Insert or overwrite the record for (run, employee); returns its id."""
        values = _record_values(calc)
        values["calculation_id"] = calculation_id
        values["status"] = PayrollRecordStatus.CALCULATED.value

        stmt = dialect_insert(self.session, PayrollRecord).values(
            payroll_run_id=run_id,
            employee_id=employee_id,
            loan_deduction_paise=0,
            reimbursement_paise=0,
            net_payable_paise=calc.net_salary,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["payroll_run_id", "employee_id"],
            set_={**values, "updated_at": func.now()},
        )
        await self.session.execute(stmt)

        result = await self.session.execute(
            select(PayrollRecord.payroll_record_id).where(
                PayrollRecord.payroll_run_id == run_id,
                PayrollRecord.employee_id == employee_id,
            )
        )
        return result.scalar_one()

    async def set_adjustments(
        self, record_id: UUID, net_salary: int, loan_deduction: int, reimbursement: int
    ) -> int:
        net_payable = net_salary - loan_deduction + reimbursement
        await self.session.execute(
            update(PayrollRecord)
            .where(PayrollRecord.payroll_record_id == record_id)
            .values(
                loan_deduction_paise=loan_deduction,
                reimbursement_paise=reimbursement,
                net_payable_paise=net_payable,
            )
            .execution_options(synchronize_session=False)
        )
        return net_payable

    async def list_for_run(self, run_id: UUID) -> list[PayrollRecord]:
        result = await self.session.execute(
            select(PayrollRecord)
            .join(Employee, Employee.employee_id == PayrollRecord.employee_id)
            .where(PayrollRecord.payroll_run_id == run_id)
            .options(selectinload(PayrollRecord.employee))
            .order_by(Employee.employee_code)
        )
        return list(result.scalars().all())

    async def year_to_date(
        self, employee_id: UUID, month: int, year: int, exclude_run_id: UUID
    ) -> YearToDate:
        """Finalized gross and TDS from earlier months of the same financial year."""
        fy_start = _period_index(FY_START_MONTH, financial_year_start(month, year))
        current = _period_index(month, year)
        period = PayrollRecord.year * 12 + PayrollRecord.month
        result = await self.session.execute(
            select(
                func.count(PayrollRecord.payroll_record_id),
                func.coalesce(func.sum(PayrollRecord.gross_salary_paise), 0),
                func.coalesce(func.sum(PayrollRecord.tds_paise), 0),
            ).where(
                PayrollRecord.employee_id == employee_id,
                PayrollRecord.payroll_run_id != exclude_run_id,
                PayrollRecord.status.in_(
                    [PayrollRecordStatus.VERIFIED.value, PayrollRecordStatus.PAID.value]
                ),
                period >= fy_start,
                period < current,
            )
        )
        months, gross, tax = result.one()
        return YearToDate(months=int(months), gross=int(gross), tax_withheld=int(tax))

    async def transition(
        self, run_id: UUID, from_status: PayrollRecordStatus, to_status: PayrollRecordStatus
    ) -> int:
        """Move every record of the run in ``from_status``; returns how many moved."""
        PayrollRecordStateMachine.validate_transition(from_status, to_status)
        result = await self.session.execute(
            update(PayrollRecord)
            .where(
                PayrollRecord.payroll_run_id == run_id,
                PayrollRecord.status == from_status.value,
            )
            .values(status=to_status.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def verify_calculated(self, run_id: UUID) -> int:
        return await self.transition(
            run_id, PayrollRecordStatus.CALCULATED, PayrollRecordStatus.VERIFIED
        )

    async def statutory_totals(self, run_id: UUID) -> dict[str, int]:
        columns = {
            "gross_salary": PayrollRecord.gross_salary_paise,
            "net_salary": PayrollRecord.net_salary_paise,
            "pf_employee": PayrollRecord.pf_employee_paise,
            "pf_employer": PayrollRecord.pf_employer_total_paise,
            "esi_employee": PayrollRecord.esi_employee_paise,
            "esi_employer": PayrollRecord.esi_employer_paise,
            "professional_tax": PayrollRecord.pt_paise,
            "tds": PayrollRecord.tds_paise,
            "employer_cost": PayrollRecord.employer_cost_paise,
        }
        result = await self.session.execute(
            select(
                func.count(PayrollRecord.payroll_record_id),
                *[func.coalesce(func.sum(col), 0) for col in columns.values()],
            ).where(PayrollRecord.payroll_run_id == run_id)
        )
        row = result.one()
        totals = {"record_count": int(row[0])}
        totals.update({name: int(value) for name, value in zip(columns, row[1:])})
        return totals


def _record_values(calc: PayrollCalculation) -> dict[str, Any]:
    pf = calc.provident_fund
    return {
        "month": calc.month,
        "year": calc.year,
        "basic_paise": calc.components.basic,
        "hra_paise": calc.components.hra,
        "special_allowance_paise": calc.components.special_allowance,
        "lta_paise": calc.components.lta,
        "medical_paise": calc.components.medical,
        "conveyance_paise": calc.components.conveyance,
        "other_allowances_paise": calc.components.other_allowances,
        "tax_regime": calc.withholding_tax.regime.value,
        "working_days": calc.attendance.working_days,
        "paid_days": calc.attendance.paid_days,
        "lop_days": calc.attendance.lop_days,
        "gross_before_lop_paise": calc.gross_before_lop,
        "lop_deduction_paise": calc.lop_deduction,
        "gross_salary_paise": calc.gross_salary,
        "pf_base_paise": pf.pf_base,
        "pf_employee_paise": pf.employee,
        "pf_employer_epf_paise": pf.employer_epf,
        "pf_employer_eps_paise": pf.employer_eps,
        "pf_edli_paise": pf.edli,
        "pf_admin_paise": pf.admin_charges,
        "pf_employer_total_paise": pf.employer_total,
        "esi_applicable": calc.insurance.applicable,
        "esi_employee_paise": calc.insurance.employee,
        "esi_employer_paise": calc.insurance.employer,
        "pt_paise": calc.professional_tax.amount,
        "pt_status": calc.professional_tax.status.value,
        "tds_paise": calc.withholding_tax.monthly_tds,
        "projected_annual_income_paise": calc.withholding_tax.projected_annual_income,
        "total_deductions_paise": calc.total_deductions,
        "net_salary_paise": calc.net_salary,
        "employer_cost_paise": calc.employer_cost,
    }


class LoanRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, loan_id: UUID, for_update: bool = False) -> EmployeeLoan | None:
        stmt = select(EmployeeLoan).where(EmployeeLoan.employee_loan_id == loan_id)
        if for_update:
            stmt = stmt.with_for_update()
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def add(self, loan: EmployeeLoan, deductions: list[LoanDeduction]) -> EmployeeLoan:
        self.session.add(loan)
        await self.session.flush()
        for deduction in deductions:
            deduction.employee_loan_id = loan.employee_loan_id
            self.session.add(deduction)
        await self.session.flush()
        return loan

    async def apply_cycle_deductions(
        self,
        employee_id: UUID,
        month: int,
        year: int,
        record_id: UUID,
        now: datetime,
    ) -> int:
        """Deduct this cycle's installments and return their EMI total.

        Installments already linked to the record count towards the total but
        are not applied to the balance again.
        """
        result = await self.session.execute(
            select(LoanDeduction)
            .join(EmployeeLoan, EmployeeLoan.employee_loan_id == LoanDeduction.employee_loan_id)
            .where(
                EmployeeLoan.employee_id == employee_id,
                or_(
                    and_(
                        LoanDeduction.status == DeductionStatus.SCHEDULED.value,
                        LoanDeduction.month == month,
                        LoanDeduction.year == year,
                        EmployeeLoan.status == LoanStatus.ACTIVE.value,
                    ),
                    and_(
                        LoanDeduction.status == DeductionStatus.DEDUCTED.value,
                        LoanDeduction.payroll_record_id == record_id,
                    ),
                ),
            )
            .options(selectinload(LoanDeduction.loan))
            .order_by(LoanDeduction.employee_loan_id, LoanDeduction.installment_number)
            .with_for_update()
        )

        total = 0
        for deduction in result.scalars().all():
            total += deduction.emi_paise
            if deduction.status == DeductionStatus.DEDUCTED.value:
                continue

            loan = deduction.loan
            deduction.status = DeductionStatus.DEDUCTED.value
            deduction.payroll_record_id = record_id
            deduction.deducted_at = now
            loan.remaining_balance_paise = max(0, loan.remaining_balance_paise - deduction.principal_paise)
            if loan.remaining_balance_paise == 0:
                loan.status = LoanStatus.CLOSED.value
                loan.closed_at = now
                loan.closure_reason = "Fully repaid through payroll"
        await self.session.flush()
        return total


class ExpenseRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def reimburse_for_cycle(
        self, employee_id: UUID, cycle_end: date, record_id: UUID, now: datetime
    ) -> int:
        """Link approved claims up to ``cycle_end`` to the record; returns their total."""
        result = await self.session.execute(
            select(ExpenseClaim)
            .where(
                ExpenseClaim.employee_id == employee_id,
                or_(
                    and_(
                        ExpenseClaim.status == "APPROVED",
                        ExpenseClaim.synced_to_payroll.is_(False),
                        ExpenseClaim.expense_date <= cycle_end,
                    ),
                    ExpenseClaim.payroll_record_id == record_id,
                ),
            )
            .order_by(ExpenseClaim.expense_date)
            .with_for_update()
        )

        total = 0
        for claim in result.scalars().all():
            total += claim.amount_paise
            if claim.payroll_record_id == record_id:
                continue
            claim.status = "REIMBURSED"
            claim.synced_to_payroll = True
            claim.payroll_record_id = record_id
            claim.reimbursed_at = now
        await self.session.flush()
        return total
