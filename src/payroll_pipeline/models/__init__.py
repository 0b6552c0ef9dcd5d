"""SQLAlchemy ORM models."""

from payroll_pipeline.models.attendance import AttendanceLock, AttendanceRecord
from payroll_pipeline.models.base import Base, TimestampMixin
from payroll_pipeline.models.employee import Employee, SalaryStructure
from payroll_pipeline.models.expenses import ExpenseClaim
from payroll_pipeline.models.jobs import PayrollStageJob
from payroll_pipeline.models.loans import DeductionStatus, EmployeeLoan, LoanDeduction, LoanStatus
from payroll_pipeline.models.payroll import PayrollRecord, PayrollRun

__all__ = [
    "AttendanceLock",
    "AttendanceRecord",
    "Base",
    "DeductionStatus",
    "Employee",
    "EmployeeLoan",
    "ExpenseClaim",
    "LoanDeduction",
    "LoanStatus",
    "PayrollRecord",
    "PayrollRun",
    "PayrollStageJob",
    "SalaryStructure",
    "TimestampMixin",
]
