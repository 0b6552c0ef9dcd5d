"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from payroll_pipeline.queue.base import JobState


class ErrorResponse(BaseModel):
    """Error body returned by every failing endpoint."""

    detail: str
    code: str | None = None


# ============================================================================
# Payroll run schemas
# ============================================================================


class PayrollRunCreate(BaseModel):
    """Schema for triggering a payroll run."""

    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)


class PayrollRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payroll_run_id: UUID
    month: int
    year: int
    status: str
    current_stage: str
    total_employees: int
    processed_employees: int
    success_count: int
    error_count: int
    errors: list[dict[str, Any]] = Field(default_factory=list)
    statutory_totals: dict[str, Any] | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class JobStatusResponse(BaseModel):
    """Queue state of the run's current stage job."""

    model_config = ConfigDict(from_attributes=True)

    job_key: str
    state: JobState
    attempts_made: int
    max_attempts: int
    progress: float
    failed_reason: str | None = None


class PayrollRunStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    run_id: UUID
    month: int
    year: int
    status: str
    current_stage: str
    total_employees: int
    processed_employees: int
    success_count: int
    error_count: int
    errors: list[dict[str, Any]]
    statutory_totals: dict[str, Any] | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    job: JobStatusResponse | None = None


class PayrollRecordResponse(BaseModel):
    """One employee's stored calculation. Amounts are paise."""

    model_config = ConfigDict(from_attributes=True)

    payroll_record_id: UUID
    payroll_run_id: UUID
    employee_id: UUID
    status: str
    calculation_id: UUID
    tax_regime: str
    working_days: int
    paid_days: int
    lop_days: int
    gross_before_lop_paise: int
    lop_deduction_paise: int
    gross_salary_paise: int
    pf_employee_paise: int
    pf_employer_total_paise: int
    esi_applicable: bool
    esi_employee_paise: int
    esi_employer_paise: int
    pt_paise: int
    pt_status: str
    tds_paise: int
    projected_annual_income_paise: int
    total_deductions_paise: int
    net_salary_paise: int
    employer_cost_paise: int
    loan_deduction_paise: int
    reimbursement_paise: int
    net_payable_paise: int


class PayrollRecordListResponse(BaseModel):
    items: list[PayrollRecordResponse]
    total: int


class EnqueueResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    job_key: str
    created: bool
    state: JobState


class CancelResponse(BaseModel):
    cancelled_jobs: int


# ============================================================================
# Loan schemas
# ============================================================================


class AmortizationEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    installment_number: int
    emi: int
    principal: int
    interest: int
    balance_after: int


class LoanScheduleResponse(BaseModel):
    """Preview of an EMI schedule; amounts are paise."""

    principal: int
    annual_rate: Decimal
    tenure_months: int
    emi: int
    total_interest: int
    total_payable: int
    schedule: list[AmortizationEntryResponse]
