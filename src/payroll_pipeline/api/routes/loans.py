"""Loan schedule preview."""

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query

from payroll_pipeline.api.schemas import AmortizationEntryResponse, ErrorResponse, LoanScheduleResponse
from payroll_pipeline.calculators.loan_amortization import (
    calculate_emi,
    generate_schedule,
    total_interest,
)
from payroll_pipeline.services.loan_service import LoanValidationError, validate_loan_terms

router = APIRouter(prefix="/loans", tags=["loans"])


@router.get(
    "/schedule",
    response_model=LoanScheduleResponse,
    responses={422: {"model": ErrorResponse}},
)
async def preview_schedule(
    principal: Annotated[int, Query(description="Principal in paise")],
    annual_rate: Annotated[Decimal, Query(description="Annual interest rate in percent")],
    tenure_months: Annotated[int, Query()],
) -> LoanScheduleResponse:
    """EMI and month-by-month split of a loan, without creating it."""
    try:
        rate = validate_loan_terms(principal, annual_rate, tenure_months)
    except LoanValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    schedule = generate_schedule(principal, rate, tenure_months)
    interest = total_interest(schedule)
    return LoanScheduleResponse(
        principal=principal,
        annual_rate=rate,
        tenure_months=tenure_months,
        emi=calculate_emi(principal, rate, tenure_months),
        total_interest=interest,
        total_payable=principal + interest,
        schedule=[AmortizationEntryResponse.model_validate(entry) for entry in schedule],
    )
