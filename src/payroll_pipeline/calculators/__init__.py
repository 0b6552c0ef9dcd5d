"""Pure payroll calculators: statutory deductions, loans and attendance."""

from payroll_pipeline.calculators.attendance import AttendanceDataError, summarize_attendance
from payroll_pipeline.calculators.health_insurance import calculate_insurance
from payroll_pipeline.calculators.loan_amortization import calculate_emi, generate_schedule
from payroll_pipeline.calculators.payroll import PayrollCalculator
from payroll_pipeline.calculators.professional_tax import ProfessionalTaxRegistry
from payroll_pipeline.calculators.provident_fund import calculate_provident_fund
from payroll_pipeline.calculators.withholding_tax import calculate_withholding

__all__ = [
    "AttendanceDataError",
    "PayrollCalculator",
    "ProfessionalTaxRegistry",
    "calculate_emi",
    "calculate_insurance",
    "calculate_provident_fund",
    "calculate_withholding",
    "generate_schedule",
    "summarize_attendance",
]
