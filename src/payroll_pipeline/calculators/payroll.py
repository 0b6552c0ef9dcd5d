"""Per-employee monthly payroll calculation."""

from __future__ import annotations

import hashlib
import json
import logging
from uuid import UUID

from payroll_pipeline.calculators.attendance import validate_summary
from payroll_pipeline.calculators.health_insurance import calculate_insurance
from payroll_pipeline.calculators.money import divide_round
from payroll_pipeline.calculators.professional_tax import (
    DEFAULT_PT_REGISTRY,
    ProfessionalTaxRegistry,
)
from payroll_pipeline.calculators.provident_fund import (
    DEFAULT_PF_RATES,
    ProvidentFundRates,
    calculate_provident_fund,
)
from payroll_pipeline.calculators.types import (
    Gender,
    PayrollCalculation,
    PayrollInput,
    ProfessionalTaxStatus,
)
from payroll_pipeline.calculators.withholding_tax import calculate_withholding

logger = logging.getLogger(__name__)


def calculate_lop_deduction(gross_before_lop: int, working_days: int, lop_days: int) -> int:
    """Per-day rate is rounded once, then multiplied by the loss-of-pay days."""
    if working_days <= 0 or lop_days <= 0:
        return 0
    return divide_round(gross_before_lop, working_days) * lop_days


class PayrollCalculator:
    """Composes the statutory calculators for one employee and one month.

    Pipeline:
    1) Gross before LOP = sum of salary components
    2) LOP deduction from the per-day rate
    3) Provident fund on basic pay
    4) ESI and professional tax on post-LOP gross
    5) TDS projected from post-LOP gross
    6) Net salary and employer cost

    Business rules never raise. Only a missing or malformed attendance
    summary raises ``AttendanceDataError``. Loan EMIs and reimbursements are
    applied against the stored record afterwards.
    """

    def __init__(
        self,
        pt_registry: ProfessionalTaxRegistry = DEFAULT_PT_REGISTRY,
        pf_rates: ProvidentFundRates = DEFAULT_PF_RATES,
    ):
        self.pt_registry = pt_registry
        self.pf_rates = pf_rates

    def calculate(self, inp: PayrollInput) -> PayrollCalculation:
        attendance = validate_summary(inp.attendance, inp.employee_id)
        notes: list[str] = []

        gross_before_lop = inp.components.gross
        lop_deduction = calculate_lop_deduction(
            gross_before_lop, attendance.working_days, attendance.lop_days
        )
        gross_salary = gross_before_lop - lop_deduction

        pf = calculate_provident_fund(inp.components.basic, self.pf_rates)
        esi = calculate_insurance(gross_salary)
        if not esi.applicable and esi.reason:
            notes.append(esi.reason)

        # Employees without a recorded gender are charged the general (male) slabs
        gender = inp.gender or Gender.MALE
        pt = self.pt_registry.calculate(inp.work_state, gross_salary, inp.month, gender)
        if pt.status == ProfessionalTaxStatus.NO_POLICY:
            logger.info(
                "No professional tax policy for state %r (employee %s)",
                inp.work_state,
                inp.employee_id,
            )
            notes.append(f"No professional tax policy configured for state {pt.state_code or '-'}")

        tds = calculate_withholding(
            gross_salary,
            inp.month,
            regime=inp.tax_regime,
            tax_already_withheld=inp.ytd_tax_withheld,
            ytd_gross=inp.ytd_gross,
            declared_deductions=inp.declared_deductions,
        )

        total_deductions = pf.employee + esi.employee + pt.amount + tds.monthly_tds

        return PayrollCalculation(
            employee_id=inp.employee_id,
            month=inp.month,
            year=inp.year,
            components=inp.components,
            attendance=attendance,
            gross_before_lop=gross_before_lop,
            lop_deduction=lop_deduction,
            gross_salary=gross_salary,
            provident_fund=pf,
            insurance=esi,
            professional_tax=pt,
            withholding_tax=tds,
            total_deductions=total_deductions,
            net_salary=gross_salary - total_deductions,
            employer_cost=gross_salary + pf.employer_total + esi.employer,
            notes=notes,
        )


def calculation_id(calculation: PayrollCalculation, run_id: str, engine_version: str) -> UUID:
    """Deterministic ID: same inputs and engine version give the same UUID."""
    data = {
        "run_id": run_id,
        "engine_version": engine_version,
        "inputs": calculation.fingerprint_data(),
    }
    json_str = json.dumps(data, sort_keys=True)
    hash_bytes = hashlib.sha256(json_str.encode()).digest()
    return UUID(bytes=hash_bytes[:16])
