"""Salary structure compliance: the 50% basic pay rule and annual CTC."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from payroll_pipeline.calculators.health_insurance import calculate_insurance
from payroll_pipeline.calculators.money import ceil_paise, format_inr
from payroll_pipeline.calculators.provident_fund import calculate_provident_fund
from payroll_pipeline.calculators.types import SalaryComponents

MIN_BASIC_PERCENTAGE = Decimal("50")


@dataclass(frozen=True)
class ComplianceResult:
    gross: int
    basic_percentage: Decimal
    is_compliant: bool
    shortfall: int = 0
    error: str | None = None


def evaluate_basic_pay_rule(components: SalaryComponents) -> ComplianceResult:
    """Basic pay must be at least half of monthly gross."""
    gross = components.gross
    if gross <= 0:
        return ComplianceResult(
            gross=0,
            basic_percentage=Decimal("0"),
            is_compliant=False,
            error="Total salary must be greater than zero",
        )

    exact = Decimal(components.basic) * 100 / Decimal(gross)
    percentage = exact.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    if exact < MIN_BASIC_PERCENTAGE:
        required = ceil_paise(Decimal(gross) * MIN_BASIC_PERCENTAGE / 100)
        shortfall = required - components.basic
        return ComplianceResult(
            gross=gross,
            basic_percentage=percentage,
            is_compliant=False,
            shortfall=shortfall,
            error=(
                f"Basic pay ({percentage}%) must be at least {MIN_BASIC_PERCENTAGE}% of gross "
                f"salary. Increase basic by {format_inr(shortfall)} or reduce allowances."
            ),
        )

    return ComplianceResult(gross=gross, basic_percentage=percentage, is_compliant=True)


def annual_ctc(components: SalaryComponents) -> int:
    """Cost to company for a year at this structure, before any loss of pay."""
    gross = components.gross
    pf = calculate_provident_fund(components.basic)
    esi = calculate_insurance(gross)
    return (gross + pf.employer_epf + pf.employer_eps + esi.employer) * 12
