"""Employees' State Insurance (ESI) contribution calculator."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from payroll_pipeline.calculators.money import format_inr, percent_of
from payroll_pipeline.calculators.types import InsuranceContribution

ESI_WAGE_CEILING = 2_100_000  # Rs 21,000
ESI_EMPLOYEE_RATE = Decimal("0.75")
ESI_EMPLOYER_RATE = Decimal("3.25")


@dataclass(frozen=True)
class ContributionPeriod:
    """Half-year ESI contribution period (April-September or October-March)."""

    start: date
    end: date

    def contains(self, month: int, year: int) -> bool:
        return self.start <= date(year, month, 1) <= self.end


def is_esi_applicable(gross: int) -> bool:
    """Gross equal to the ceiling is still covered."""
    return gross <= ESI_WAGE_CEILING


def calculate_insurance(gross: int) -> InsuranceContribution:
    """Compute employee/employer ESI on post-LOP gross salary."""
    if not is_esi_applicable(gross):
        return InsuranceContribution(
            gross=gross,
            applicable=False,
            employee=0,
            employer=0,
            reason=(
                f"Gross salary {format_inr(gross)} exceeds ESI ceiling of "
                f"{format_inr(ESI_WAGE_CEILING)}"
            ),
        )

    return InsuranceContribution(
        gross=gross,
        applicable=True,
        employee=percent_of(gross, ESI_EMPLOYEE_RATE),
        employer=percent_of(gross, ESI_EMPLOYER_RATE),
    )


def contribution_period(month: int, year: int) -> ContributionPeriod:
    """Return the contribution period containing ``month``/``year``."""
    if 4 <= month <= 9:
        return ContributionPeriod(date(year, 4, 1), date(year, 9, 30))
    if month >= 10:
        return ContributionPeriod(date(year, 10, 1), date(year + 1, 3, 31))
    return ContributionPeriod(date(year - 1, 10, 1), date(year, 3, 31))
