"""Provident fund (EPF/EPS/EDLI) contribution calculator."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from payroll_pipeline.calculators.money import percent_of
from payroll_pipeline.calculators.types import ProvidentFundContribution


@dataclass(frozen=True)
class ProvidentFundRates:
    """Statutory rates; all percentages apply to the capped wage base."""

    wage_ceiling: int = 1_500_000  # Rs 15,000
    employee_rate: Decimal = Decimal("12")
    epf_rate: Decimal = Decimal("3.67")
    eps_rate: Decimal = Decimal("8.33")
    eps_monthly_cap: int = 125_000  # Rs 1,250
    edli_rate: Decimal = Decimal("0.5")
    admin_rate: Decimal = Decimal("0.51")


DEFAULT_PF_RATES = ProvidentFundRates()

_ZERO = ProvidentFundContribution(
    pf_base=0, employee=0, employer_epf=0, employer_eps=0, edli=0, admin_charges=0
)


def calculate_provident_fund(
    basic: int, rates: ProvidentFundRates = DEFAULT_PF_RATES
) -> ProvidentFundContribution:
    """Compute employee and employer provident fund lines for a month's basic.

    The pension share is capped; anything the cap removes is credited to the
    employer's EPF line so the employer total is unchanged.
    """
    if basic <= 0:
        return _ZERO

    pf_base = min(basic, rates.wage_ceiling)

    eps = percent_of(pf_base, rates.eps_rate)
    epf = percent_of(pf_base, rates.epf_rate)
    if eps > rates.eps_monthly_cap:
        epf += eps - rates.eps_monthly_cap
        eps = rates.eps_monthly_cap

    return ProvidentFundContribution(
        pf_base=pf_base,
        employee=percent_of(pf_base, rates.employee_rate),
        employer_epf=epf,
        employer_eps=eps,
        edli=percent_of(pf_base, rates.edli_rate),
        admin_charges=percent_of(pf_base, rates.admin_rate),
    )
