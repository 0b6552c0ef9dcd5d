"""Monthly income-tax withholding (TDS) from an annual projection.

The financial year runs April to March. Each month the annual income is
projected again, the regime's slabs are applied, and the tax still owed for
the year is spread over the months that remain, this month included.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from payroll_pipeline.calculators.money import divide_round, percent_of
from payroll_pipeline.calculators.types import TaxRegime, WithholdingTaxResult

FY_START_MONTH = 4
CESS_RATE = Decimal("4")


@dataclass(frozen=True)
class TaxSlab:
    """Marginal rate on income between ``lower`` and ``upper`` paise."""

    lower: int
    upper: int | None
    rate: Decimal


@dataclass(frozen=True)
class RegimeRules:
    regime: TaxRegime
    slabs: tuple[TaxSlab, ...]
    standard_deduction: int
    max_declared_deductions: int = 0
    rebate_income_limit: int | None = None


NEW_REGIME = RegimeRules(
    regime=TaxRegime.NEW,
    slabs=(
        TaxSlab(0, 30_000_000, Decimal("0")),
        TaxSlab(30_000_000, 70_000_000, Decimal("5")),
        TaxSlab(70_000_000, 100_000_000, Decimal("10")),
        TaxSlab(100_000_000, 120_000_000, Decimal("15")),
        TaxSlab(120_000_000, 150_000_000, Decimal("20")),
        TaxSlab(150_000_000, None, Decimal("30")),
    ),
    standard_deduction=7_500_000,  # Rs 75,000
    rebate_income_limit=70_000_000,  # Rs 7,00,000 projected income
)

OLD_REGIME = RegimeRules(
    regime=TaxRegime.OLD,
    slabs=(
        TaxSlab(0, 25_000_000, Decimal("0")),
        TaxSlab(25_000_000, 50_000_000, Decimal("5")),
        TaxSlab(50_000_000, 100_000_000, Decimal("20")),
        TaxSlab(100_000_000, None, Decimal("30")),
    ),
    standard_deduction=5_000_000,  # Rs 50,000
    max_declared_deductions=17_500_000,  # 80C Rs 1,50,000 + 80D Rs 25,000
)

REGIMES: dict[TaxRegime, RegimeRules] = {
    TaxRegime.NEW: NEW_REGIME,
    TaxRegime.OLD: OLD_REGIME,
}


@dataclass(frozen=True)
class AnnualTax:
    taxable_income: int
    other_deductions: int
    tax_before_rebate: int
    rebate: int
    cess: int

    @property
    def total(self) -> int:
        return self.tax_before_rebate - self.rebate + self.cess


def financial_year_month(month: int) -> int:
    """April is 1, March is 12."""
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1-12, got {month}")
    return month - FY_START_MONTH + 1 if month >= FY_START_MONTH else month + 12 - FY_START_MONTH + 1


def remaining_months(month: int) -> int:
    """Months left in the financial year, counting ``month`` itself."""
    return 13 - financial_year_month(month)


def financial_year_start(month: int, year: int) -> int:
    """Calendar year in which the financial year containing the month began."""
    return year if month >= FY_START_MONTH else year - 1


def project_annual_income(
    monthly_gross: int, month: int, ytd_gross: int | None = None
) -> int:
    """Annualize a month's gross.

    Without year-to-date figures this is ``monthly_gross * 12``. With them the
    months already paid are taken as actuals and the rest are projected.
    """
    if ytd_gross is None:
        return monthly_gross * 12
    return ytd_gross + monthly_gross * remaining_months(month)


def slab_tax(income: int, slabs: tuple[TaxSlab, ...]) -> int:
    """Progressive tax; each slab's share is rounded before summing."""
    if income <= 0:
        return 0

    total = 0
    for slab in sorted(slabs, key=lambda s: s.lower):
        if income <= slab.lower:
            break
        upper = income if slab.upper is None else min(income, slab.upper)
        total += percent_of(upper - slab.lower, slab.rate)
    return total


def calculate_annual_tax(
    annual_income: int,
    regime: TaxRegime = TaxRegime.NEW,
    declared_deductions: int = 0,
) -> AnnualTax:
    """Annual liability including cess for a projected income."""
    rules = REGIMES[regime]
    other = min(max(declared_deductions, 0), rules.max_declared_deductions)
    taxable = max(0, annual_income - rules.standard_deduction - other)
    tax = slab_tax(taxable, rules.slabs)

    rebate = 0
    if rules.rebate_income_limit is not None and annual_income <= rules.rebate_income_limit:
        rebate = tax

    return AnnualTax(
        taxable_income=taxable,
        other_deductions=other,
        tax_before_rebate=tax,
        rebate=rebate,
        cess=percent_of(tax - rebate, CESS_RATE),
    )


def calculate_withholding(
    monthly_gross: int,
    month: int,
    regime: TaxRegime = TaxRegime.NEW,
    tax_already_withheld: int = 0,
    ytd_gross: int | None = None,
    declared_deductions: int = 0,
) -> WithholdingTaxResult:
    """Monthly TDS for ``month`` given this month's post-LOP gross."""
    months_left = remaining_months(month)
    projected = project_annual_income(monthly_gross, month, ytd_gross)
    annual = calculate_annual_tax(projected, regime, declared_deductions)

    outstanding = max(0, annual.total - tax_already_withheld)

    return WithholdingTaxResult(
        regime=regime,
        projected_annual_income=projected,
        standard_deduction=REGIMES[regime].standard_deduction,
        other_deductions=annual.other_deductions,
        taxable_income=annual.taxable_income,
        tax_before_rebate=annual.tax_before_rebate,
        rebate=annual.rebate,
        cess=annual.cess,
        annual_tax=annual.total,
        tax_already_withheld=tax_already_withheld,
        remaining_months=months_left,
        monthly_tds=divide_round(outstanding, months_left),
    )
