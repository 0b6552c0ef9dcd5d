"""Types used by the payroll calculators."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


class TaxRegime(str, Enum):
    """Income-tax regime chosen by the employee for the financial year."""

    OLD = "OLD"
    NEW = "NEW"


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class ProfessionalTaxStatus(str, Enum):
    """Outcome of a professional-tax lookup.

    ``NO_POLICY`` means nothing is configured for the region and is kept
    distinct from a configured table that yields zero.
    """

    CHARGED = "CHARGED"
    BELOW_THRESHOLD = "BELOW_THRESHOLD"
    EXEMPT_REGION = "EXEMPT_REGION"
    NO_POLICY = "NO_POLICY"


@dataclass(frozen=True)
class SalaryComponents:
    """Monthly salary components in paise."""

    basic: int
    hra: int = 0
    special_allowance: int = 0
    lta: int = 0
    medical: int = 0
    conveyance: int = 0
    other_allowances: int = 0

    @property
    def gross(self) -> int:
        return (
            self.basic
            + self.hra
            + self.special_allowance
            + self.lta
            + self.medical
            + self.conveyance
            + self.other_allowances
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "basic": self.basic,
            "hra": self.hra,
            "special_allowance": self.special_allowance,
            "lta": self.lta,
            "medical": self.medical,
            "conveyance": self.conveyance,
            "other_allowances": self.other_allowances,
        }


@dataclass(frozen=True)
class AttendanceSummary:
    """Day counts for one employee and one month."""

    working_days: int
    paid_days: int
    lop_days: int
    present_days: Decimal = Decimal("0")


@dataclass(frozen=True)
class ProvidentFundContribution:
    """Provident fund split; every line is rounded on its own."""

    pf_base: int
    employee: int
    employer_epf: int
    employer_eps: int
    edli: int
    admin_charges: int

    @property
    def employer_total(self) -> int:
        return self.employer_epf + self.employer_eps + self.edli + self.admin_charges


@dataclass(frozen=True)
class InsuranceContribution:
    """Employee state insurance contribution for one month."""

    gross: int
    applicable: bool
    employee: int
    employer: int
    reason: str | None = None

    @property
    def total(self) -> int:
        return self.employee + self.employer


@dataclass(frozen=True)
class ProfessionalTaxResult:
    state_code: str
    amount: int
    status: ProfessionalTaxStatus

    @property
    def is_configured(self) -> bool:
        return self.status != ProfessionalTaxStatus.NO_POLICY


@dataclass(frozen=True)
class WithholdingTaxResult:
    """Monthly TDS derived from an annual projection."""

    regime: TaxRegime
    projected_annual_income: int
    standard_deduction: int
    other_deductions: int
    taxable_income: int
    tax_before_rebate: int
    rebate: int
    cess: int
    annual_tax: int
    tax_already_withheld: int
    remaining_months: int
    monthly_tds: int


@dataclass(frozen=True)
class PayrollInput:
    """Everything the calculator needs for one employee and one month."""

    employee_id: str
    month: int
    year: int
    components: SalaryComponents
    attendance: AttendanceSummary | None
    work_state: str | None = None
    gender: Gender | None = None
    tax_regime: TaxRegime = TaxRegime.NEW
    declared_deductions: int = 0
    ytd_gross: int | None = None
    ytd_tax_withheld: int = 0


@dataclass(frozen=True)
class PayrollCalculation:
    """Per-employee result of one monthly payroll calculation."""

    employee_id: str
    month: int
    year: int
    components: SalaryComponents
    attendance: AttendanceSummary
    gross_before_lop: int
    lop_deduction: int
    gross_salary: int
    provident_fund: ProvidentFundContribution
    insurance: InsuranceContribution
    professional_tax: ProfessionalTaxResult
    withholding_tax: WithholdingTaxResult
    total_deductions: int
    net_salary: int
    employer_cost: int
    notes: list[str] = field(default_factory=list)

    def fingerprint_data(self) -> dict[str, Any]:
        """Stable, JSON-friendly view of the inputs behind this result."""
        return {
            "employee_id": self.employee_id,
            "period": f"{self.year:04d}-{self.month:02d}",
            "components": self.components.to_dict(),
            "working_days": self.attendance.working_days,
            "paid_days": self.attendance.paid_days,
            "lop_days": self.attendance.lop_days,
            "work_state": self.professional_tax.state_code,
            "regime": self.withholding_tax.regime.value,
            "tax_already_withheld": self.withholding_tax.tax_already_withheld,
            "projected_annual_income": self.withholding_tax.projected_annual_income,
        }
