"""Reducing-balance loan EMI and amortization schedule."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, localcontext

from payroll_pipeline.calculators.money import divide_round, round_half_up

_MONTHS_PER_YEAR = 12


@dataclass(frozen=True)
class LoanTerms:
    principal: int
    annual_rate: Decimal
    tenure_months: int

    @property
    def monthly_rate(self) -> Decimal:
        return Decimal(self.annual_rate) / 100 / _MONTHS_PER_YEAR


@dataclass(frozen=True)
class AmortizationEntry:
    installment_number: int
    emi: int
    principal: int
    interest: int
    balance_after: int


def calculate_emi(principal: int, annual_rate: Decimal | int | str, tenure_months: int) -> int:
    """Equated monthly instalment in paise.

    A zero rate divides the principal evenly; the annuity formula would divide
    by zero there.
    """
    if tenure_months <= 0:
        raise ValueError("tenure_months must be positive")
    terms = LoanTerms(principal, Decimal(str(annual_rate)), tenure_months)

    if terms.annual_rate == 0:
        return divide_round(principal, tenure_months)

    with localcontext() as ctx:
        ctx.prec = 40
        rate = terms.monthly_rate
        factor = (1 + rate) ** tenure_months
        emi = Decimal(principal) * rate * factor / (factor - 1)
    return round_half_up(emi)


def generate_schedule(
    principal: int, annual_rate: Decimal | int | str, tenure_months: int
) -> list[AmortizationEntry]:
    """Month-by-month schedule.

    Interest is charged on the outstanding balance. The last installment takes
    whatever balance is left, so principal components always sum to the
    original principal and the closing balance is zero.
    """
    emi = calculate_emi(principal, annual_rate, tenure_months)
    rate = LoanTerms(principal, Decimal(str(annual_rate)), tenure_months).monthly_rate

    schedule: list[AmortizationEntry] = []
    balance = principal
    for number in range(1, tenure_months + 1):
        interest = round_half_up(Decimal(balance) * rate)
        if number == tenure_months:
            paid = balance
            installment = paid + interest
        else:
            # Rounding on tiny interest-free loans can overshoot the balance
            paid = min(emi - interest, balance)
            installment = paid + interest
        balance -= paid
        schedule.append(
            AmortizationEntry(
                installment_number=number,
                emi=installment,
                principal=paid,
                interest=interest,
                balance_after=balance,
            )
        )
    return schedule


def total_interest(schedule: list[AmortizationEntry]) -> int:
    return sum(entry.interest for entry in schedule)


def add_months(start: date, months: int) -> date:
    """Same day ``months`` later, clamped to the end of a shorter month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def loan_end_date(start: date, tenure_months: int) -> date:
    return add_months(start, tenure_months)


def remaining_installments(paid_installments: int, tenure_months: int) -> int:
    return max(0, tenure_months - paid_installments)
