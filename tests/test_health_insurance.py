"""Unit tests for ESI contributions."""

from datetime import date

import pytest

from payroll_pipeline.calculators.health_insurance import (
    ESI_WAGE_CEILING,
    calculate_insurance,
    contribution_period,
    is_esi_applicable,
)


class TestInsuranceContribution:
    def test_gross_at_ceiling_is_covered(self):
        esi = calculate_insurance(ESI_WAGE_CEILING)

        assert esi.applicable
        assert esi.employee == 15_750
        assert esi.employer == 68_250
        assert esi.total == 84_000
        assert esi.reason is None

    def test_one_paisa_above_ceiling_is_not_covered(self):
        esi = calculate_insurance(ESI_WAGE_CEILING + 1)

        assert not esi.applicable
        assert esi.employee == 0
        assert esi.employer == 0
        assert "exceeds ESI ceiling" in esi.reason
        assert "Rs 21,000.00" in esi.reason

    def test_rounding(self):
        esi = calculate_insurance(1_234_567)
        assert esi.employee == 9_259
        assert esi.employer == 40_123

    def test_applicability(self):
        assert is_esi_applicable(0)
        assert not is_esi_applicable(2_100_001)


class TestContributionPeriod:
    @pytest.mark.parametrize(
        "month,year,start,end",
        [
            (4, 2025, date(2025, 4, 1), date(2025, 9, 30)),
            (9, 2025, date(2025, 4, 1), date(2025, 9, 30)),
            (10, 2025, date(2025, 10, 1), date(2026, 3, 31)),
            (2, 2026, date(2025, 10, 1), date(2026, 3, 31)),
        ],
    )
    def test_half_year_periods(self, month, year, start, end):
        period = contribution_period(month, year)
        assert (period.start, period.end) == (start, end)
        assert period.contains(month, year)
