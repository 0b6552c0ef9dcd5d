"""Unit tests for the provident fund calculator."""

from hypothesis import given, strategies as st

from payroll_pipeline.calculators.provident_fund import (
    DEFAULT_PF_RATES,
    ProvidentFundRates,
    calculate_provident_fund,
)


class TestProvidentFund:
    def test_basic_above_ceiling_is_capped(self):
        """Contributions are computed on Rs 15,000 at most."""
        pf = calculate_provident_fund(2_000_000)

        assert pf.pf_base == 1_500_000
        assert pf.employee == 180_000
        assert pf.employer_eps == 124_950
        assert pf.employer_epf == 55_050
        assert pf.edli == 7_500
        assert pf.admin_charges == 7_650
        assert pf.employer_total == 195_150

    def test_basic_below_ceiling(self):
        pf = calculate_provident_fund(1_000_000)

        assert pf.pf_base == 1_000_000
        assert pf.employee == 120_000
        assert pf.employer_epf == 36_700
        assert pf.employer_eps == 83_300
        assert pf.edli == 5_000
        assert pf.admin_charges == 5_100

    def test_each_line_rounded_half_up(self):
        pf = calculate_provident_fund(1_234_567)

        assert pf.employee == 148_148
        assert pf.employer_eps == 102_839
        assert pf.employer_epf == 45_309

    def test_zero_and_negative_basic(self):
        for basic in (0, -100):
            pf = calculate_provident_fund(basic)
            assert pf.pf_base == 0
            assert pf.employee == 0
            assert pf.employer_total == 0

    def test_pension_cap_moves_excess_to_epf(self):
        rates = ProvidentFundRates(eps_monthly_cap=100_000)
        pf = calculate_provident_fund(1_500_000, rates)

        assert pf.employer_eps == 100_000
        assert pf.employer_epf == 55_050 + 24_950

    @given(st.integers(min_value=1, max_value=50_000_000))
    def test_employer_pension_never_exceeds_cap(self, basic):
        pf = calculate_provident_fund(basic)
        assert pf.employer_eps <= DEFAULT_PF_RATES.eps_monthly_cap
        assert pf.pf_base == min(basic, DEFAULT_PF_RATES.wage_ceiling)
