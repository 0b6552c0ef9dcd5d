"""Tests for salary structure versioning."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from payroll_pipeline.calculators.types import SalaryComponents, TaxRegime
from payroll_pipeline.models import SalaryStructure
from payroll_pipeline.services.salary_structure_service import SalaryStructureService


@pytest.fixture
def structures(uow_factory) -> SalaryStructureService:
    return SalaryStructureService(uow_factory)


async def structures_for(session_factory, employee_id) -> list[SalaryStructure]:
    async with session_factory() as session:
        result = await session.execute(
            select(SalaryStructure)
            .where(SalaryStructure.employee_id == employee_id)
            .order_by(SalaryStructure.effective_from)
        )
        return list(result.scalars().all())


class TestCreateStructure:
    async def test_new_version_closes_open_structure(self, structures, seed, session_factory):
        employee_id = await seed.employee(effective_from=date(2025, 1, 1))

        created = await structures.create_structure(
            employee_id,
            SalaryComponents(basic=3_500_000, hra=1_400_000, special_allowance=600_000),
            date(2025, 7, 1),
            tax_regime=TaxRegime.OLD,
            declared_deductions=15_000_000,
        )

        assert created.is_compliant
        assert created.basic_percentage == Decimal("63.64")
        assert created.tax_regime == "OLD"

        old, new = await structures_for(session_factory, employee_id)
        assert old.effective_to == date(2025, 6, 30)
        assert new.effective_to is None
        assert new.declared_deductions_paise == 15_000_000
        assert not old.is_active_on(date(2025, 7, 31))
        assert new.is_active_on(date(2025, 7, 31))

    async def test_non_compliant_structure_is_stored_flagged(self, structures, seed, session_factory):
        employee_id = await seed.employee()

        created = await structures.create_structure(
            employee_id,
            SalaryComponents(basic=1_000_000, hra=1_500_000),
            date(2025, 4, 1),
        )

        assert created.is_compliant is False
        assert created.basic_percentage == Decimal("40.00")
        assert len(await structures_for(session_factory, employee_id)) == 2

    async def test_must_start_after_open_structure(self, structures, seed):
        employee_id = await seed.employee(effective_from=date(2025, 4, 1))

        with pytest.raises(ValueError, match="must start after 2025-04-01"):
            await structures.create_structure(
                employee_id, SalaryComponents(basic=3_000_000), date(2025, 4, 1)
            )

    async def test_rejects_non_positive_basic(self, structures, seed):
        employee_id = await seed.employee()

        with pytest.raises(ValueError, match="Basic pay must be positive"):
            await structures.create_structure(
                employee_id, SalaryComponents(basic=0, hra=100_000), date(2025, 4, 1)
            )

    async def test_unknown_employee(self, structures):
        with pytest.raises(ValueError, match="not found"):
            await structures.create_structure(
                uuid4(), SalaryComponents(basic=3_000_000), date(2025, 4, 1)
            )
