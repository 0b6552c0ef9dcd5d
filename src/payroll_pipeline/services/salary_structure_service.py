"""Salary structure versioning."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from uuid import UUID

from payroll_pipeline.calculators.compliance import evaluate_basic_pay_rule
from payroll_pipeline.calculators.types import SalaryComponents, TaxRegime
from payroll_pipeline.models import SalaryStructure
from payroll_pipeline.services.unit_of_work import UnitOfWorkFactory

logger = logging.getLogger(__name__)


class SalaryStructureService:
    def __init__(self, uow_factory: UnitOfWorkFactory):
        self._uow_factory = uow_factory

    async def create_structure(
        self,
        employee_id: UUID,
        components: SalaryComponents,
        effective_from: date,
        tax_regime: TaxRegime = TaxRegime.NEW,
        declared_deductions: int = 0,
    ) -> SalaryStructure:
        """Add a structure and end the open one the day before it starts.

        Non-compliant structures are stored with ``is_compliant=False`` and
        block the employee at payroll validation.
        """
        if components.basic <= 0:
            raise ValueError("Basic pay must be positive")
        compliance = evaluate_basic_pay_rule(components)
        if not compliance.is_compliant:
            logger.warning("Salary structure for %s is not compliant: %s", employee_id, compliance.error)

        async with self._uow_factory() as uow:
            if await uow.employees.get(employee_id) is None:
                raise ValueError(f"Employee {employee_id} not found")

            for current in await uow.employees.open_structures(employee_id):
                if current.effective_from >= effective_from:
                    raise ValueError(
                        f"New structure must start after {current.effective_from.isoformat()}"
                    )
                current.effective_to = effective_from - timedelta(days=1)

            structure = SalaryStructure(
                employee_id=employee_id,
                effective_from=effective_from,
                basic_paise=components.basic,
                hra_paise=components.hra,
                special_allowance_paise=components.special_allowance,
                lta_paise=components.lta,
                medical_paise=components.medical,
                conveyance_paise=components.conveyance,
                other_allowances_paise=components.other_allowances,
                tax_regime=tax_regime.value,
                declared_deductions_paise=declared_deductions,
                is_compliant=compliance.is_compliant,
                basic_percentage=compliance.basic_percentage,
            )
            await uow.employees.add_structure(structure)
        return structure
