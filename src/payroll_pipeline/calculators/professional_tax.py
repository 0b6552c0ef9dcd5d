"""Regional professional tax lookup.

Slab tables are data. A payload looks like::

    {
        "state_code": "KA",
        "salary_from": 1500000,      # paise, inclusive
        "salary_to": null,           # paise, inclusive; null = no upper bound
        "tax_amount": 30000,         # paise per month
        "month": 2,                  # optional, only this month
        "applies_to_gender": null    # optional, only this gender
    }

When several slabs match, a month-specific slab beats a general one, a
gender-specific slab beats a gender-neutral one, and then the highest
``salary_from`` wins.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from payroll_pipeline.calculators.types import (
    Gender,
    ProfessionalTaxResult,
    ProfessionalTaxStatus,
)

logger = logging.getLogger(__name__)

# States and union territories that levy no professional tax
DEFAULT_EXEMPT_STATES = frozenset({"DL", "HR", "HP", "JH", "KL", "PB", "RJ", "UP", "UT"})

DEFAULT_SLAB_PAYLOADS: list[dict[str, Any]] = [
    # Karnataka: Rs 200 from Rs 15,000, Rs 300 in February
    {"state_code": "KA", "salary_from": 1500000, "salary_to": None, "tax_amount": 20000},
    {"state_code": "KA", "salary_from": 1500000, "salary_to": None, "tax_amount": 30000, "month": 2},
    # Maharashtra: separate rates for men and women; no slab for other genders
    {
        "state_code": "MH",
        "salary_from": 1000100,
        "salary_to": 2500000,
        "tax_amount": 17500,
        "applies_to_gender": "MALE",
    },
    {
        "state_code": "MH",
        "salary_from": 2500100,
        "salary_to": None,
        "tax_amount": 20000,
        "applies_to_gender": "MALE",
    },
    {
        "state_code": "MH",
        "salary_from": 1000100,
        "salary_to": 2500000,
        "tax_amount": 15000,
        "applies_to_gender": "FEMALE",
    },
    {
        "state_code": "MH",
        "salary_from": 2500100,
        "salary_to": None,
        "tax_amount": 17500,
        "applies_to_gender": "FEMALE",
    },
    # Tamil Nadu: Rs 2,500 a year in the top slab
    {"state_code": "TN", "salary_from": 750100, "salary_to": 1000000, "tax_amount": 13500},
    {"state_code": "TN", "salary_from": 1000100, "salary_to": 1250000, "tax_amount": 15000},
    {"state_code": "TN", "salary_from": 1250100, "salary_to": None, "tax_amount": 20833},
    # Telangana
    {"state_code": "TS", "salary_from": 1500100, "salary_to": 2000000, "tax_amount": 15000},
    {"state_code": "TS", "salary_from": 2000100, "salary_to": None, "tax_amount": 20000},
]


@dataclass(frozen=True)
class ProfessionalTaxSlab:
    state_code: str
    salary_from: int
    salary_to: int | None
    tax_amount: int
    month: int | None = None
    applies_to_gender: Gender | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ProfessionalTaxSlab:
        gender = payload.get("applies_to_gender")
        month = payload.get("month")
        slab = cls(
            state_code=str(payload["state_code"]).upper(),
            salary_from=int(payload["salary_from"]),
            salary_to=int(payload["salary_to"]) if payload.get("salary_to") is not None else None,
            tax_amount=int(payload["tax_amount"]),
            month=int(month) if month is not None else None,
            applies_to_gender=Gender(gender) if gender else None,
        )
        if slab.salary_to is not None and slab.salary_to < slab.salary_from:
            raise ValueError(f"Slab upper bound below lower bound: {payload}")
        if slab.month is not None and not 1 <= slab.month <= 12:
            raise ValueError(f"Slab month out of range: {payload}")
        return slab

    def matches(self, gross: int, month: int, gender: Gender | None) -> bool:
        if gross < self.salary_from:
            return False
        if self.salary_to is not None and gross > self.salary_to:
            return False
        if self.month is not None and self.month != month:
            return False
        if self.applies_to_gender is not None and self.applies_to_gender != gender:
            return False
        return True

    def _precedence(self) -> tuple[bool, bool, int]:
        return (
            self.month is not None,
            self.applies_to_gender is not None,
            self.salary_from,
        )


@dataclass
class ProfessionalTaxRegistry:
    """Slab tables keyed by state code."""

    tables: dict[str, list[ProfessionalTaxSlab]] = field(default_factory=dict)
    exempt_states: frozenset[str] = DEFAULT_EXEMPT_STATES

    @classmethod
    def from_payloads(
        cls,
        payloads: Iterable[dict[str, Any]],
        exempt_states: Iterable[str] = DEFAULT_EXEMPT_STATES,
    ) -> ProfessionalTaxRegistry:
        tables: dict[str, list[ProfessionalTaxSlab]] = {}
        for payload in payloads:
            slab = ProfessionalTaxSlab.from_payload(payload)
            tables.setdefault(slab.state_code, []).append(slab)
        return cls(tables=tables, exempt_states=frozenset(s.upper() for s in exempt_states))

    @classmethod
    def from_json_file(cls, path: str | Path) -> ProfessionalTaxRegistry:
        """Load ``{"exempt_states": [...], "slabs": [...]}`` from disk."""
        data = json.loads(Path(path).read_text())
        return cls.from_payloads(
            data["slabs"], data.get("exempt_states", DEFAULT_EXEMPT_STATES)
        )

    @property
    def states(self) -> list[str]:
        return sorted(self.tables)

    def calculate(
        self,
        state_code: str | None,
        gross: int,
        month: int,
        gender: Gender | None = None,
    ) -> ProfessionalTaxResult:
        """Monthly professional tax for a gross salary in a state."""
        code = (state_code or "").upper()
        if code in self.exempt_states:
            return ProfessionalTaxResult(code, 0, ProfessionalTaxStatus.EXEMPT_REGION)

        slabs = self.tables.get(code)
        if not slabs:
            logger.debug("No professional tax policy configured for state %r", code)
            return ProfessionalTaxResult(code, 0, ProfessionalTaxStatus.NO_POLICY)

        matching = [s for s in slabs if s.matches(gross, month, gender)]
        if not matching:
            return ProfessionalTaxResult(code, 0, ProfessionalTaxStatus.BELOW_THRESHOLD)

        slab = max(matching, key=ProfessionalTaxSlab._precedence)
        return ProfessionalTaxResult(code, slab.tax_amount, ProfessionalTaxStatus.CHARGED)

    def annual_liability(
        self, state_code: str | None, monthly_gross: int, gender: Gender | None = None
    ) -> int:
        """Sum of twelve monthly amounts at a constant gross."""
        return sum(
            self.calculate(state_code, monthly_gross, month, gender).amount
            for month in range(1, 13)
        )


DEFAULT_PT_REGISTRY = ProfessionalTaxRegistry.from_payloads(DEFAULT_SLAB_PAYLOADS)


def load_registry(path: str | None = None) -> ProfessionalTaxRegistry:
    """Built-in tables, or the tables in ``path`` when one is configured."""
    if path is None:
        return DEFAULT_PT_REGISTRY
    logger.info("Loading professional tax tables from %s", path)
    return ProfessionalTaxRegistry.from_json_file(path)
