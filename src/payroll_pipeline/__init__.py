"""Monthly payroll runs with Indian statutory deductions."""

__version__ = "0.1.0"
