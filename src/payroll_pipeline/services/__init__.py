"""Payroll run services."""

from payroll_pipeline.services.state_machine import (
    InvalidTransitionError,
    PayrollRecordStatus,
    PayrollRunStateMachine,
    PayrollRunStatus,
    PayrollStage,
)

__all__ = [
    "InvalidTransitionError",
    "PayrollRecordStatus",
    "PayrollRunStateMachine",
    "PayrollRunStatus",
    "PayrollStage",
]
