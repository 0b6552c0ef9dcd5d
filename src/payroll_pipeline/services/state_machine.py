"""Payroll run state machine with transition validation."""

from __future__ import annotations

from enum import Enum


class PayrollRunStatus(str, Enum):
    """Payroll run status values."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PayrollStage(str, Enum):
    """The fixed four-stage pipeline, in execution order."""

    VALIDATION = "VALIDATION"
    CALCULATION = "CALCULATION"
    STATUTORY = "STATUTORY"
    FINALIZATION = "FINALIZATION"

    @property
    def order(self) -> int:
        return list(PayrollStage).index(self)

    @property
    def next_stage(self) -> PayrollStage | None:
        stages = list(PayrollStage)
        return stages[self.order + 1] if self.order + 1 < len(stages) else None

    @property
    def is_last(self) -> bool:
        return self.next_stage is None


class PayrollRecordStatus(str, Enum):
    CALCULATED = "CALCULATED"
    VERIFIED = "VERIFIED"
    PAID = "PAID"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PayrollRunStateMachine:
    """State machine for payroll run status transitions.

    Allowed transitions:
    - PENDING → PROCESSING (a stage job starts)
    - PROCESSING → PROCESSING (next stage starts)
    - PROCESSING → COMPLETED (finalization succeeded)
    - PENDING/PROCESSING → FAILED
    - FAILED → PENDING (re-run from validation)
    - FAILED → PROCESSING (resumed stage starts)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollRunStatus.PENDING: [PayrollRunStatus.PROCESSING, PayrollRunStatus.FAILED],
        PayrollRunStatus.PROCESSING: [
            PayrollRunStatus.PROCESSING,
            PayrollRunStatus.COMPLETED,
            PayrollRunStatus.FAILED,
        ],
        PayrollRunStatus.FAILED: [PayrollRunStatus.PENDING, PayrollRunStatus.PROCESSING],
        PayrollRunStatus.COMPLETED: [],  # Terminal state
    }

    # A new run for the same period may replace runs in these statuses
    RERUNNABLE = {PayrollRunStatus.FAILED}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.VALID_TRANSITIONS.get(status)

    @classmethod
    def can_rerun(cls, status: str) -> bool:
        return status in cls.RERUNNABLE


class PayrollRecordStateMachine:
    """CALCULATED → VERIFIED → PAID; records are never moved backwards."""

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollRecordStatus.CALCULATED: [PayrollRecordStatus.VERIFIED],
        PayrollRecordStatus.VERIFIED: [PayrollRecordStatus.PAID],
        PayrollRecordStatus.PAID: [],
    }

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        if to_status not in cls.VALID_TRANSITIONS.get(from_status, []):
            raise InvalidTransitionError(from_status, to_status)
