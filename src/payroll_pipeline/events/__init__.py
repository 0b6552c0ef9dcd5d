"""Domain events and the async emitter."""

from payroll_pipeline.events.emitter import AsyncEventEmitter
from payroll_pipeline.events.types import (
    DomainEvent,
    EventCategory,
    EventMetadata,
    PayrollRunCompleted,
    PayrollRunFailed,
    PayrollStageCompleted,
    PayslipReady,
)

__all__ = [
    "AsyncEventEmitter",
    "DomainEvent",
    "EventCategory",
    "EventMetadata",
    "PayrollRunCompleted",
    "PayrollRunFailed",
    "PayrollStageCompleted",
    "PayslipReady",
]
