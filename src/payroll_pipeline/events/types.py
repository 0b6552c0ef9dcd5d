"""Domain events published by the payroll pipeline.

All events are immutable (frozen dataclasses), typed with explicit payloads
and serializable for logging or forwarding to other services.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    RUN = "run"
    STAGE = "stage"
    NOTIFICATION = "notification"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    correlation_id: UUID  # the payroll run
    source_service: str = "payroll-pipeline"
    version: int = 1

    @classmethod
    def create(cls, correlation_id: UUID) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=datetime.now(timezone.utc),
            correlation_id=correlation_id,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = _serialize_dict(asdict(self))
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


@dataclass(frozen=True)
class PayrollStageCompleted(DomainEvent):
    """A stage finished without errors and the next one was queued."""

    payroll_run_id: UUID
    stage: str
    success_count: int
    error_count: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.STAGE


@dataclass(frozen=True)
class PayrollRunFailed(DomainEvent):
    payroll_run_id: UUID
    stage: str
    error_count: int
    reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.RUN


@dataclass(frozen=True)
class PayrollRunCompleted(DomainEvent):
    payroll_run_id: UUID
    month: int
    year: int
    record_count: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.RUN


@dataclass(frozen=True)
class PayslipReady(DomainEvent):
    """An employee's payslip for a finalized run can be sent out."""

    payroll_run_id: UUID
    payroll_record_id: UUID
    employee_id: UUID
    employee_name: str
    email: str
    month: int
    year: int
    net_payable_paise: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.NOTIFICATION
