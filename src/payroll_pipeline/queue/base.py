"""Stage job queue contract."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from payroll_pipeline.services.state_machine import PayrollStage


class JobState(str, Enum):
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


# While a job is in one of these states another enqueue with its key is a no-op
PENDING_STATES = frozenset({JobState.WAITING, JobState.DELAYED, JobState.ACTIVE})


def stage_job_key(run_id: UUID | str, stage: PayrollStage | str) -> str:
    """Deterministic job identity: one job per run and stage."""
    return f"payroll-{run_id}-{PayrollStage(stage).value.lower()}"


@dataclass(frozen=True)
class StageJob:
    """Payload of one queued stage."""

    run_id: UUID
    month: int
    year: int
    stage: PayrollStage

    @property
    def key(self) -> str:
        return stage_job_key(self.run_id, self.stage)

    def to_payload(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id),
            "month": self.month,
            "year": self.year,
            "stage": self.stage.value,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> StageJob:
        return cls(
            run_id=UUID(str(payload["run_id"])),
            month=int(payload["month"]),
            year=int(payload["year"]),
            stage=PayrollStage(payload["stage"]),
        )

    def next(self) -> StageJob | None:
        stage = self.stage.next_stage
        if stage is None:
            return None
        return StageJob(self.run_id, self.month, self.year, stage)


@dataclass(frozen=True)
class EnqueueResult:
    job_key: str
    created: bool
    state: JobState


@dataclass(frozen=True)
class JobStatus:
    job_key: str
    state: JobState
    attempts_made: int
    max_attempts: int
    result: dict[str, Any] | None = None
    failed_reason: str | None = None

    @property
    def progress(self) -> float:
        return 1.0 if self.state == JobState.COMPLETED else 0.0


@dataclass(frozen=True)
class ClaimedJob:
    job_key: str
    job: StageJob
    attempt: int
    max_attempts: int
    # Set when the lock expired on the final attempt; the job is already FAILED
    exhausted: bool = False
    failed_reason: str | None = None

    @property
    def is_final_attempt(self) -> bool:
        return self.attempt >= self.max_attempts


@dataclass(frozen=True)
class FailureOutcome:
    job_key: str
    will_retry: bool
    attempts_made: int
    retry_at: datetime | None = None


class JobQueue(Protocol):
    """What the trigger and the stage handlers need from the queue."""

    async def enqueue(
        self, job: StageJob, *, dedupe_key: str | None = None, delay_seconds: float = 0
    ) -> EnqueueResult: ...

    async def get_status(self, dedupe_key: str) -> JobStatus | None: ...

    async def cancel_pending(self, run_id: UUID) -> int: ...


class JobSource(Protocol):
    """What the worker needs from the queue."""

    async def claim(self) -> ClaimedJob | None: ...

    async def extend_lock(self, job_key: str, attempt: int) -> bool: ...

    async def complete(self, job_key: str, result: dict[str, Any] | None = None) -> None: ...

    async def fail(self, job_key: str, error: str) -> FailureOutcome: ...
