"""Trigger, poll, resume and cancel payroll runs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from payroll_pipeline.models import PayrollRecord, PayrollRun
from payroll_pipeline.queue.base import EnqueueResult, JobQueue, JobStatus, StageJob, stage_job_key
from payroll_pipeline.services.state_machine import (
    InvalidTransitionError,
    PayrollRunStateMachine,
    PayrollRunStatus,
    PayrollStage,
)
from payroll_pipeline.services.unit_of_work import UnitOfWorkFactory

logger = logging.getLogger(__name__)


class PayrollRunExistsError(Exception):
    """Raised when a run for the period exists and cannot be re-run."""

    def __init__(self, month: int, year: int, status: str):
        self.month = month
        self.year = year
        self.status = status
        super().__init__(
            f"Payroll run for {year:04d}-{month:02d} already exists with status {status}"
        )


class PayrollRunNotFoundError(Exception):
    def __init__(self, run_id: UUID):
        self.run_id = run_id
        super().__init__(f"Payroll run {run_id} not found")


@dataclass(frozen=True)
class RunStatusView:
    """What a triggering client polls."""

    run_id: UUID
    month: int
    year: int
    status: str
    current_stage: str
    total_employees: int
    processed_employees: int
    success_count: int
    error_count: int
    errors: list[dict[str, Any]]
    started_at: datetime | None
    completed_at: datetime | None
    statutory_totals: dict[str, Any] | None
    job: JobStatus | None


class PayrollRunService:
    def __init__(self, uow_factory: UnitOfWorkFactory, queue: JobQueue):
        self._uow_factory = uow_factory
        self._queue = queue

    async def start_run(self, month: int, year: int) -> PayrollRun:
        """Create (or reset a failed) run for the period and queue validation."""
        if not 1 <= month <= 12:
            raise ValueError(f"month must be 1-12, got {month}")

        try:
            async with self._uow_factory() as uow:
                run = await uow.runs.get_by_period(month, year)
                if run is None:
                    run = await uow.runs.add(
                        PayrollRun(
                            month=month,
                            year=year,
                            status=PayrollRunStatus.PENDING.value,
                            current_stage=PayrollStage.VALIDATION.value,
                            errors=[],
                        )
                    )
                elif PayrollRunStateMachine.can_rerun(run.status):
                    PayrollRunStateMachine.validate_transition(run.status, PayrollRunStatus.PENDING)
                    logger.info("Re-running failed payroll run %s", run.payroll_run_id)
                    run.status = PayrollRunStatus.PENDING.value
                    run.current_stage = PayrollStage.VALIDATION.value
                    run.errors = []
                    run.total_employees = 0
                    run.processed_employees = 0
                    run.success_count = 0
                    run.error_count = 0
                    run.statutory_totals = None
                    run.started_at = None
                    run.completed_at = None
                else:
                    raise PayrollRunExistsError(month, year, run.status)
        except IntegrityError:
            # Lost a race with a concurrent trigger for the same period
            raise PayrollRunExistsError(month, year, PayrollRunStatus.PENDING.value) from None

        await self._queue.enqueue(
            StageJob(run.payroll_run_id, month, year, PayrollStage.VALIDATION)
        )
        logger.info("Payroll run %s queued for %04d-%02d", run.payroll_run_id, year, month)
        return run

    async def resume_run(self, run_id: UUID) -> EnqueueResult:
        """Queue the run's current stage again after a failure."""
        async with self._uow_factory() as uow:
            run = await self._get(uow, run_id)
            if run.status not in (PayrollRunStatus.FAILED, PayrollRunStatus.PENDING):
                raise InvalidTransitionError(
                    run.status, PayrollRunStatus.PROCESSING.value, "only failed runs can be resumed"
                )
            job = StageJob(run.payroll_run_id, run.month, run.year, PayrollStage(run.current_stage))

        logger.info("Resuming run %s at %s", run_id, job.stage.value)
        return await self._queue.enqueue(job)

    async def get_run_status(self, run_id: UUID) -> RunStatusView:
        async with self._uow_factory() as uow:
            run = await self._get(uow, run_id)

        job = await self._queue.get_status(stage_job_key(run.payroll_run_id, run.current_stage))
        return RunStatusView(
            run_id=run.payroll_run_id,
            month=run.month,
            year=run.year,
            status=run.status,
            current_stage=run.current_stage,
            total_employees=run.total_employees,
            processed_employees=run.processed_employees,
            success_count=run.success_count,
            error_count=run.error_count,
            errors=list(run.errors or []),
            started_at=run.started_at,
            completed_at=run.completed_at,
            statutory_totals=run.statutory_totals,
            job=job,
        )

    async def list_records(self, run_id: UUID) -> list[PayrollRecord]:
        async with self._uow_factory() as uow:
            await self._get(uow, run_id)
            return await uow.records.list_for_run(run_id)

    async def cancel_run(self, run_id: UUID) -> int:
        """Drop queued stages; a stage that is already executing finishes."""
        async with self._uow_factory() as uow:
            await self._get(uow, run_id)
        return await self._queue.cancel_pending(run_id)

    async def _get(self, uow: Any, run_id: UUID) -> PayrollRun:
        run = await uow.runs.get(run_id)
        if run is None:
            raise PayrollRunNotFoundError(run_id)
        return run
