"""Payroll run orchestrator.

A run moves through VALIDATION → CALCULATION → STATUTORY → FINALIZATION.
Each stage is one queued job. A stage queues the next one only when it
finished without errors; otherwise the run is marked FAILED with the stage's
error list and waits for a retrigger.

Every handler is safe to execute more than once: records are upserted by
(run, employee) and loan/expense side effects are applied in the same
transaction as the record they belong to.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable
from uuid import UUID

from payroll_pipeline.calculators.attendance import AttendanceDataError
from payroll_pipeline.calculators.payroll import PayrollCalculator, calculation_id
from payroll_pipeline.calculators.types import Gender, PayrollInput, TaxRegime
from payroll_pipeline.events import (
    AsyncEventEmitter,
    EventMetadata,
    PayrollRunCompleted,
    PayrollRunFailed,
    PayrollStageCompleted,
    PayslipReady,
)
from payroll_pipeline.models import Employee, SalaryStructure
from payroll_pipeline.queue.base import JobQueue, StageJob
from payroll_pipeline.queue.sql_queue import utcnow
from payroll_pipeline.services.notifications import is_valid_contact_address
from payroll_pipeline.services.repositories import period_end
from payroll_pipeline.services.state_machine import (
    PayrollRunStateMachine,
    PayrollRunStatus,
    PayrollStage,
)
from payroll_pipeline.services.unit_of_work import UnitOfWorkFactory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageError:
    """One entry of a run's error list."""

    employee_id: str | None
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"employee_id": self.employee_id, "message": self.message}


@dataclass
class StageResult:
    stage: PayrollStage
    errors: list[StageError] = field(default_factory=list)
    success_count: int = 0
    skipped: bool = False

    @property
    def success(self) -> bool:
        return not self.skipped and not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "success": self.success,
            "skipped": self.skipped,
            "success_count": self.success_count,
            "error_count": len(self.errors),
        }


StageHandler = Callable[[StageJob], Awaitable[StageResult]]


def select_salary_structure(
    employee: Employee, as_of: Any
) -> tuple[SalaryStructure | None, str | None]:
    """The single active, compliant structure, or the reason there is none."""
    active = [s for s in employee.salary_structures if s.is_active_on(as_of)]
    if not active:
        return None, f"No active salary structure on {as_of.isoformat()}"
    if len(active) > 1:
        return None, f"{len(active)} salary structures are active on {as_of.isoformat()}"
    structure = active[0]
    if not structure.is_compliant:
        return None, (
            f"Salary structure is not compliant: basic is {structure.basic_percentage}% "
            "of gross, at least 50% is required"
        )
    return structure, None


def _gender(value: str | None) -> Gender | None:
    if value in Gender.__members__:
        return Gender(value)
    return None


class PayrollRunOrchestrator:
    """Executes stage jobs for payroll runs."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        queue: JobQueue,
        emitter: AsyncEventEmitter | None = None,
        calculator: PayrollCalculator | None = None,
        engine_version: str = "1.0.0",
        concurrency: int = 4,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._uow_factory = uow_factory
        self._queue = queue
        self._emitter = emitter or AsyncEventEmitter()
        self._calculator = calculator or PayrollCalculator()
        self._engine_version = engine_version
        self._concurrency = max(1, concurrency)
        self._clock = clock
        self._handlers: dict[PayrollStage, StageHandler] = {
            PayrollStage.VALIDATION: self._run_validation,
            PayrollStage.CALCULATION: self._run_calculation,
            PayrollStage.STATUTORY: self._run_statutory,
            PayrollStage.FINALIZATION: self._run_finalization,
        }

    async def process(self, job: StageJob) -> StageResult:
        """Run one stage job.

        Data problems end up in the returned result and on the run.
        Infrastructure exceptions propagate so the queue can retry the job.
        """
        if not await self._enter_stage(job):
            return StageResult(job.stage, skipped=True)

        logger.info("Run %s: %s stage started", job.run_id, job.stage.value)
        result = await self._handlers[job.stage](job)
        if result.skipped:
            return result

        if not result.success:
            logger.warning(
                "Run %s: %s stage failed with %d error(s)",
                job.run_id,
                job.stage.value,
                len(result.errors),
            )
            await self._fail_run(job, result.errors)
            return result

        logger.info(
            "Run %s: %s stage succeeded (%d ok)",
            job.run_id,
            job.stage.value,
            result.success_count,
        )
        next_job = job.next()
        if next_job is not None:
            await self._queue.enqueue(next_job)
            await self._emitter.emit(
                PayrollStageCompleted(
                    metadata=EventMetadata.create(job.run_id),
                    payroll_run_id=job.run_id,
                    stage=job.stage.value,
                    success_count=result.success_count,
                    error_count=0,
                )
            )
        return result

    async def handle_exhausted(self, job: StageJob, reason: str) -> None:
        """Mark the run FAILED once the queue has given up on a stage job."""
        message = f"{job.stage.value} stage failed after retries: {reason}"
        await self._fail_run(job, [StageError(None, message)])

    # === Stage bookkeeping ===

    async def _enter_stage(self, job: StageJob) -> bool:
        async with self._uow_factory() as uow:
            run = await uow.runs.get(job.run_id, for_update=True)
            if run is None:
                logger.warning("Run %s no longer exists; dropping %s", job.run_id, job.key)
                return False
            if run.status == PayrollRunStatus.COMPLETED:
                logger.info("Run %s already completed; skipping %s", job.run_id, job.key)
                return False
            if (
                run.status == PayrollRunStatus.PROCESSING
                and PayrollStage(run.current_stage).order > job.stage.order
            ):
                logger.info(
                    "Run %s is already at %s; skipping stale %s",
                    job.run_id,
                    run.current_stage,
                    job.key,
                )
                return False

            PayrollRunStateMachine.validate_transition(run.status, PayrollRunStatus.PROCESSING)
            run.status = PayrollRunStatus.PROCESSING.value
            run.current_stage = job.stage.value
            run.errors = []
            if run.started_at is None:
                run.started_at = self._clock()
            return True

    async def _fail_run(self, job: StageJob, errors: list[StageError]) -> None:
        async with self._uow_factory() as uow:
            run = await uow.runs.get(job.run_id, for_update=True)
            if run is None or run.status == PayrollRunStatus.COMPLETED:
                return
            if run.status != PayrollRunStatus.FAILED:
                PayrollRunStateMachine.validate_transition(run.status, PayrollRunStatus.FAILED)
            run.status = PayrollRunStatus.FAILED.value
            run.current_stage = job.stage.value
            run.errors = [error.to_dict() for error in errors]

        await self._emitter.emit(
            PayrollRunFailed(
                metadata=EventMetadata.create(job.run_id),
                payroll_run_id=job.run_id,
                stage=job.stage.value,
                error_count=len(errors),
                reason=errors[0].message if errors else "unknown",
            )
        )

    async def _count(self, run_id: UUID, succeeded: bool) -> None:
        async with self._uow_factory() as uow:
            await uow.runs.increment_counters(run_id, succeeded)

    # === Stage handlers ===

    async def _run_validation(self, job: StageJob) -> StageResult:
        """Attendance must be locked and every active employee payable."""
        async with self._uow_factory() as uow:
            if not await uow.attendance.is_locked(job.month, job.year):
                message = f"Attendance for {job.year:04d}-{job.month:02d} is not locked"
                return StageResult(job.stage, errors=[StageError(None, message)])

            employees = await uow.employees.list_active()
            as_of = period_end(job.month, job.year)
            errors: list[StageError] = []
            for employee in employees:
                _, problem = select_salary_structure(employee, as_of)
                if problem:
                    errors.append(StageError(str(employee.employee_id), problem))

            success_count = len(employees) - len(errors)
            await uow.runs.set_counters(
                job.run_id, total=len(employees), success=success_count, error=len(errors)
            )

        return StageResult(job.stage, errors=errors, success_count=success_count)

    async def _run_calculation(self, job: StageJob) -> StageResult:
        async with self._uow_factory() as uow:
            employees = await uow.employees.list_active()
            await uow.runs.reset_counters(job.run_id, total=len(employees))

        now = self._clock()
        semaphore = asyncio.Semaphore(self._concurrency)

        async def calculate(employee: Employee) -> StageError | None:
            async with semaphore:
                return await self._calculate_employee(job, employee, now)

        outcomes = await asyncio.gather(
            *(calculate(employee) for employee in employees), return_exceptions=True
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        errors = [outcome for outcome in outcomes if isinstance(outcome, StageError)]
        return StageResult(job.stage, errors=errors, success_count=len(employees) - len(errors))

    async def _calculate_employee(
        self, job: StageJob, employee: Employee, now: datetime
    ) -> StageError | None:
        """Calculate and store one employee; the record and its side effects commit together."""
        employee_id = employee.employee_id
        cycle_end = period_end(job.month, job.year)
        structure, problem = select_salary_structure(employee, cycle_end)
        if structure is None:
            await self._count(job.run_id, succeeded=False)
            return StageError(str(employee_id), problem or "No salary structure")

        try:
            async with self._uow_factory() as uow:
                summary = await uow.attendance.get_summary(employee_id, job.month, job.year)
                ytd = await uow.records.year_to_date(
                    employee_id, job.month, job.year, exclude_run_id=job.run_id
                )
                calc = self._calculator.calculate(
                    PayrollInput(
                        employee_id=str(employee_id),
                        month=job.month,
                        year=job.year,
                        components=structure.components(),
                        attendance=summary,
                        work_state=employee.work_state,
                        gender=_gender(employee.gender),
                        tax_regime=TaxRegime(structure.tax_regime),
                        declared_deductions=structure.declared_deductions_paise,
                        ytd_gross=ytd.gross if ytd.months else None,
                        ytd_tax_withheld=ytd.tax_withheld,
                    )
                )
                calc_id = calculation_id(calc, str(job.run_id), self._engine_version)

                record_id = await uow.records.upsert(job.run_id, employee_id, calc, calc_id)
                reimbursement = await uow.expenses.reimburse_for_cycle(
                    employee_id, cycle_end, record_id, now
                )
                loan_deduction = await uow.loans.apply_cycle_deductions(
                    employee_id, job.month, job.year, record_id, now
                )
                await uow.records.set_adjustments(
                    record_id, calc.net_salary, loan_deduction, reimbursement
                )
                await uow.runs.increment_counters(job.run_id, succeeded=True)
        except AttendanceDataError as exc:
            logger.warning("Run %s: employee %s skipped: %s", job.run_id, employee_id, exc)
            await self._count(job.run_id, succeeded=False)
            return StageError(str(employee_id), str(exc))

        return None

    async def _run_statutory(self, job: StageJob) -> StageResult:
        """Aggregate statutory totals for filing; never fails on data."""
        async with self._uow_factory() as uow:
            totals = await uow.records.statutory_totals(job.run_id)
            run = await uow.runs.get(job.run_id, for_update=True)
            if run is not None:
                run.statutory_totals = totals
        return StageResult(job.stage, success_count=totals["record_count"])

    async def _run_finalization(self, job: StageJob) -> StageResult:
        async with self._uow_factory() as uow:
            run = await uow.runs.get(job.run_id, for_update=True)
            if run is None:
                return StageResult(job.stage, skipped=True)
            verified = await uow.records.verify_calculated(job.run_id)
            PayrollRunStateMachine.validate_transition(run.status, PayrollRunStatus.COMPLETED)
            run.status = PayrollRunStatus.COMPLETED.value
            run.completed_at = self._clock()
            records = await uow.records.list_for_run(job.run_id)

        logger.info("Run %s completed: %d record(s) verified", job.run_id, verified)

        failed = 0
        for record in records:
            employee = record.employee
            if not is_valid_contact_address(employee.email):
                logger.info("No contact address for employee %s; payslip not sent", employee.employee_code)
                continue
            errors = await self._emitter.emit(
                PayslipReady(
                    metadata=EventMetadata.create(job.run_id),
                    payroll_run_id=job.run_id,
                    payroll_record_id=record.payroll_record_id,
                    employee_id=employee.employee_id,
                    employee_name=employee.full_name,
                    email=employee.email or "",
                    month=job.month,
                    year=job.year,
                    net_payable_paise=record.net_payable_paise,
                )
            )
            if errors:
                failed += 1
        if failed:
            logger.warning("Run %s: %d payslip notification(s) failed", job.run_id, failed)

        await self._emitter.emit(
            PayrollRunCompleted(
                metadata=EventMetadata.create(job.run_id),
                payroll_run_id=job.run_id,
                month=job.month,
                year=job.year,
                record_count=len(records),
            )
        )
        return StageResult(job.stage, success_count=len(records))
