"""Wiring of the queue, orchestrator and services from settings."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_pipeline.calculators.payroll import PayrollCalculator
from payroll_pipeline.calculators.professional_tax import load_registry
from payroll_pipeline.config import Settings
from payroll_pipeline.events import AsyncEventEmitter
from payroll_pipeline.queue.sql_queue import SqlJobQueue
from payroll_pipeline.services.loan_service import LoanService
from payroll_pipeline.services.notifications import (
    LoggingPayslipNotifier,
    PayslipNotifier,
    register_notifier,
)
from payroll_pipeline.services.orchestrator import PayrollRunOrchestrator
from payroll_pipeline.services.run_service import PayrollRunService
from payroll_pipeline.services.salary_structure_service import SalaryStructureService
from payroll_pipeline.services.unit_of_work import UnitOfWorkFactory
from payroll_pipeline.services.worker import PayrollWorker


@dataclass
class Runtime:
    settings: Settings
    uow_factory: UnitOfWorkFactory
    queue: SqlJobQueue
    emitter: AsyncEventEmitter
    orchestrator: PayrollRunOrchestrator
    runs: PayrollRunService
    loans: LoanService
    salary_structures: SalaryStructureService

    def worker(self) -> PayrollWorker:
        return PayrollWorker(
            self.queue,
            self.orchestrator,
            poll_interval=self.settings.queue_poll_interval,
            heartbeat_interval=self.settings.queue_lock_seconds / 3,
        )


def build_runtime(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    notifier: PayslipNotifier | None = None,
) -> Runtime:
    uow_factory = UnitOfWorkFactory(session_factory)
    queue = SqlJobQueue(
        session_factory,
        max_attempts=settings.queue_max_attempts,
        backoff_seconds=settings.queue_backoff_seconds,
        lock_seconds=settings.queue_lock_seconds,
    )
    emitter = AsyncEventEmitter()
    register_notifier(emitter, notifier or LoggingPayslipNotifier())

    calculator = PayrollCalculator(pt_registry=load_registry(settings.professional_tax_tables))
    orchestrator = PayrollRunOrchestrator(
        uow_factory,
        queue,
        emitter=emitter,
        calculator=calculator,
        engine_version=settings.engine_version,
        concurrency=settings.calculation_concurrency,
    )
    return Runtime(
        settings=settings,
        uow_factory=uow_factory,
        queue=queue,
        emitter=emitter,
        orchestrator=orchestrator,
        runs=PayrollRunService(uow_factory, queue),
        loans=LoanService(uow_factory),
        salary_structures=SalaryStructureService(uow_factory),
    )
