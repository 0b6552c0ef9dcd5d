"""Pytest fixtures for payroll pipeline tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Awaitable, Callable
from uuid import UUID

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from payroll_pipeline.database import create_all, create_engine_for_url, create_session_factory
from payroll_pipeline.events import AsyncEventEmitter, PayslipReady
from payroll_pipeline.models import (
    AttendanceLock,
    AttendanceRecord,
    Employee,
    ExpenseClaim,
    SalaryStructure,
)
from payroll_pipeline.queue.sql_queue import SqlJobQueue
from payroll_pipeline.services.notifications import register_notifier
from payroll_pipeline.services.orchestrator import PayrollRunOrchestrator
from payroll_pipeline.services.run_service import PayrollRunService
from payroll_pipeline.services.unit_of_work import UnitOfWorkFactory
from payroll_pipeline.services.worker import PayrollWorker


class FakeClock:
    """Controllable UTC clock shared by the queue and the orchestrator."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingNotifier:
    """Keeps every payslip event it is asked to deliver."""

    def __init__(self) -> None:
        self.sent: list[PayslipReady] = []

    async def notify(self, event: PayslipReady) -> None:
        self.sent.append(event)


class Seeder:
    """Inserts fixture rows in their own committed transactions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._count = 0

    async def employee(
        self,
        basic: int = 3_000_000,
        hra: int = 1_200_000,
        special_allowance: int = 800_000,
        work_state: str | None = "KA",
        gender: str | None = None,
        email: str | None = "employee@example.com",
        is_compliant: bool = True,
        effective_from: date = date(2025, 1, 1),
        tax_regime: str = "NEW",
        code: str | None = None,
    ) -> UUID:
        self._count += 1
        employee = Employee(
            employee_code=code or f"E{self._count:03d}",
            first_name="Test",
            last_name=f"Employee{self._count}",
            email=email,
            work_state=work_state,
            gender=gender,
            employment_status="ACTIVE",
        )
        async with self.session_factory() as session, session.begin():
            session.add(employee)
            await session.flush()
            gross = basic + hra + special_allowance
            session.add(
                SalaryStructure(
                    employee_id=employee.employee_id,
                    effective_from=effective_from,
                    basic_paise=basic,
                    hra_paise=hra,
                    special_allowance_paise=special_allowance,
                    tax_regime=tax_regime,
                    is_compliant=is_compliant,
                    basic_percentage=(Decimal(basic) * 100 / gross).quantize(Decimal("0.01")),
                )
            )
        return employee.employee_id

    async def attendance(self, employee_id: UUID, rows: dict[date, str]) -> None:
        async with self.session_factory() as session, session.begin():
            for day, status in rows.items():
                session.add(AttendanceRecord(employee_id=employee_id, work_date=day, status=status))

    async def lock(self, month: int, year: int) -> None:
        async with self.session_factory() as session, session.begin():
            session.add(AttendanceLock(month=month, year=year, locked_by="hr@example.com"))

    async def expense(
        self, employee_id: UUID, amount: int, expense_date: date, status: str = "APPROVED"
    ) -> UUID:
        claim = ExpenseClaim(
            employee_id=employee_id,
            amount_paise=amount,
            expense_date=expense_date,
            status=status,
        )
        async with self.session_factory() as session, session.begin():
            session.add(claim)
        return claim.expense_claim_id


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so every session sees committed data."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path}/payroll.db")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def uow_factory(session_factory) -> UnitOfWorkFactory:
    return UnitOfWorkFactory(session_factory)


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


@pytest.fixture
def queue(session_factory, clock) -> SqlJobQueue:
    return SqlJobQueue(session_factory, max_attempts=3, backoff_seconds=2.0, clock=clock)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def emitter(notifier) -> AsyncEventEmitter:
    emitter = AsyncEventEmitter()
    register_notifier(emitter, notifier)
    return emitter


@pytest.fixture
def orchestrator(uow_factory, queue, emitter, clock) -> PayrollRunOrchestrator:
    return PayrollRunOrchestrator(
        uow_factory,
        queue,
        emitter=emitter,
        engine_version="test",
        concurrency=1,
        clock=clock,
    )


@pytest.fixture
def run_service(uow_factory, queue) -> PayrollRunService:
    return PayrollRunService(uow_factory, queue)


@pytest.fixture
def worker(queue, orchestrator) -> PayrollWorker:
    return PayrollWorker(queue, orchestrator, poll_interval=0.01)


@pytest.fixture
def drain(worker) -> Callable[..., Awaitable[int]]:
    """Run queued jobs until none is due; returns how many were processed."""

    async def _drain(limit: int = 20) -> int:
        processed = 0
        while processed < limit and await worker.run_once():
            processed += 1
        return processed

    return _drain
