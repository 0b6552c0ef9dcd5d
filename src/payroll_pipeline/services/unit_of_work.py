"""Transaction scope shared by the repositories."""

from __future__ import annotations

from types import TracebackType

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_pipeline.services.repositories import (
    AttendanceRepository,
    EmployeeRepository,
    ExpenseRepository,
    LoanRepository,
    PayrollRecordRepository,
    PayrollRunRepository,
)


class PayrollUnitOfWork:
    """One session, one transaction.

    Usage:
        async with uow_factory() as uow:
            record_id = await uow.records.upsert(...)
            await uow.loans.apply_cycle_deductions(...)

    Leaving the block normally commits; an exception rolls everything back.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self.session: AsyncSession | None = None

    async def __aenter__(self) -> PayrollUnitOfWork:
        self.session = self._session_factory()
        self.runs = PayrollRunRepository(self.session)
        self.employees = EmployeeRepository(self.session)
        self.attendance = AttendanceRepository(self.session)
        self.records = PayrollRecordRepository(self.session)
        self.loans = LoanRepository(self.session)
        self.expenses = ExpenseRepository(self.session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        assert self.session is not None
        try:
            if exc_type is None:
                await self.session.commit()
            else:
                await self.session.rollback()
        finally:
            await self.session.close()
            self.session = None


class UnitOfWorkFactory:
    """Creates a fresh unit of work per call; safe to share across tasks."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    def __call__(self) -> PayrollUnitOfWork:
        return PayrollUnitOfWork(self.session_factory)
