"""Integration tests for the staged payroll run pipeline.

Runs against SQLite; stage jobs are executed by the worker one at a time.
"""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import delete, select

from payroll_pipeline.events import PayrollRunFailed, PayrollStageCompleted, PayslipReady
from payroll_pipeline.models import AttendanceRecord, ExpenseClaim, LoanDeduction
from payroll_pipeline.queue import JobState, StageJob, stage_job_key
from payroll_pipeline.services.loan_service import LoanService
from payroll_pipeline.services.orchestrator import PayrollRunOrchestrator
from payroll_pipeline.services.state_machine import PayrollStage
from payroll_pipeline.services.worker import PayrollWorker


async def load_run(uow_factory, run_id):
    async with uow_factory() as uow:
        return await uow.runs.get(run_id)


async def load_records(uow_factory, run_id):
    async with uow_factory() as uow:
        return await uow.records.list_for_run(run_id)


@pytest.fixture
def events(emitter):
    received = []

    async def collect(event):
        received.append(event)

    emitter.on_all(collect)
    return received


class TestFullRun:
    async def test_run_completes_all_stages(
        self, seed, run_service, drain, uow_factory, notifier, events
    ):
        """Two employees, one with loss of pay, one covered by ESI."""
        e1 = await seed.employee()
        e2 = await seed.employee(
            basic=1_000_000, hra=500_000, special_allowance=0, work_state="MH", gender="FEMALE", email=None
        )
        await seed.attendance(e1, {date(2025, 4, 1): "ABSENT", date(2025, 4, 2): "ABSENT"})
        await seed.lock(4, 2025)

        run = await run_service.start_run(4, 2025)
        assert await drain() == 4

        stored = await load_run(uow_factory, run.payroll_run_id)
        assert stored.status == "COMPLETED"
        assert stored.current_stage == "FINALIZATION"
        assert stored.completed_at is not None
        assert (stored.total_employees, stored.processed_employees) == (2, 2)
        assert (stored.success_count, stored.error_count) == (2, 0)
        assert stored.errors == []

        records = {r.employee_id: r for r in await load_records(uow_factory, run.payroll_run_id)}
        first, second = records[e1], records[e2]
        assert first.status == "VERIFIED"
        assert first.lop_days == 2
        assert first.lop_deduction_paise == 454_546
        assert first.gross_salary_paise == 4_545_454
        assert first.net_salary_paise == 4_345_454
        assert first.net_payable_paise == 4_345_454
        assert first.esi_applicable is False
        assert second.esi_employee_paise == 11_250
        assert second.pt_paise == 15_000
        assert second.net_salary_paise == 1_353_750

        totals = stored.statutory_totals
        assert totals["record_count"] == 2
        assert totals["pf_employee"] == 180_000 + 120_000
        assert totals["professional_tax"] == 20_000 + 15_000
        assert totals["esi_employee"] == 11_250
        assert totals["gross_salary"] == 4_545_454 + 1_500_000

        # Only the employee with a valid address gets a payslip message
        assert [event.employee_id for event in notifier.sent] == [e1]
        assert notifier.sent[0].net_payable_paise == 4_345_454

        completed = [e.stage for e in events if isinstance(e, PayrollStageCompleted)]
        assert completed == ["VALIDATION", "CALCULATION", "STATUTORY"]

    async def test_completed_run_ignores_redelivered_jobs(
        self, seed, run_service, drain, orchestrator, notifier
    ):
        await seed.employee()
        await seed.lock(4, 2025)
        run = await run_service.start_run(4, 2025)
        await drain()

        result = await orchestrator.process(
            StageJob(run.payroll_run_id, 4, 2025, PayrollStage.FINALIZATION)
        )

        assert result.skipped
        assert len(notifier.sent) == 1

    async def test_year_to_date_feeds_next_month(self, seed, run_service, drain, uow_factory):
        e1 = await seed.employee()
        await seed.attendance(e1, {date(2025, 4, 1): "ABSENT", date(2025, 4, 2): "ABSENT"})
        await seed.lock(4, 2025)
        await seed.lock(5, 2025)

        await run_service.start_run(4, 2025)
        await drain()
        may = await run_service.start_run(5, 2025)
        await drain()

        [record] = await load_records(uow_factory, may.payroll_run_id)
        assert record.projected_annual_income_paise == 4_545_454 + 5_000_000 * 11


class TestConcurrentCalculation:
    async def test_counters_hold_under_concurrent_employees(
        self, seed, run_service, uow_factory, queue, emitter, clock
    ):
        orchestrator = PayrollRunOrchestrator(
            uow_factory,
            queue,
            emitter=emitter,
            engine_version="test",
            concurrency=4,
            clock=clock,
        )
        worker = PayrollWorker(queue, orchestrator)
        employee_ids = [await seed.employee() for _ in range(10)]
        await seed.lock(4, 2025)

        run = await run_service.start_run(4, 2025)
        while await worker.run_once():
            pass

        stored = await load_run(uow_factory, run.payroll_run_id)
        assert stored.status == "COMPLETED"
        assert stored.total_employees == 10
        assert (stored.processed_employees, stored.success_count, stored.error_count) == (10, 10, 0)
        records = await load_records(uow_factory, run.payroll_run_id)
        assert sorted(r.employee_id for r in records) == sorted(employee_ids)
        assert stored.statutory_totals["record_count"] == 10


class TestStageFailures:
    async def test_validation_failure_has_no_side_effects(
        self, seed, run_service, drain, uow_factory, queue, events
    ):
        await seed.employee()
        bad = await seed.employee(basic=1_000_000, hra=2_000_000, special_allowance=0, is_compliant=False)
        await seed.lock(4, 2025)

        run = await run_service.start_run(4, 2025)
        assert await drain() == 1

        stored = await load_run(uow_factory, run.payroll_run_id)
        assert stored.status == "FAILED"
        assert stored.current_stage == "VALIDATION"
        assert [error["employee_id"] for error in stored.errors] == [str(bad)]
        assert "not compliant" in stored.errors[0]["message"]
        assert stored.total_employees == 2
        assert (stored.processed_employees, stored.success_count, stored.error_count) == (2, 1, 1)
        assert await load_records(uow_factory, run.payroll_run_id) == []
        assert await queue.get_status(stage_job_key(run.payroll_run_id, "CALCULATION")) is None
        assert any(isinstance(e, PayrollRunFailed) for e in events)

    async def test_unlocked_attendance_fails_validation(self, seed, run_service, drain, uow_factory):
        await seed.employee()

        run = await run_service.start_run(4, 2025)
        await drain()

        stored = await load_run(uow_factory, run.payroll_run_id)
        assert stored.status == "FAILED"
        assert stored.errors == [
            {"employee_id": None, "message": "Attendance for 2025-04 is not locked"}
        ]

    async def test_employee_without_structure_fails_validation(
        self, seed, run_service, drain, uow_factory
    ):
        late = await seed.employee(effective_from=date(2025, 6, 1))
        await seed.lock(4, 2025)

        run = await run_service.start_run(4, 2025)
        await drain()

        stored = await load_run(uow_factory, run.payroll_run_id)
        assert stored.status == "FAILED"
        assert stored.errors[0]["employee_id"] == str(late)
        assert "No active salary structure" in stored.errors[0]["message"]
        assert (stored.processed_employees, stored.success_count, stored.error_count) == (1, 0, 1)

    async def test_malformed_attendance_blocks_advancing(
        self, seed, run_service, drain, uow_factory, queue, session_factory
    ):
        e1 = await seed.employee()
        e2 = await seed.employee()
        await seed.attendance(e1, {date(2025, 4, 3): "SICK"})
        await seed.lock(4, 2025)

        run = await run_service.start_run(4, 2025)
        assert await drain() == 2

        stored = await load_run(uow_factory, run.payroll_run_id)
        assert stored.status == "FAILED"
        assert stored.current_stage == "CALCULATION"
        assert (stored.success_count, stored.error_count) == (1, 1)
        assert stored.errors[0]["employee_id"] == str(e1)
        assert "unknown status 'SICK'" in stored.errors[0]["message"]
        assert [r.employee_id for r in await load_records(uow_factory, run.payroll_run_id)] == [e2]
        assert await queue.get_status(stage_job_key(run.payroll_run_id, "STATUTORY")) is None

        # Fix the data and resume from the failed stage
        async with session_factory() as session, session.begin():
            await session.execute(delete(AttendanceRecord).where(AttendanceRecord.employee_id == e1))
        await run_service.resume_run(run.payroll_run_id)
        assert await drain() == 3

        stored = await load_run(uow_factory, run.payroll_run_id)
        assert stored.status == "COMPLETED"
        assert len(await load_records(uow_factory, run.payroll_run_id)) == 2

    async def test_exhausted_job_marks_run_failed(self, seed, run_service, orchestrator, uow_factory):
        await seed.employee()
        run = await run_service.start_run(4, 2025)
        job = StageJob(run.payroll_run_id, 4, 2025, PayrollStage.VALIDATION)

        await orchestrator.handle_exhausted(job, "OperationalError: database is locked")

        stored = await load_run(uow_factory, run.payroll_run_id)
        assert stored.status == "FAILED"
        assert "failed after retries" in stored.errors[0]["message"]


class TestIdempotentCalculation:
    @pytest.fixture
    async def prepared(self, seed, run_service, orchestrator, uow_factory):
        """Run through validation and one calculation for an employee with a loan and claims."""
        employee_id = await seed.employee()
        loans = LoanService(uow_factory)
        loan = await loans.create_loan(employee_id, 300_000, 0, 1, date(2025, 4, 1))
        await loans.disburse_loan(loan.employee_loan_id)
        await seed.expense(employee_id, 50_000, date(2025, 4, 10))
        await seed.expense(employee_id, 70_000, date(2025, 5, 2))
        await seed.expense(employee_id, 20_000, date(2025, 4, 5), status="SUBMITTED")
        await seed.lock(4, 2025)

        run = await run_service.start_run(4, 2025)
        await orchestrator.process(StageJob(run.payroll_run_id, 4, 2025, PayrollStage.VALIDATION))
        calc_job = StageJob(run.payroll_run_id, 4, 2025, PayrollStage.CALCULATION)
        result = await orchestrator.process(calc_job)
        assert result.success
        return run, loan, calc_job

    async def test_loan_and_expenses_applied_with_record(self, prepared, uow_factory, session_factory):
        run, loan, _ = prepared

        [record] = await load_records(uow_factory, run.payroll_run_id)
        assert record.net_salary_paise == 4_800_000
        assert record.loan_deduction_paise == 300_000
        assert record.reimbursement_paise == 50_000
        assert record.net_payable_paise == 4_800_000 - 300_000 + 50_000

        async with uow_factory() as uow:
            stored_loan = await uow.loans.get(loan.employee_loan_id)
        assert stored_loan.remaining_balance_paise == 0
        assert stored_loan.status == "CLOSED"

        async with session_factory() as session:
            claims = {
                c.amount_paise: c for c in (await session.execute(select(ExpenseClaim))).scalars()
            }
        assert claims[50_000].status == "REIMBURSED"
        assert claims[50_000].payroll_record_id == record.payroll_record_id
        assert claims[70_000].status == "APPROVED"
        assert claims[20_000].status == "SUBMITTED"

    async def test_recalculation_reproduces_identical_records(
        self, prepared, orchestrator, uow_factory, session_factory
    ):
        run, loan, calc_job = prepared
        [before] = await load_records(uow_factory, run.payroll_run_id)

        result = await orchestrator.process(calc_job)
        assert result.success

        [after] = await load_records(uow_factory, run.payroll_run_id)
        assert after.payroll_record_id == before.payroll_record_id
        assert after.calculation_id == before.calculation_id
        assert after.net_payable_paise == before.net_payable_paise
        assert after.loan_deduction_paise == 300_000
        assert after.reimbursement_paise == 50_000

        stored = await load_run(uow_factory, run.payroll_run_id)
        assert (stored.processed_employees, stored.success_count) == (1, 1)

        async with session_factory() as session:
            deductions = (await session.execute(select(LoanDeduction))).scalars().all()
        assert [d.status for d in deductions] == ["DEDUCTED"]

    async def test_stale_earlier_stage_is_skipped(self, prepared, orchestrator, uow_factory):
        run, _, _ = prepared

        result = await orchestrator.process(
            StageJob(run.payroll_run_id, 4, 2025, PayrollStage.VALIDATION)
        )

        assert result.skipped
        stored = await load_run(uow_factory, run.payroll_run_id)
        assert stored.current_stage == "CALCULATION"


class TestNotificationIsolation:
    async def test_failing_notifier_does_not_fail_the_run(
        self, seed, run_service, drain, uow_factory, emitter, notifier, queue
    ):
        async def broken(event):
            raise ConnectionError("mail server unreachable")

        emitter.on(PayslipReady, broken)
        await seed.employee()
        await seed.lock(4, 2025)

        run = await run_service.start_run(4, 2025)
        await drain()

        stored = await load_run(uow_factory, run.payroll_run_id)
        assert stored.status == "COMPLETED"
        assert len(notifier.sent) == 1
        status = await queue.get_status(stage_job_key(run.payroll_run_id, "FINALIZATION"))
        assert status.state == JobState.COMPLETED
