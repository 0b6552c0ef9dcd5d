"""Tests for the worker loop: retries, exhaustion, locking and shutdown."""

import asyncio
from datetime import timedelta
from uuid import uuid4

from sqlalchemy import select

from payroll_pipeline.models import PayrollStageJob
from payroll_pipeline.queue import JobState, StageJob
from payroll_pipeline.services.orchestrator import StageResult
from payroll_pipeline.services.state_machine import PayrollStage
from payroll_pipeline.services.worker import PayrollWorker


class StubOrchestrator:
    """Records calls; awaits ``during`` and raises ``error`` from process() when set."""

    def __init__(self, error: Exception | None = None, during=None):
        self.error = error
        self.during = during
        self.processed: list[StageJob] = []
        self.exhausted: list[tuple[StageJob, str]] = []

    async def process(self, job):
        self.processed.append(job)
        if self.during is not None:
            await self.during()
        if self.error is not None:
            raise self.error
        return StageResult(job.stage, success_count=1)

    async def handle_exhausted(self, job, reason):
        self.exhausted.append((job, reason))


def validation_job() -> StageJob:
    return StageJob(uuid4(), 4, 2025, PayrollStage.VALIDATION)


class TestRunOnce:
    async def test_idle_queue(self, queue):
        worker = PayrollWorker(queue, StubOrchestrator())
        assert await worker.run_once() is False

    async def test_success_completes_job(self, queue):
        stub = StubOrchestrator()
        worker = PayrollWorker(queue, stub)
        job = validation_job()
        await queue.enqueue(job)

        assert await worker.run_once() is True

        status = await queue.get_status(job.key)
        assert status.state == JobState.COMPLETED
        assert status.result["success_count"] == 1
        assert stub.processed == [job]

    async def test_exception_is_retried_then_exhausted(self, queue, clock):
        stub = StubOrchestrator(error=ConnectionError("database went away"))
        worker = PayrollWorker(queue, stub)
        job = validation_job()
        await queue.enqueue(job)

        assert await worker.run_once() is True
        status = await queue.get_status(job.key)
        assert status.state == JobState.DELAYED
        assert status.failed_reason == "ConnectionError: database went away"

        # Not due until the backoff elapses
        assert await worker.run_once() is False
        clock.advance(2)
        assert await worker.run_once() is True
        clock.advance(4)
        assert await worker.run_once() is True

        assert len(stub.processed) == 3
        assert (await queue.get_status(job.key)).state == JobState.FAILED
        assert stub.exhausted == [(job, "ConnectionError: database went away")]


class TestRunLoop:
    async def test_stops_when_event_is_set(self, queue):
        stub = StubOrchestrator()
        worker = PayrollWorker(queue, stub, poll_interval=0.01)
        job = validation_job()
        await queue.enqueue(job)
        stop = asyncio.Event()

        task = asyncio.create_task(worker.run(stop))
        for _ in range(100):
            if stub.processed:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=2)

        assert stub.processed == [job]
        assert (await queue.get_status(job.key)).state == JobState.COMPLETED


class TestLocking:
    async def test_abandoned_final_attempt_marks_run_failed(self, queue, clock):
        """A job whose worker died on its last attempt is failed without running again."""
        stub = StubOrchestrator()
        worker = PayrollWorker(queue, stub)
        job = validation_job()
        await queue.enqueue(job)
        for _ in range(3):
            await queue.claim()
            clock.advance(queue.lock_seconds + 1)

        assert await worker.run_once() is True

        assert stub.processed == []
        assert stub.exhausted == [(job, "Lock expired after 3 attempts")]
        assert (await queue.get_status(job.key)).state == JobState.FAILED
        assert await worker.run_once() is False

    async def test_long_stage_keeps_its_lock(self, queue, clock, session_factory):
        """The heartbeat pushes the lock out while the stage is still running."""
        seen = []

        async def outlive_the_lock():
            clock.advance(queue.lock_seconds - 1)
            await asyncio.sleep(0.05)
            async with session_factory() as session:
                locked_until = await session.scalar(
                    select(PayrollStageJob.locked_until).where(PayrollStageJob.job_key == job.key)
                )
            seen.append(locked_until.replace(tzinfo=None))

        stub = StubOrchestrator(during=outlive_the_lock)
        worker = PayrollWorker(queue, stub, heartbeat_interval=0.01)
        job = validation_job()
        await queue.enqueue(job)

        assert await worker.run_once() is True

        expected = clock.now + timedelta(seconds=queue.lock_seconds)
        assert seen == [expected.replace(tzinfo=None)]
        status = await queue.get_status(job.key)
        assert status.state == JobState.COMPLETED
        assert status.attempts_made == 1

    async def test_without_heartbeat_the_job_is_reclaimed(self, queue, clock):
        claims_while_running = []

        async def outlive_the_lock():
            clock.advance(queue.lock_seconds + 1)
            claims_while_running.append(await queue.claim())

        stub = StubOrchestrator(during=outlive_the_lock)
        worker = PayrollWorker(queue, stub, heartbeat_interval=3600)
        await queue.enqueue(validation_job())

        await worker.run_once()

        [reclaimed] = claims_while_running
        assert reclaimed.attempt == 2
