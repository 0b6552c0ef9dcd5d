"""Stage job queue persisted in the ``payroll_stage_job`` table.

Delivery is at-least-once: a claimed job holds a lock until ``locked_until``
and becomes claimable again if the worker dies without completing or failing
it. Failed attempts are retried with exponential backoff.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import Update, and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_pipeline.database import dialect_insert
from payroll_pipeline.models import PayrollStageJob
from payroll_pipeline.queue.base import (
    PENDING_STATES,
    ClaimedJob,
    EnqueueResult,
    FailureOutcome,
    JobState,
    JobStatus,
    StageJob,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobNotFoundError(Exception):
    """Raised when completing or failing a job that does not exist."""

    def __init__(self, job_key: str):
        self.job_key = job_key
        super().__init__(f"Stage job '{job_key}' not found")


class SqlJobQueue:
    """Database-backed queue implementing both ``JobQueue`` and ``JobSource``."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
        lock_seconds: float = 300.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.lock_seconds = lock_seconds
        self._clock = clock

    def backoff_delay(self, attempts_made: int) -> timedelta:
        """2s, 4s, 8s, ... for the default base delay."""
        return timedelta(seconds=self.backoff_seconds * 2 ** max(attempts_made - 1, 0))

    async def enqueue(
        self, job: StageJob, *, dedupe_key: str | None = None, delay_seconds: float = 0
    ) -> EnqueueResult:
        """Queue a stage job unless one with the same key is still pending.

        A completed or failed job with the same key is reset and queued again.
        """
        key = dedupe_key or job.key
        now = self._clock()
        available_at = now + timedelta(seconds=delay_seconds)
        state = JobState.DELAYED if delay_seconds > 0 else JobState.WAITING

        async with self._session_factory() as session, session.begin():
            stmt = (
                dialect_insert(session, PayrollStageJob)
                .values(
                    job_key=key,
                    payroll_run_id=job.run_id,
                    stage=job.stage.value,
                    payload=job.to_payload(),
                    state=state.value,
                    attempts_made=0,
                    max_attempts=self.max_attempts,
                    available_at=available_at,
                )
                .on_conflict_do_nothing(index_elements=["job_key"])
            )
            result = await session.execute(stmt)
            if result.rowcount:
                logger.info("Enqueued %s", key)
                return EnqueueResult(key, True, state)

            existing = (
                await session.execute(
                    select(PayrollStageJob)
                    .where(PayrollStageJob.job_key == key)
                    .with_for_update()
                )
            ).scalar_one()
            current = JobState(existing.state)
            if current in PENDING_STATES:
                logger.info("Skipped enqueue of %s: already %s", key, current.value)
                return EnqueueResult(key, False, current)

            existing.payload = job.to_payload()
            existing.state = state.value
            existing.attempts_made = 0
            existing.max_attempts = self.max_attempts
            existing.available_at = available_at
            existing.locked_until = None
            existing.result = None
            existing.failed_reason = None
            existing.finished_at = None
            logger.info("Re-enqueued %s (was %s)", key, current.value)
            return EnqueueResult(key, True, state)

    async def claim(self) -> ClaimedJob | None:
        """Take the oldest due job, or one whose lock has expired."""
        now = self._clock()
        async with self._session_factory() as session, session.begin():
            due = or_(
                and_(
                    PayrollStageJob.state.in_([JobState.WAITING.value, JobState.DELAYED.value]),
                    PayrollStageJob.available_at <= now,
                ),
                and_(
                    PayrollStageJob.state == JobState.ACTIVE.value,
                    PayrollStageJob.locked_until < now,
                ),
            )
            candidate = (
                await session.execute(
                    select(PayrollStageJob)
                    .where(due)
                    .order_by(PayrollStageJob.available_at, PayrollStageJob.job_key)
                    .limit(1)
                )
            ).scalar_one_or_none()
            if candidate is None:
                return None

            # Optimistic claim: another worker may have taken it meanwhile
            guard = update(PayrollStageJob).where(
                PayrollStageJob.payroll_stage_job_id == candidate.payroll_stage_job_id,
                PayrollStageJob.state == candidate.state,
                PayrollStageJob.attempts_made == candidate.attempts_made,
            )
            expired = candidate.state == JobState.ACTIVE.value
            if expired and candidate.attempts_made >= candidate.max_attempts:
                return await self._exhaust_expired(session, guard, candidate, now)

            attempt = candidate.attempts_made + 1
            result = await session.execute(
                guard.values(
                    state=JobState.ACTIVE.value,
                    attempts_made=attempt,
                    locked_until=now + timedelta(seconds=self.lock_seconds),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None

            if expired:
                logger.warning("Reclaimed %s after its lock expired", candidate.job_key)

            return ClaimedJob(
                job_key=candidate.job_key,
                job=StageJob.from_payload(candidate.payload),
                attempt=attempt,
                max_attempts=candidate.max_attempts,
            )

    async def _exhaust_expired(
        self,
        session: AsyncSession,
        guard: Update,
        candidate: PayrollStageJob,
        now: datetime,
    ) -> ClaimedJob | None:
        """Fail a job whose worker vanished during its last allowed attempt."""
        reason = f"Lock expired after {candidate.attempts_made} attempts"
        result = await session.execute(
            guard.values(
                state=JobState.FAILED.value,
                locked_until=None,
                failed_reason=reason,
                finished_at=now,
            ).execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        logger.error("Stage job %s failed: %s", candidate.job_key, reason)
        return ClaimedJob(
            job_key=candidate.job_key,
            job=StageJob.from_payload(candidate.payload),
            attempt=candidate.attempts_made,
            max_attempts=candidate.max_attempts,
            exhausted=True,
            failed_reason=reason,
        )

    async def extend_lock(self, job_key: str, attempt: int) -> bool:
        """Push out the lock of a job still held by this attempt."""
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(PayrollStageJob)
                .where(
                    PayrollStageJob.job_key == job_key,
                    PayrollStageJob.state == JobState.ACTIVE.value,
                    PayrollStageJob.attempts_made == attempt,
                )
                .values(locked_until=self._clock() + timedelta(seconds=self.lock_seconds))
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def complete(self, job_key: str, result: dict[str, Any] | None = None) -> None:
        async with self._session_factory() as session, session.begin():
            job = await self._get(session, job_key)
            job.state = JobState.COMPLETED.value
            job.result = result
            job.locked_until = None
            job.finished_at = self._clock()

    async def fail(self, job_key: str, error: str) -> FailureOutcome:
        """Record a failed attempt; retry with backoff until attempts run out."""
        now = self._clock()
        async with self._session_factory() as session, session.begin():
            job = await self._get(session, job_key)
            job.failed_reason = error
            job.locked_until = None

            if job.attempts_made >= job.max_attempts:
                job.state = JobState.FAILED.value
                job.finished_at = now
                logger.error(
                    "Stage job %s failed after %d attempts: %s",
                    job_key,
                    job.attempts_made,
                    error,
                )
                return FailureOutcome(job_key, False, job.attempts_made)

            retry_at = now + self.backoff_delay(job.attempts_made)
            job.state = JobState.DELAYED.value
            job.available_at = retry_at
            logger.warning(
                "Stage job %s attempt %d failed, retrying at %s: %s",
                job_key,
                job.attempts_made,
                retry_at.isoformat(),
                error,
            )
            return FailureOutcome(job_key, True, job.attempts_made, retry_at)

    async def get_status(self, dedupe_key: str) -> JobStatus | None:
        async with self._session_factory() as session:
            job = (
                await session.execute(
                    select(PayrollStageJob).where(PayrollStageJob.job_key == dedupe_key)
                )
            ).scalar_one_or_none()
            if job is None:
                return None
            return JobStatus(
                job_key=job.job_key,
                state=JobState(job.state),
                attempts_made=job.attempts_made,
                max_attempts=job.max_attempts,
                result=job.result,
                failed_reason=job.failed_reason,
            )

    async def counts_by_state(self) -> dict[str, int]:
        """Number of jobs per state, every state present."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(PayrollStageJob.state, func.count()).group_by(PayrollStageJob.state)
            )
            counts = {state: int(count) for state, count in result.all()}
        return {state.value: counts.get(state.value, 0) for state in JobState}

    async def cancel_pending(self, run_id: UUID) -> int:
        """Remove waiting and delayed jobs of every stage of a run."""
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                delete(PayrollStageJob)
                .where(
                    PayrollStageJob.payroll_run_id == run_id,
                    PayrollStageJob.state.in_([JobState.WAITING.value, JobState.DELAYED.value]),
                )
                .execution_options(synchronize_session=False)
            )
            removed = result.rowcount or 0
        if removed:
            logger.info("Cancelled %d pending stage job(s) for run %s", removed, run_id)
        return removed

    async def _get(self, session: AsyncSession, job_key: str) -> PayrollStageJob:
        job = (
            await session.execute(
                select(PayrollStageJob).where(PayrollStageJob.job_key == job_key).with_for_update()
            )
        ).scalar_one_or_none()
        if job is None:
            raise JobNotFoundError(job_key)
        return job
