"""Worker loop that executes queued stage jobs."""

from __future__ import annotations

import asyncio
import logging

from payroll_pipeline.queue.base import ClaimedJob, JobSource
from payroll_pipeline.services.orchestrator import PayrollRunOrchestrator

logger = logging.getLogger(__name__)


class PayrollWorker:
    """Claims one job at a time and reports the outcome back to the queue.

    While a stage runs, the job's lock is extended every ``heartbeat_interval``
    seconds so a long calculation is not handed to a second worker.
    """

    def __init__(
        self,
        source: JobSource,
        orchestrator: PayrollRunOrchestrator,
        poll_interval: float = 1.0,
        heartbeat_interval: float = 100.0,
    ):
        self._source = source
        self._orchestrator = orchestrator
        self._poll_interval = poll_interval
        self._heartbeat_interval = heartbeat_interval

    async def run_once(self) -> bool:
        """Process at most one job; False when nothing was due."""
        claimed = await self._source.claim()
        if claimed is None:
            return False

        if claimed.exhausted:
            # Claim already marked the job FAILED; only the run needs updating
            await self._orchestrator.handle_exhausted(claimed.job, claimed.failed_reason or "")
            return True

        heartbeat = asyncio.create_task(self._keep_locked(claimed))
        error: Exception | None = None
        try:
            result = await self._orchestrator.process(claimed.job)
        except Exception as exc:
            error = exc
        finally:
            heartbeat.cancel()
            await asyncio.gather(heartbeat, return_exceptions=True)

        if error is not None:
            logger.error(
                "Stage job %s raised on attempt %d/%d",
                claimed.job_key,
                claimed.attempt,
                claimed.max_attempts,
                exc_info=error,
            )
            reason = f"{type(error).__name__}: {error}"
            outcome = await self._source.fail(claimed.job_key, reason)
            if not outcome.will_retry:
                await self._orchestrator.handle_exhausted(claimed.job, reason)
            return True

        await self._source.complete(claimed.job_key, result.to_dict())
        return True

    async def _keep_locked(self, claimed: ClaimedJob) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                extended = await self._source.extend_lock(claimed.job_key, claimed.attempt)
            except Exception:
                logger.exception("Could not extend lock on %s", claimed.job_key)
                continue
            if not extended:
                logger.warning("Lost lock on %s; another worker may pick it up", claimed.job_key)
                return

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Poll until ``stop`` is set."""
        stop = stop or asyncio.Event()
        logger.info("Payroll worker started (poll interval %.1fs)", self._poll_interval)
        while not stop.is_set():
            try:
                processed = await self.run_once()
            except Exception:
                logger.exception("Worker iteration failed; backing off")
                processed = False
            if processed:
                continue
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                continue
        logger.info("Payroll worker stopped")
