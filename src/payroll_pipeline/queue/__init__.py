"""Persistent, at-least-once stage job queue."""

from payroll_pipeline.queue.base import (
    ClaimedJob,
    EnqueueResult,
    JobQueue,
    JobSource,
    JobState,
    JobStatus,
    StageJob,
    stage_job_key,
)
from payroll_pipeline.queue.sql_queue import SqlJobQueue

__all__ = [
    "ClaimedJob",
    "EnqueueResult",
    "JobQueue",
    "JobSource",
    "JobState",
    "JobStatus",
    "SqlJobQueue",
    "StageJob",
    "stage_job_key",
]
