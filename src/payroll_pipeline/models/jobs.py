"""Persistent stage job queue table."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_pipeline.models.base import Base, JSONType, TimestampMixin, UpdatedAtMixin


class PayrollStageJob(Base, TimestampMixin, UpdatedAtMixin):
    """A queued stage of a payroll run, identified by its deterministic key."""

    __tablename__ = "payroll_stage_job"

    payroll_stage_job_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    job_key: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    payroll_run_id: Mapped[UUID] = mapped_column(nullable=False)
    stage: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    state: Mapped[str] = mapped_column(String, nullable=False, default="waiting")
    attempts_made: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    available_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    locked_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    result: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    failed_reason: Mapped[str | None] = mapped_column(Text)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_payroll_stage_job_due", "state", "available_at"),
        Index("ix_payroll_stage_job_run", "payroll_run_id"),
    )
