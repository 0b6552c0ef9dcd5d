"""API routes."""

from payroll_pipeline.api.routes.health import router as health_router
from payroll_pipeline.api.routes.loans import router as loans_router
from payroll_pipeline.api.routes.payroll_runs import router as payroll_runs_router

__all__ = ["health_router", "loans_router", "payroll_runs_router"]
