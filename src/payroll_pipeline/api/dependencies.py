"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_pipeline.runtime import Runtime
from payroll_pipeline.services.run_service import PayrollRunService


def get_runtime(request: Request) -> Runtime:
    """Runtime attached to the application at startup."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting",
        )
    return runtime


async def get_db_session(
    runtime: Annotated[Runtime, Depends(get_runtime)],
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with runtime.uow_factory.session_factory() as session:
        yield session


def get_run_service(runtime: Annotated[Runtime, Depends(get_runtime)]) -> PayrollRunService:
    return runtime.runs


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
RunService = Annotated[PayrollRunService, Depends(get_run_service)]
