"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payroll_pipeline.api.routes import health_router, loans_router, payroll_runs_router
from payroll_pipeline.config import get_settings
from payroll_pipeline.database import dispose_db, init_db
from payroll_pipeline.runtime import Runtime, build_runtime

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the runtime on startup unless one was injected."""
    owns_runtime = getattr(app.state, "runtime", None) is None
    if owns_runtime:
        _, session_factory = init_db()
        app.state.runtime = build_runtime(get_settings(), session_factory)
    yield
    if owns_runtime:
        app.state.runtime = None
        await dispose_db()


def create_app(runtime: Runtime | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Payroll Pipeline API",
        description="Monthly payroll runs with Indian statutory deductions",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    app.include_router(health_router)
    app.include_router(payroll_runs_router, prefix="/api/v1")
    app.include_router(loans_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
