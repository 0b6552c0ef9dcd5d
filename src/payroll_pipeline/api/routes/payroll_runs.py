"""Payroll run API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, status

from payroll_pipeline.api.dependencies import RunService
from payroll_pipeline.api.schemas import (
    CancelResponse,
    EnqueueResponse,
    ErrorResponse,
    PayrollRecordListResponse,
    PayrollRecordResponse,
    PayrollRunCreate,
    PayrollRunResponse,
    PayrollRunStatusResponse,
)
from payroll_pipeline.services.run_service import PayrollRunExistsError, PayrollRunNotFoundError
from payroll_pipeline.services.state_machine import InvalidTransitionError

router = APIRouter(prefix="/payroll-runs", tags=["payroll-runs"])


def _not_found(exc: PayrollRunNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.post(
    "",
    response_model=PayrollRunResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def trigger_payroll_run(service: RunService, payload: PayrollRunCreate) -> PayrollRunResponse:
    """Create the run for a month and queue its validation stage."""
    try:
        run = await service.start_run(payload.month, payload.year)
    except PayrollRunExistsError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return PayrollRunResponse.model_validate(run)


@router.get(
    "/{run_id}",
    response_model=PayrollRunStatusResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payroll_run(
    service: RunService,
    run_id: Annotated[UUID, Path()],
) -> PayrollRunStatusResponse:
    """Run status, counts, errors and the queue state of its current stage."""
    try:
        view = await service.get_run_status(run_id)
    except PayrollRunNotFoundError as exc:
        raise _not_found(exc)
    return PayrollRunStatusResponse.model_validate(view)


@router.get(
    "/{run_id}/records",
    response_model=PayrollRecordListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_payroll_records(
    service: RunService,
    run_id: Annotated[UUID, Path()],
) -> PayrollRecordListResponse:
    try:
        records = await service.list_records(run_id)
    except PayrollRunNotFoundError as exc:
        raise _not_found(exc)
    return PayrollRecordListResponse(
        items=[PayrollRecordResponse.model_validate(record) for record in records],
        total=len(records),
    )


@router.post(
    "/{run_id}/resume",
    response_model=EnqueueResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def resume_payroll_run(
    service: RunService,
    run_id: Annotated[UUID, Path()],
) -> EnqueueResponse:
    """Queue the current stage of a failed run again."""
    try:
        result = await service.resume_run(run_id)
    except PayrollRunNotFoundError as exc:
        raise _not_found(exc)
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return EnqueueResponse.model_validate(result)


@router.post(
    "/{run_id}/cancel",
    response_model=CancelResponse,
    responses={404: {"model": ErrorResponse}},
)
async def cancel_payroll_run(
    service: RunService,
    run_id: Annotated[UUID, Path()],
) -> CancelResponse:
    """Drop the run's queued stages. A stage already executing is not interrupted."""
    try:
        cancelled = await service.cancel_run(run_id)
    except PayrollRunNotFoundError as exc:
        raise _not_found(exc)
    return CancelResponse(cancelled_jobs=cancelled)
