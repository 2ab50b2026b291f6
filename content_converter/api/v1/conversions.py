"""Conversion API endpoints.

Provides one-shot runs and recurring schedules:
- POST /api/v1/conversions/{kind} - Run a conversion now
- GET /api/v1/conversions/schedules - List scheduled conversions
- POST /api/v1/conversions/schedules - Schedule a recurring conversion
- DELETE /api/v1/conversions/schedules/{job_id} - Remove a scheduled conversion

Error Logging Requirements:
- Log all incoming requests with method, path, request_id
- Return structured error responses: {"error": str, "code": str, "request_id": str}
- Log 4xx errors at WARNING, 5xx at ERROR
"""

from fastapi import APIRouter, Body, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from content_converter.core.database import get_session_factory
from content_converter.core.logging import get_logger
from content_converter.core.scheduler import (
    JobNotFoundError,
    SchedulerManager,
    SchedulerNotRunningError,
    get_scheduler,
)
from content_converter.schemas.conversion import (
    ConversionKind,
    ConversionResultResponse,
    ConversionRunRequest,
    ConversionRunResponse,
    ConversionScheduleCreate,
    FailedChunkResponse,
    ScheduledJobResponse,
)
from content_converter.services.batch import ConversionBatchRunner

logger = get_logger(__name__)

router = APIRouter()


def _get_request_id(request: Request) -> str:
    """Get request_id from request state."""
    return getattr(request.state, "request_id", "unknown")


def _error(status_code: int, error: str, code: str, request_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "code": code, "request_id": request_id},
    )


@router.get(
    "/schedules",
    response_model=list[ScheduledJobResponse],
    summary="List scheduled conversions",
)
async def list_schedules(
    request: Request,
    scheduler: SchedulerManager = Depends(get_scheduler),
) -> list[ScheduledJobResponse]:
    """List every scheduled conversion job."""
    jobs = scheduler.get_jobs()
    logger.debug(
        "Scheduled conversions listed",
        extra={"request_id": _get_request_id(request), "count": len(jobs)},
    )
    return [ScheduledJobResponse.model_validate(job) for job in jobs]


@router.post(
    "/schedules",
    response_model=ScheduledJobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule a recurring conversion",
    responses={
        400: {"description": "Invalid cron expression"},
        503: {"description": "Scheduler not available"},
    },
)
async def create_schedule(
    request: Request,
    data: ConversionScheduleCreate,
    scheduler: SchedulerManager = Depends(get_scheduler),
) -> ScheduledJobResponse | JSONResponse:
    """Run a conversion kind on a cron schedule.

    Scheduling the same kind and cron again replaces the existing job.
    """
    request_id = _get_request_id(request)
    logger.info(
        "Create conversion schedule request",
        extra={"request_id": request_id, "kind": data.kind.value, "cron": data.cron},
    )

    try:
        job = scheduler.add_conversion_job(data.kind.value, data.cron)
    except ValueError as e:
        logger.warning(
            "Invalid cron expression",
            extra={"request_id": request_id, "cron": data.cron, "error": str(e)},
        )
        return _error(
            status.HTTP_400_BAD_REQUEST,
            f"Validation failed for 'cron': {e}",
            "VALIDATION_ERROR",
            request_id,
        )
    except SchedulerNotRunningError as e:
        logger.warning(
            "Scheduler not available",
            extra={"request_id": request_id, "operation": e.operation},
        )
        return _error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            str(e),
            "SCHEDULER_UNAVAILABLE",
            request_id,
        )

    return ScheduledJobResponse.model_validate(job)


@router.delete(
    "/schedules/{job_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a scheduled conversion",
    responses={
        404: {"description": "Job not found"},
        503: {"description": "Scheduler not available"},
    },
)
async def delete_schedule(
    request: Request,
    job_id: str,
    scheduler: SchedulerManager = Depends(get_scheduler),
) -> Response:
    """Remove a scheduled conversion job."""
    request_id = _get_request_id(request)
    logger.info(
        "Delete conversion schedule request",
        extra={"request_id": request_id, "job_id": job_id},
    )

    try:
        scheduler.remove_job(job_id)
    except JobNotFoundError as e:
        logger.warning(
            "Scheduled conversion not found",
            extra={"request_id": request_id, "job_id": job_id},
        )
        return _error(status.HTTP_404_NOT_FOUND, str(e), "NOT_FOUND", request_id)
    except SchedulerNotRunningError as e:
        logger.warning(
            "Scheduler not available",
            extra={"request_id": request_id, "operation": e.operation},
        )
        return _error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            str(e),
            "SCHEDULER_UNAVAILABLE",
            request_id,
        )

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{kind}",
    response_model=ConversionRunResponse,
    summary="Run a conversion now",
    description=(
        "Convert every selected legacy record of the kind. Unset fields of the "
        "body fall back to the CONVERSION_* settings."
    ),
    responses={
        400: {"description": "Invalid options"},
        500: {"description": "Run could not start"},
    },
)
async def run_conversion_now(
    request: Request,
    kind: ConversionKind,
    data: ConversionRunRequest | None = Body(default=None),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ConversionRunResponse | JSONResponse:
    """Run a one-shot conversion and return its summary.

    Chunk failures are reported in failed_chunks; the request itself
    only fails when the run cannot start.
    """
    request_id = _get_request_id(request)
    data = data or ConversionRunRequest()

    try:
        options = data.to_options()
    except ValidationError as e:
        logger.warning(
            "Invalid conversion options",
            extra={"request_id": request_id, "kind": kind.value, "errors": e.errors()},
        )
        return _error(
            status.HTTP_400_BAD_REQUEST,
            "; ".join(err["msg"] for err in e.errors()),
            "VALIDATION_ERROR",
            request_id,
        )

    logger.info(
        "Conversion run request",
        extra={
            "request_id": request_id,
            "kind": kind.value,
            "scoped": options.scope_parent_ids is not None,
            "delete_source": options.delete_source_upon_conversion,
            "batch_size": options.batch_size,
        },
    )

    runner = ConversionBatchRunner(session_factory, kind, options)
    try:
        summary = await runner.run()
    except SQLAlchemyError as e:
        logger.error(
            "Conversion run failed to start",
            extra={
                "request_id": request_id,
                "kind": kind.value,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
            exc_info=True,
        )
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Conversion run could not read the records to convert.",
            "DATABASE_ERROR",
            request_id,
        )

    return ConversionRunResponse(
        kind=kind,
        total_records=summary.total_records,
        converted=summary.converted,
        failed=summary.failed,
        chunk_count=summary.chunk_count,
        failed_chunks=[
            FailedChunkResponse.model_validate(chunk) for chunk in summary.failed_chunks
        ],
        results=[
            ConversionResultResponse.model_validate(result)
            for result in sorted(summary.results, key=lambda r: r.source_record_id)
        ],
        duration_ms=round(summary.duration_ms, 2),
    )
