"""HTTP service for conversion runs and their schedules.

Startup initializes the database engine and, when enabled, the
APScheduler instance that fires recurring conversions. Shutdown waits
for running conversions before disposing of the engine.

Error Logging Requirements:
- Every request is logged with request_id, method, path, status and timing
- Responses carry the request_id in X-Request-ID
- Error bodies are {"error": str, "code": str, "request_id": str}
- 4xx responses log at WARNING, 5xx at ERROR
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from content_converter.api.v1 import router as api_v1_router
from content_converter.core.config import get_settings
from content_converter.core.database import db_manager
from content_converter.core.logging import get_logger, setup_logging
from content_converter.core.scheduler import scheduler_manager

logger = get_logger(__name__)


def _status_log_level(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def error_response(
    request: Request, status_code: int, error: str, code: str
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "code": code, "request_id": _request_id(request)},
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and logs its outcome and duration."""

    async def dispatch(self, request: Request, call_next: Any) -> Any:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        request_extra = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        logger.debug("Request started", extra=request_extra)

        start_time = time.monotonic()
        response = await call_next(request)
        duration_ms = (time.monotonic() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id
        logger.log(
            _status_log_level(response.status_code),
            "Request finished",
            extra={
                **request_extra,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """422 with every failing field joined into one message."""
    message = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    logger.warning(
        "Request validation failed",
        extra={"request_id": _request_id(request), "error": message},
    )
    return error_response(
        request, status.HTTP_422_UNPROCESSABLE_ENTITY, message, "VALIDATION_ERROR"
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception",
        extra={
            "request_id": _request_id(request),
            "error_type": type(exc).__name__,
            "error_message": str(exc),
        },
        exc_info=True,
    )
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An internal error occurred. Please try again later.",
        "INTERNAL_ERROR",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    setup_logging()
    settings = get_settings()
    logger.info(
        "Converter service starting",
        extra={
            "version": settings.app_version,
            "environment": settings.environment,
            "scheduler_enabled": settings.scheduler_enabled,
        },
    )

    db_manager.init_db()

    if not scheduler_manager.init_scheduler():
        logger.info("Recurring conversions unavailable: scheduler not initialized")
    elif not scheduler_manager.start():
        logger.warning("Recurring conversions unavailable: scheduler failed to start")

    yield

    logger.info("Converter service stopping")
    scheduler_manager.stop(wait=True)
    await db_manager.close()


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    settings = get_settings()
    docs_enabled = settings.debug

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        lifespan=lifespan,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, Any]:
        """Database reachability and scheduler state; degraded without a database."""
        database_ok = await db_manager.check_connection()
        return {
            "status": "ok" if database_ok else "degraded",
            "version": settings.app_version,
            "database": database_ok,
            "scheduler": scheduler_manager.check_health(),
        }

    app.include_router(api_v1_router, prefix="/api/v1")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "content_converter.main:app",
        host=get_settings().host,
        port=get_settings().port,
        log_config=None,
    )
