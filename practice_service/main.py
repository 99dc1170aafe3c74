"""
Main FastAPI application.

This file wires together all layers:
- Models and repositories: SQLAlchemy persistence
- Services: sheets, problems, progress, announcements, jobs
- Infrastructure: jobs feed client
- Routers: HTTP endpoints
- Workers: scheduled jobs fetch and cleanup
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .database import init_db
from .dependencies import get_job_feed_client, set_job_feed_client
from .exceptions import PracticeServiceException
from .infrastructure.job_feed_client import JobFeedClient
from .logging_config import setup_logging
from .metrics import track_request_metrics
from .metrics_middleware import PrometheusMiddleware
from .routers import announcements, health, jobs, problems, progress, sheets
from .workers.jobs_fetch import JobsFetchWorker

setup_logging(settings.LOG_LEVEL, settings.SERVICE_NAME)

logger = structlog.get_logger(__name__)

# Worker instance (initialized in lifespan)
jobs_worker: Optional[JobsFetchWorker] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global jobs_worker

    logger.info("Starting practice service", version=settings.SERVICE_VERSION)

    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        raise

    set_job_feed_client(JobFeedClient())

    if settings.JOBS_SCHEDULER_ENABLED:
        jobs_worker = JobsFetchWorker(feed_client=get_job_feed_client())
        await jobs_worker.start()
    else:
        logger.info("Jobs scheduler disabled")

    logger.info("Practice service started")

    yield

    logger.info("Shutting down practice service")
    if jobs_worker:
        await jobs_worker.stop()
        jobs_worker = None
    logger.info("Practice service stopped")


app = FastAPI(
    title="Practice Service",
    description="Coding practice sheets, problems, progress tracking and tech jobs",
    version=settings.SERVICE_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "Accept",
        "Origin",
        "X-Requested-With",
    ],
    expose_headers=["Content-Length", "X-Request-ID"],
    max_age=600,
)

app.add_middleware(PrometheusMiddleware, track_func=track_request_metrics)

app.include_router(health.router)
app.include_router(sheets.router)
app.include_router(problems.router)
app.include_router(progress.router)
app.include_router(announcements.router)
app.include_router(jobs.router)


@app.get("/")
async def root():
    """Root endpoint with service information."""
    return {
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "status": "operational",
        "health": "/health",
        "ready": "/ready",
    }


@app.exception_handler(PracticeServiceException)
async def practice_exception_handler(request: Request, exc: PracticeServiceException):
    """Map domain exceptions to their status code and the error envelope."""
    if exc.status_code >= 500:
        logger.error(
            "Request failed",
            path=request.url.path,
            method=request.method,
            error=exc.message,
            details=exc.details,
        )
    else:
        logger.info(
            "Request rejected",
            path=request.url.path,
            status_code=exc.status_code,
            error=exc.message,
        )

    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.error_code, "message": exc.message},
    )


HTTP_ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    default = "internal_server_error" if exc.status_code >= 500 else "error"
    error = HTTP_ERROR_CODES.get(exc.status_code, default)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": error, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid value for {field}" if field else "Invalid request"

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": "validation_error",
            "message": message,
            "details": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in errors
            ],
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
            "request_id": request.headers.get("X-Request-ID"),
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "practice_service.main:app",
        host=settings.SERVICE_HOST,
        port=settings.SERVICE_PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
