"""
Health check and monitoring router.

Provides endpoints for health checks and Prometheus metrics.
"""

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..cache import get_problem_cache
from ..config import settings
from ..database import get_db
from ..metrics import metrics_endpoint
from ..schemas import HealthResponse

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
)
async def health_check():
    """
    Basic health check.

    Always returns 200 OK if the service is running.
    """
    return HealthResponse(
        status="healthy",
        service=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
    )


@router.get("/ready", summary="Readiness check")
def readiness_check(db: Session = Depends(get_db)):
    """
    Check the database connection and report problem cache state.

    Returns 200 when the database answers, 503 otherwise. An empty problem
    cache does not make the service unready; it loads on first use.
    """
    checks = {"database": False, "problem_cache": get_problem_cache().is_populated}
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error("Readiness check failed", error=str(e))
    ready = checks["database"]
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"ready": ready, "checks": checks},
    )


router.add_api_route("/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False)
