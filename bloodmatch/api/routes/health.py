"""Health & Readiness Probes.

Invariants:
    - GET /api/v1/health/ answers 200 while the process is up
    - GET /api/v1/health/ready answers 503 when the database is unreachable
    - Readiness also reports the arrival sweeper; a stopped sweeper is reported,
      not treated as unready (sweeps can still be triggered via the admin API)
"""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from bloodmatch.config import get_settings
from bloodmatch.infrastructure import database
from bloodmatch.infrastructure.scheduler import sweeper_status

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def liveness():
    return {"status": "healthy", "service": "bloodmatch-api", "version": "1.0.0"}


@router.get("/ready")
async def readiness():
    manager = database.db_manager
    checks = {
        "database": "healthy" if manager and await manager.health_check() else "unavailable",
        "sweeper": sweeper_status() if get_settings().sweeper_enabled else "disabled",
    }
    if checks["database"] != "healthy":
        logger.warning("Readiness probe failed: database unavailable")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
